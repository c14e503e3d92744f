"""Supabase client."""

from functools import lru_cache

from supabase import Client, create_client

from ..config import settings


@lru_cache(maxsize=1)
def get_supabase_client() -> Client:
    """Shared client for the configured project, created on first use."""
    return create_client(settings.supabase_url, settings.supabase_key)
