"""Application configuration."""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    supabase_url: str
    supabase_key: str
    anthropic_api_key: Optional[str] = None
    anthropic_model: str = "claude-3-5-haiku-20241022"

    # Semantic service budget
    semantic_timeout_seconds: float = 20.0
    semantic_max_retries: int = 1
    semantic_batch_size: int = 5

    # Fingerprint lifecycle
    min_samples: int = 3
    max_onboarding_samples: int = 5
    auto_create_sample_limit: int = 10
    min_corpus_tokens: int = 20
    max_sample_words: int = 5000
    stale_computation_seconds: float = 300.0

    # Threshold tolerance policy
    threshold_deviation_multiplier: float = 1.5

    # Event bus quiescence window
    event_debounce_ms: int = 300

    log_level: str = "INFO"
    log_json: bool = True

    class Config:
        env_file = ".env"


settings = Settings()
