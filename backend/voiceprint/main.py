"""FastAPI application entry point.

The app is built by ``create_app``; serve it with
``uvicorn backend.voiceprint.main:create_app --factory``.
"""

from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from supabase import Client

from .api import voiceprints
from .config import settings
from .errors import VoiceprintError
from .log import configure_logging, get_logger
from .services.events import EventBus
from .services.lifecycle import FingerprintLifecycleManager
from .services.semantic import (
    AnthropicSemanticClient,
    HeuristicSemanticClient,
    SemanticClient,
    SemanticSignatureExtractor,
)
from .services.storage import VoiceprintRepository
from .services.supabase import get_supabase_client
from .services.synthesis import ThresholdPolicy

logger = get_logger(__name__)


def _error_body(code: str, message: str, details: Optional[Dict[str, Any]] = None) -> dict:
    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"error": error}


async def voiceprint_exception_handler(request: Request, exc: VoiceprintError) -> JSONResponse:
    """Render typed core errors as ``{"error": {code, message, details}}``."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "api_error",
        code=exc.error_code,
        status=exc.status_code,
        path=request.url.path,
        fingerprint_id=exc.fingerprint_id,
    )
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("unhandled_error", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content=_error_body("INTERNAL_ERROR", "An unexpected error occurred"),
    )


def build_semantic_client() -> SemanticClient:
    """Anthropic when a key is configured, local heuristics otherwise."""
    if settings.anthropic_api_key:
        return AnthropicSemanticClient(settings.anthropic_api_key, settings.anthropic_model)
    logger.warning("semantic_service_unconfigured", fallback="heuristic")
    return HeuristicSemanticClient()


def create_app(
    client: Optional[Client] = None,
    semantic_client: Optional[SemanticClient] = None,
) -> FastAPI:
    """Composition root: one bus, repository and lifecycle manager per app."""
    configure_logging(json_format=settings.log_json, log_level=settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await app.state.lifecycle.wait_for_scheduled()
        await app.state.bus.drain()

    app = FastAPI(title="Voiceprint API", lifespan=lifespan)

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],  # Vite dev server
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    supabase = client or get_supabase_client()
    bus = EventBus(debounce_ms=settings.event_debounce_ms)
    extractor = SemanticSignatureExtractor(
        semantic_client or build_semantic_client(),
        timeout_seconds=settings.semantic_timeout_seconds,
        max_retries=settings.semantic_max_retries,
        batch_size=settings.semantic_batch_size,
    )
    lifecycle = FingerprintLifecycleManager(
        VoiceprintRepository(supabase),
        bus,
        extractor,
        threshold_policy=ThresholdPolicy(deviation_multiplier=settings.threshold_deviation_multiplier),
        min_samples=settings.min_samples,
        min_corpus_tokens=settings.min_corpus_tokens,
        max_sample_words=settings.max_sample_words,
        max_onboarding_samples=settings.max_onboarding_samples,
        auto_create_sample_limit=settings.auto_create_sample_limit,
        stale_computation_seconds=settings.stale_computation_seconds,
    )

    app.state.supabase = supabase
    app.state.bus = bus
    app.state.lifecycle = lifecycle

    app.add_exception_handler(VoiceprintError, voiceprint_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # Include routers
    app.include_router(voiceprints.router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    return app
