"""FastAPI application entrypoint.

Routes: POST /api/transcript (webhook ingestion), GET|POST /api/transcripts
(query), GET /health. Auto-generated OpenAPI docs at /docs.

The TranscriptStore is created once during the lifespan and stored on
app.state for injection via Depends(). Every request is otherwise
stateless; all coordination between requests goes through the store.
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from voicelog.api.health import router as health_router
from voicelog.api.transcripts import router as transcripts_router
from voicelog.core.config import settings
from voicelog.core.exceptions import VoicelogError
from voicelog.db.redis import close_redis, get_redis
from voicelog.db.store import InMemoryTranscriptStore, RedisTranscriptStore, TranscriptStore


def _configure_logging() -> None:
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    structlog.configure(
        wrapper_class=structlog.make_filtering_bound_logger(level),
        cache_logger_on_first_use=True,
    )
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


_configure_logging()

logger = structlog.get_logger(__name__)


async def _create_store() -> TranscriptStore:
    if settings.store_backend == "memory":
        logger.warning("memory_store_in_use", env=settings.app_env)
        return InMemoryTranscriptStore()
    return RedisTranscriptStore(await get_redis(), key_prefix=settings.redis_key_prefix)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application startup and shutdown lifecycle."""
    # --- Startup ---
    logger.info("app_startup", env=settings.app_env, store_backend=settings.store_backend)
    app.state.store = await _create_store()
    yield

    # --- Shutdown ---
    logger.info("app_shutdown")
    if settings.store_backend == "redis":
        await close_redis()


app = FastAPI(
    title="Voicelog: Call Transcript API",
    description="Webhook ingestion and retrieval of voice-agent call transcripts.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS: permissive for development, closed in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if not settings.is_production else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(VoicelogError)
async def voicelog_error_handler(request: Request, exc: VoicelogError) -> JSONResponse:
    """Structured error response for all Voicelog exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_dict(),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Anything not already mapped becomes a structured 500."""
    logger.exception("unhandled_error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": {"code": "INTERNAL_ERROR", "message": "Internal server error"}},
    )


app.include_router(health_router)
app.include_router(transcripts_router)
