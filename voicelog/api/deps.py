"""Shared FastAPI dependencies: store access and service injection.

The TranscriptStore is created once during the FastAPI lifespan and stored
on app.state. All downstream code retrieves it via Depends(), never by
direct import. Tests swap any of these through app.dependency_overrides.
"""

from fastapi import Depends, Request

from voicelog.core.config import settings
from voicelog.core.session_ids import SessionIdAllocator
from voicelog.db.store import TranscriptStore
from voicelog.services.allocator import StoreBackedAllocator
from voicelog.services.ingestion import TranscriptIngestionService
from voicelog.services.query import TranscriptQueryService


# ---------------------------------------------------------------------------
# Store singleton, retrieved from app.state (set during lifespan)
# ---------------------------------------------------------------------------

def get_store(request: Request) -> TranscriptStore:
    """Return the singleton transcript store from app state."""
    return request.app.state.store


# ---------------------------------------------------------------------------
# Service constructors, wired via Depends()
# ---------------------------------------------------------------------------

def get_allocator(
    store: TranscriptStore = Depends(get_store),
) -> SessionIdAllocator:
    """Return the durable session id allocator."""
    return StoreBackedAllocator(store=store, max_attempts=settings.allocation_max_attempts)


def get_ingestion_service(
    store: TranscriptStore = Depends(get_store),
    allocator: SessionIdAllocator = Depends(get_allocator),
) -> TranscriptIngestionService:
    """Return a TranscriptIngestionService instance."""
    return TranscriptIngestionService(
        store=store,
        allocator=allocator,
        report_type=settings.end_of_call_report_type,
        session_prefix=settings.server_session_prefix,
        tz_name=settings.session_timezone,
        honor_provisional_ids=settings.honor_provisional_ids,
    )


def get_query_service(
    store: TranscriptStore = Depends(get_store),
) -> TranscriptQueryService:
    """Return a TranscriptQueryService instance."""
    return TranscriptQueryService(store=store)
