"""Transcript ingestion (webhook) and query endpoints."""

from __future__ import annotations

import json
from typing import Any

import structlog
from fastapi import APIRouter, Depends, Query, Request

from voicelog.api.deps import get_ingestion_service, get_query_service
from voicelog.core.exceptions import (
    IngestionError,
    InvalidQueryError,
    MethodNotAllowedError,
    VoicelogError,
)
from voicelog.schemas.transcript import (
    IngestResponse,
    LatestTranscriptResponse,
    MarkProcessedResponse,
    SessionListResponse,
    UnprocessedResponse,
)
from voicelog.services.ingestion import TranscriptIngestionService
from voicelog.services.query import TranscriptQueryService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["transcripts"])


@router.post(
    "/transcript",
    response_model=IngestResponse,
    response_model_exclude_none=True,
)
async def receive_transcript(
    request: Request,
    service: TranscriptIngestionService = Depends(get_ingestion_service),
) -> IngestResponse:
    """Webhook receiver for end-of-call reports.

    Irrelevant or incomplete reports (including unparsable bodies) get a 200
    with no side effect: upstream retries anything else, and a malformed
    report will never fix itself.
    """
    try:
        payload: Any = await request.json()
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None

    try:
        result = await service.ingest(payload)
    except VoicelogError:
        raise
    except Exception as e:
        logger.exception("ingestion_failed", error=str(e))
        raise IngestionError() from e

    return IngestResponse(success=True, session_id=result.session_id, message=result.message)


@router.api_route("/transcripts", methods=["GET", "POST"])
async def query_transcripts(
    request: Request,
    session_id: str | None = Query(None, alias="id"),
    latest: bool = Query(False),
    unprocessed: bool = Query(False),
    mark_processed: str | None = Query(None, alias="markProcessed"),
    service: TranscriptQueryService = Depends(get_query_service),
) -> Any:
    """Query stored transcripts.

    Exactly one of ``id``, ``latest=true``, ``unprocessed=true`` or
    ``markProcessed=<id>`` (POST only) may be given; with none of them the
    metadata listing of every session is returned.
    """
    selected = [
        name
        for name, present in (
            ("id", session_id is not None),
            ("latest", latest),
            ("unprocessed", unprocessed),
            ("markProcessed", mark_processed is not None),
        )
        if present
    ]
    if len(selected) > 1:
        raise InvalidQueryError(f"Parameters are mutually exclusive: {', '.join(selected)}")

    if mark_processed is not None:
        if request.method != "POST":
            raise MethodNotAllowedError("markProcessed requires POST")
        record = await service.mark_processed(mark_processed)
        return _dump(MarkProcessedResponse(session_id=record.session_id, processed_at=record.processed_at))

    if session_id is not None:
        return _dump(await service.get(session_id))

    if latest:
        return _dump(LatestTranscriptResponse(transcript=await service.latest()))

    if unprocessed:
        records = await service.list_unprocessed()
        return _dump(UnprocessedResponse(transcripts=records, count=len(records)))

    sessions = await service.list_all()
    return _dump(SessionListResponse(sessions=sessions, count=len(sessions)))


def _dump(model: Any) -> dict[str, Any]:
    return model.model_dump(mode="json", by_alias=True)
