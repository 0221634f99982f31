"""HTTP client for the transcript API.

Thin async wrapper over httpx. Not-found answers come back as None;
any other non-2xx status raises httpx.HTTPStatusError.
"""

from __future__ import annotations

from types import TracebackType
from typing import Any

import httpx
import structlog

from voicelog.core.config import settings
from voicelog.schemas.transcript import (
    IngestResponse,
    LatestTranscriptResponse,
    MarkProcessedResponse,
    SessionListResponse,
    SessionSummary,
    TranscriptRecord,
    UnprocessedResponse,
)

logger = structlog.get_logger(__name__)


class TranscriptApiClient:
    """Reads transcripts from (and posts reports to) a Voicelog server."""

    def __init__(
        self,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url or settings.api_base_url,
            timeout=timeout if timeout is not None else settings.api_timeout_seconds,
            transport=transport,
        )

    async def __aenter__(self) -> TranscriptApiClient:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _query(self, method: str, params: dict[str, str]) -> dict[str, Any] | None:
        response = await self._client.request(method, "/api/transcripts", params=params)
        if response.status_code == httpx.codes.NOT_FOUND:
            return None
        if response.is_error:
            logger.warning(
                "transcript_api_error",
                status_code=response.status_code,
                params=params,
            )
        response.raise_for_status()
        return response.json()

    async def get(self, session_id: str) -> TranscriptRecord | None:
        body = await self._query("GET", {"id": session_id})
        return None if body is None else TranscriptRecord.model_validate(body)

    async def latest(self) -> TranscriptRecord | None:
        body = await self._query("GET", {"latest": "true"})
        return None if body is None else LatestTranscriptResponse.model_validate(body).transcript

    async def unprocessed(self) -> list[TranscriptRecord]:
        body = await self._query("GET", {"unprocessed": "true"})
        return [] if body is None else UnprocessedResponse.model_validate(body).transcripts

    async def mark_processed(self, session_id: str) -> MarkProcessedResponse | None:
        body = await self._query("POST", {"markProcessed": session_id})
        return None if body is None else MarkProcessedResponse.model_validate(body)

    async def list_sessions(self) -> list[SessionSummary]:
        body = await self._query("GET", {})
        return [] if body is None else SessionListResponse.model_validate(body).sessions

    async def submit_report(self, report: dict[str, Any]) -> IngestResponse:
        """POST an end-of-call report, as the voice backend's webhook would."""
        response = await self._client.post("/api/transcript", json=report)
        response.raise_for_status()
        return IngestResponse.model_validate(response.json())
