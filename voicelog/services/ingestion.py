"""End-of-call report ingestion.

TranscriptIngestionService.ingest() does exactly these things in order:
1. Drop reports that are not end-of-call reports, or lack call.id / transcript
2. Resolve the session id: reuse the one indexed for this callId, or allocate
   a new one and claim the callId index for it. A delivery that loses the
   callId race releases the id it allocated.
3. Write the TranscriptRecord (conditional put, never overwrites)
4. Only after the record exists, overwrite the latest pointer

Upstream delivers at least once and retries on non-2xx, so irrelevant and
incomplete reports are acknowledged rather than rejected. Store failures
propagate and surface as HTTP 500 so the sender retries.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable

import structlog
from pydantic import ValidationError

from voicelog.core.exceptions import IngestionError
from voicelog.core.session_ids import PROVISIONAL_ID_METADATA_KEY, SessionIdAllocator, parse
from voicelog.db.store import (
    LATEST_POINTER_KEY,
    Namespace,
    TranscriptStore,
    call_index_key,
)
from voicelog.schemas.transcript import EndOfCallReport, LatestPointer, TranscriptRecord
from voicelog.services.allocator import date_prefix_for

logger = structlog.get_logger(__name__)


class IngestionOutcome(str, Enum):
    CREATED = "created"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    INCOMPLETE = "incomplete"


@dataclass(frozen=True)
class IngestionResult:
    outcome: IngestionOutcome
    session_id: str | None = None

    @property
    def message(self) -> str | None:
        if self.outcome is IngestionOutcome.IGNORED:
            return "Not an end-of-call report; ignored"
        if self.outcome is IngestionOutcome.INCOMPLETE:
            return "Report missing call id or transcript; ignored"
        return None


def unwrap_report(payload: Any) -> Any:
    """Accept both a bare report and the ``{"message": {...}}`` envelope."""
    if isinstance(payload, dict) and isinstance(payload.get("message"), dict) and "type" not in payload:
        return payload["message"]
    return payload


class TranscriptIngestionService:
    """Validates end-of-call reports and persists them idempotently."""

    def __init__(
        self,
        store: TranscriptStore,
        allocator: SessionIdAllocator,
        *,
        report_type: str = "end-of-call-report",
        session_prefix: str = "sS",
        tz_name: str = "UTC",
        honor_provisional_ids: bool = False,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._allocator = allocator
        self._report_type = report_type
        self._session_prefix = session_prefix
        self._tz_name = tz_name
        self._honor_provisional_ids = honor_provisional_ids
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def ingest(self, payload: Any) -> IngestionResult:
        """Ingest one webhook delivery. See module docstring for the steps."""
        payload = unwrap_report(payload)
        if not isinstance(payload, dict):
            logger.info("report_incomplete", reason="body_not_object")
            return IngestionResult(IngestionOutcome.INCOMPLETE)

        if payload.get("type") != self._report_type:
            logger.info("report_ignored", report_type=payload.get("type"))
            return IngestionResult(IngestionOutcome.IGNORED)

        try:
            report = EndOfCallReport.model_validate(payload)
        except ValidationError as e:
            logger.info("report_incomplete", reason="invalid_shape", error=str(e))
            return IngestionResult(IngestionOutcome.INCOMPLETE)

        call_id = report.call.id
        if not call_id or not report.artifact.transcript:
            logger.info("report_incomplete", reason="missing_fields", call_id=call_id)
            return IngestionResult(IngestionOutcome.INCOMPLETE)

        now = self._clock()
        session_id, record_exists = await self._resolve_session_id(report, now)
        if record_exists:
            logger.info("report_duplicate", call_id=call_id, session_id=session_id)
            return IngestionResult(IngestionOutcome.DUPLICATE, session_id)

        record = TranscriptRecord(
            session_id=session_id,
            call_id=call_id,
            timestamp=now.isoformat(),
            ended_reason=report.ended_reason,
            started_at=report.call.started_at,
            ended_at=report.call.ended_at,
            transcript=report.artifact.transcript,
            messages=report.artifact.messages,
        )
        created = await self._store.put_if_absent(
            Namespace.RECORDS, session_id, record.model_dump_json(by_alias=True)
        )
        if not created:
            # A concurrent delivery of the same call finished the write first.
            logger.info("report_duplicate", call_id=call_id, session_id=session_id)
            return IngestionResult(IngestionOutcome.DUPLICATE, session_id)

        pointer = LatestPointer(session_id=session_id, timestamp=record.timestamp)
        await self._store.set(
            Namespace.META, LATEST_POINTER_KEY, pointer.model_dump_json(by_alias=True)
        )

        logger.info(
            "transcript_ingested",
            session_id=session_id,
            call_id=call_id,
            message_count=len(record.messages),
        )
        return IngestionResult(IngestionOutcome.CREATED, session_id)

    async def _resolve_session_id(
        self, report: EndOfCallReport, now: datetime
    ) -> tuple[str, bool]:
        """Return (session_id, record_already_exists) for the report's call."""
        index_key = call_index_key(report.call.id)

        indexed = await self._store.get(Namespace.META, index_key)
        if indexed is not None:
            exists = await self._store.get(Namespace.RECORDS, indexed) is not None
            if not exists:
                logger.warning("resuming_partial_ingestion", call_id=report.call.id, session_id=indexed)
            return indexed, exists

        session_id = await self._fresh_session_id(report, now)
        if await self._store.put_if_absent(Namespace.META, index_key, session_id):
            return session_id, False

        # Lost the race for this callId; the winner's id is authoritative.
        await self._allocator.release(session_id)
        winner = await self._store.get(Namespace.META, index_key)
        if winner is None:
            raise IngestionError(f"Call index for {report.call.id} vanished during ingestion")
        logger.info(
            "call_index_conflict",
            call_id=report.call.id,
            discarded_session_id=session_id,
            session_id=winner,
        )
        exists = await self._store.get(Namespace.RECORDS, winner) is not None
        return winner, exists

    async def _fresh_session_id(self, report: EndOfCallReport, now: datetime) -> str:
        if self._honor_provisional_ids:
            provisional = report.call.metadata.get(PROVISIONAL_ID_METADATA_KEY)
            if isinstance(provisional, str) and parse(provisional) is not None:
                if await self._allocator.claim(provisional):
                    logger.info("provisional_id_honored", session_id=provisional)
                    return provisional
                logger.info("provisional_id_taken", session_id=provisional)
        prefix = date_prefix_for(self._session_prefix, now, self._tz_name)
        return await self._allocator.allocate(prefix)
