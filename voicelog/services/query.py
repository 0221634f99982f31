"""Read and mark-processed operations over stored transcripts."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Callable

import structlog
from pydantic import ValidationError

from voicelog.core.exceptions import TranscriptNotFoundError
from voicelog.db.store import LATEST_POINTER_KEY, Namespace, TranscriptStore
from voicelog.schemas.transcript import LatestPointer, SessionSummary, TranscriptRecord

logger = structlog.get_logger(__name__)


class TranscriptQueryService:
    """Each operation is independent and safe to repeat.

    Listings only ever read the RECORDS namespace, so the latest pointer
    and other META entries cannot leak into results.
    """

    def __init__(
        self,
        store: TranscriptStore,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    async def _load(self, session_id: str) -> TranscriptRecord | None:
        raw = await self._store.get(Namespace.RECORDS, session_id)
        if raw is None:
            return None
        return TranscriptRecord.model_validate_json(raw)

    async def get(self, session_id: str) -> TranscriptRecord:
        record = await self._load(session_id)
        if record is None:
            raise TranscriptNotFoundError(f"Transcript {session_id} not found")
        return record

    async def latest(self) -> TranscriptRecord | None:
        """Record referenced by the latest pointer, or None if there is none yet."""
        raw = await self._store.get(Namespace.META, LATEST_POINTER_KEY)
        if raw is None:
            return None
        pointer = LatestPointer.model_validate_json(raw)
        record = await self._load(pointer.session_id)
        if record is None:
            logger.warning("latest_pointer_dangling", session_id=pointer.session_id)
        return record

    async def list_unprocessed(self) -> list[TranscriptRecord]:
        """Every record with processed == false, oldest first."""
        unprocessed: list[TranscriptRecord] = []
        for stored in await self._store.list_keys(Namespace.RECORDS):
            try:
                record = await self._load(stored.key)
            except ValidationError as e:
                logger.warning("record_decode_failed", session_id=stored.key, error=str(e))
                continue
            if record is not None and not record.processed:
                unprocessed.append(record)
        unprocessed.sort(key=lambda r: r.timestamp)
        return unprocessed

    async def mark_processed(self, session_id: str) -> TranscriptRecord:
        """Set processed = true. The first call's processedAt is kept on repeats.

        Not atomic against a concurrent mark on the same id; last writer wins,
        and both writers store processed = true.
        """
        record = await self.get(session_id)
        if record.processed and record.processed_at:
            logger.debug("already_processed", session_id=session_id)
            return record

        updated = record.model_copy(
            update={"processed": True, "processed_at": self._clock().isoformat()}
        )
        await self._store.set(
            Namespace.RECORDS, session_id, updated.model_dump_json(by_alias=True)
        )
        logger.info("transcript_marked_processed", session_id=session_id)
        return updated

    async def list_all(self) -> list[SessionSummary]:
        """Metadata for every record; bodies are not read."""
        return [
            SessionSummary(session_id=stored.key, integrity_tag=stored.integrity_tag)
            for stored in await self._store.list_keys(Namespace.RECORDS)
        ]
