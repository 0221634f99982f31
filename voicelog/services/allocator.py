"""Durable session identifier allocation.

Counting existing records for the day and using ``count + 1`` is not safe
on its own: two stateless requests can read the same count. Each candidate
is therefore claimed with a conditional put on a reservation key in the
META namespace. A lost claim moves on to the next number, so the caller
never sees the conflict. Gaps are possible; duplicates are not.

Numbers already held by a record or a reservation are skipped before the
first claim, so leftover reservations never use up retry attempts.
"""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

import structlog

from voicelog.core.exceptions import AllocationExhaustedError
from voicelog.core.session_ids import SessionIdAllocator, date_prefix, sequence_number
from voicelog.db.store import Namespace, TranscriptStore, reservation_key

logger = structlog.get_logger(__name__)


def date_prefix_for(prefix: str, now: datetime, tz_name: str = "UTC") -> str:
    """Day prefix for ``now`` as seen in ``tz_name``."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    zone = timezone.utc if tz_name.upper() == "UTC" else ZoneInfo(tz_name)
    return date_prefix(prefix, now.astimezone(zone).date())


class StoreBackedAllocator(SessionIdAllocator):
    """Allocates ``<date_prefix><N>`` with retry-on-conflict."""

    def __init__(self, store: TranscriptStore, max_attempts: int = 50) -> None:
        self._store = store
        self._max_attempts = max_attempts

    async def allocate(self, date_prefix: str) -> str:
        reserved_prefix = reservation_key(date_prefix)
        records = await self._store.list_keys(Namespace.RECORDS, date_prefix)
        reservations = await self._store.list_keys(Namespace.META, reserved_prefix)
        taken = {
            n
            for n in (sequence_number(k.key, date_prefix) for k in records)
            if n is not None
        }
        taken.update(
            n
            for n in (sequence_number(k.key, reserved_prefix) for k in reservations)
            if n is not None
        )
        candidate = len(records) + 1

        for attempt in range(1, self._max_attempts + 1):
            while candidate in taken:
                candidate += 1
            session_id = f"{date_prefix}{candidate}"
            if await self.claim(session_id):
                logger.info("session_id_allocated", session_id=session_id, attempts=attempt)
                return session_id
            logger.info("session_id_conflict", session_id=session_id, attempt=attempt)
            taken.add(candidate)

        logger.error(
            "session_id_allocation_exhausted",
            date_prefix=date_prefix,
            max_attempts=self._max_attempts,
        )
        raise AllocationExhaustedError(
            f"No free identifier for {date_prefix} after {self._max_attempts} attempts"
        )

    async def claim(self, session_id: str) -> bool:
        """Reserve ``session_id``. True if this call won it."""
        return await self._store.put_if_absent(
            Namespace.META,
            reservation_key(session_id),
            datetime.now(timezone.utc).isoformat(),
        )

    async def release(self, session_id: str) -> None:
        """Drop the reservation for an id that was claimed but never used."""
        await self._store.delete(Namespace.META, reservation_key(session_id))
        logger.info("session_id_released", session_id=session_id)
