"""Unit tests for TranscriptQueryService."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from voicelog.core.exceptions import TranscriptNotFoundError
from voicelog.db.store import (
    LATEST_POINTER_KEY,
    InMemoryTranscriptStore,
    Namespace,
    call_index_key,
    integrity_tag,
)
from voicelog.schemas.transcript import LatestPointer, TranscriptRecord
from voicelog.services.query import TranscriptQueryService

T0 = datetime(2026, 10, 5, 9, 0, tzinfo=timezone.utc)


async def _seed(
    store: InMemoryTranscriptStore,
    session_id: str,
    *,
    minutes: int = 0,
    processed: bool = False,
) -> TranscriptRecord:
    record = TranscriptRecord(
        session_id=session_id,
        call_id=f"call-{session_id}",
        timestamp=(T0 + timedelta(minutes=minutes)).isoformat(),
        transcript=f"transcript of {session_id}",
        processed=processed,
        processed_at=T0.isoformat() if processed else None,
    )
    await store.set(Namespace.RECORDS, session_id, record.model_dump_json(by_alias=True))
    return record


class TestGet:
    @pytest.mark.asyncio
    async def test_returns_record(self, memory_store: InMemoryTranscriptStore) -> None:
        seeded = await _seed(memory_store, "sS_05Oct26-1")
        assert await TranscriptQueryService(memory_store).get("sS_05Oct26-1") == seeded

    @pytest.mark.asyncio
    async def test_missing_raises_not_found(self, memory_store: InMemoryTranscriptStore) -> None:
        with pytest.raises(TranscriptNotFoundError):
            await TranscriptQueryService(memory_store).get("sS_05Oct26-9")

    @pytest.mark.asyncio
    async def test_meta_keys_are_not_records(self, memory_store: InMemoryTranscriptStore) -> None:
        await memory_store.set(Namespace.META, LATEST_POINTER_KEY, "{}")
        with pytest.raises(TranscriptNotFoundError):
            await TranscriptQueryService(memory_store).get(LATEST_POINTER_KEY)


class TestLatest:
    @pytest.mark.asyncio
    async def test_none_before_first_ingestion(self, memory_store: InMemoryTranscriptStore) -> None:
        assert await TranscriptQueryService(memory_store).latest() is None

    @pytest.mark.asyncio
    async def test_follows_pointer(self, memory_store: InMemoryTranscriptStore) -> None:
        await _seed(memory_store, "sS_05Oct26-1")
        await _seed(memory_store, "sS_05Oct26-2", minutes=5)
        pointer = LatestPointer(session_id="sS_05Oct26-1", timestamp=T0.isoformat())
        await memory_store.set(Namespace.META, LATEST_POINTER_KEY, pointer.model_dump_json(by_alias=True))

        latest = await TranscriptQueryService(memory_store).latest()

        assert latest is not None
        assert latest.session_id == "sS_05Oct26-1"

    @pytest.mark.asyncio
    async def test_dangling_pointer_is_none(self, memory_store: InMemoryTranscriptStore) -> None:
        pointer = LatestPointer(session_id="sS_05Oct26-3", timestamp=T0.isoformat())
        await memory_store.set(Namespace.META, LATEST_POINTER_KEY, pointer.model_dump_json(by_alias=True))

        assert await TranscriptQueryService(memory_store).latest() is None


class TestListUnprocessed:
    @pytest.mark.asyncio
    async def test_only_unprocessed_oldest_first(self, memory_store: InMemoryTranscriptStore) -> None:
        await _seed(memory_store, "sS_05Oct26-1", minutes=30)
        await _seed(memory_store, "sS_05Oct26-2", minutes=10)
        await _seed(memory_store, "sS_05Oct26-3", minutes=20, processed=True)
        await memory_store.set(Namespace.META, LATEST_POINTER_KEY, '{"sessionId": "x", "timestamp": "y"}')
        await memory_store.set(Namespace.META, call_index_key("call-x"), "sS_05Oct26-1")

        records = await TranscriptQueryService(memory_store).list_unprocessed()

        assert [r.session_id for r in records] == ["sS_05Oct26-2", "sS_05Oct26-1"]

    @pytest.mark.asyncio
    async def test_skips_undecodable_records(self, memory_store: InMemoryTranscriptStore) -> None:
        await _seed(memory_store, "sS_05Oct26-1")
        await memory_store.set(Namespace.RECORDS, "sS_05Oct26-2", "not json")

        records = await TranscriptQueryService(memory_store).list_unprocessed()

        assert [r.session_id for r in records] == ["sS_05Oct26-1"]


class TestMarkProcessed:
    @pytest.mark.asyncio
    async def test_marks_and_removes_from_unprocessed(
        self, memory_store: InMemoryTranscriptStore, fixed_now: datetime
    ) -> None:
        await _seed(memory_store, "sS_05Oct26-1")
        service = TranscriptQueryService(memory_store, clock=lambda: fixed_now)

        updated = await service.mark_processed("sS_05Oct26-1")

        assert updated.processed is True
        assert updated.processed_at == fixed_now.isoformat()
        assert await service.list_unprocessed() == []
        assert (await service.get("sS_05Oct26-1")).processed is True

    @pytest.mark.asyncio
    async def test_repeat_keeps_first_timestamp(
        self, memory_store: InMemoryTranscriptStore, fixed_now: datetime
    ) -> None:
        await _seed(memory_store, "sS_05Oct26-1")
        await TranscriptQueryService(memory_store, clock=lambda: fixed_now).mark_processed("sS_05Oct26-1")
        writes = memory_store.write_count

        later = fixed_now + timedelta(hours=1)
        again = await TranscriptQueryService(memory_store, clock=lambda: later).mark_processed("sS_05Oct26-1")

        assert again.processed_at == fixed_now.isoformat()
        assert memory_store.write_count == writes

    @pytest.mark.asyncio
    async def test_missing_raises_not_found(self, memory_store: InMemoryTranscriptStore) -> None:
        with pytest.raises(TranscriptNotFoundError):
            await TranscriptQueryService(memory_store).mark_processed("sS_05Oct26-1")
        assert memory_store.write_count == 0


class TestListAll:
    @pytest.mark.asyncio
    async def test_lists_records_with_tags(self, memory_store: InMemoryTranscriptStore) -> None:
        await _seed(memory_store, "sS_05Oct26-2")
        await _seed(memory_store, "sS_05Oct26-1")
        await memory_store.set(Namespace.META, LATEST_POINTER_KEY, "{}")

        summaries = await TranscriptQueryService(memory_store).list_all()

        assert [s.session_id for s in summaries] == ["sS_05Oct26-1", "sS_05Oct26-2"]
        raw = await memory_store.get(Namespace.RECORDS, "sS_05Oct26-1")
        assert summaries[0].integrity_tag == integrity_tag(raw or "")
