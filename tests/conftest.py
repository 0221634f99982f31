"""Shared pytest fixtures for the Voicelog test suite.

Provides:
  - mock_redis: Mock RedisClient with in-memory dict storage
  - memory_store: InMemoryTranscriptStore
  - fixed_now: Fixed UTC timestamp used as the ingestion clock
  - fake_engine / engine_factory: Scriptable VoiceEngine
  - api_client: httpx.AsyncClient bound to the FastAPI app with the
    store dependency overridden
"""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Any, AsyncIterator

import httpx
import pytest
import pytest_asyncio

from voicelog.client.engine import EngineEvent, VoiceEngine
from voicelog.db.store import InMemoryTranscriptStore


# ---------------------------------------------------------------------------
# Mock Redis Client
# ---------------------------------------------------------------------------


class MockRedisClient:
    """In-memory mock of RedisClient for testing."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self._hashes: dict[str, dict[str, str]] = {}

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str) -> None:
        self._store[key] = value

    async def set_if_absent(self, key: str, value: str) -> bool:
        if key in self._store:
            return False
        self._store[key] = value
        return True

    async def delete(self, key: str) -> None:
        self._store.pop(key, None)

    async def scan_keys(self, match: str, count: int = 500) -> list[str]:
        assert match.endswith("*"), "store only issues prefix scans"
        prefix = re.sub(r"\\(.)", r"\1", match[:-1])
        return [key for key in self._store if key.startswith(prefix)]

    async def hset(self, key: str, field: str, value: str) -> None:
        self._hashes.setdefault(key, {})[field] = value

    async def hdel(self, key: str, field: str) -> None:
        self._hashes.get(key, {}).pop(field, None)

    async def hmget(self, key: str, fields: list[str]) -> list[str | None]:
        current = self._hashes.get(key, {})
        return [current.get(f) for f in fields]


# ---------------------------------------------------------------------------
# Fake voice engine
# ---------------------------------------------------------------------------


class FakeVoiceEngine(VoiceEngine):
    """VoiceEngine double. Tests drive events through emit()."""

    def __init__(self, fail_start: bool = False) -> None:
        super().__init__()
        self.fail_start = fail_start
        self.start_calls: list[dict[str, Any]] = []
        self.stop_calls = 0
        self.muted_calls: list[bool] = []

    async def start(self, assistant_id: str, metadata: dict[str, Any] | None = None) -> None:
        self.start_calls.append({"assistant_id": assistant_id, "metadata": metadata})
        if self.fail_start:
            raise RuntimeError("microphone permission denied")

    async def stop(self) -> None:
        self.stop_calls += 1

    def set_muted(self, muted: bool) -> None:
        self.muted_calls.append(muted)

    def transcript(self, role: str, text: str, final: bool = True) -> None:
        self.emit(
            EngineEvent.TRANSCRIPT,
            {
                "type": "transcript",
                "role": role,
                "transcript": text,
                "transcriptType": "final" if final else "partial",
            },
        )


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def mock_redis() -> MockRedisClient:
    """Mock Redis client fixture."""
    return MockRedisClient()


@pytest.fixture
def memory_store() -> InMemoryTranscriptStore:
    """Fresh in-memory transcript store."""
    return InMemoryTranscriptStore()


@pytest.fixture
def fixed_now() -> datetime:
    """2026-10-05 14:30 UTC, i.e. day prefix ``05Oct26``."""
    return datetime(2026, 10, 5, 14, 30, 0, tzinfo=timezone.utc)


@pytest.fixture
def fake_engine() -> FakeVoiceEngine:
    return FakeVoiceEngine()


@pytest.fixture
def engine_factory(fake_engine: FakeVoiceEngine) -> Any:
    async def factory(public_key: str) -> FakeVoiceEngine:
        return fake_engine

    return factory


@pytest.fixture
def sample_report() -> dict[str, Any]:
    """A complete end-of-call report as delivered by the voice backend."""
    return {
        "type": "end-of-call-report",
        "endedReason": "customer-ended-call",
        "call": {
            "id": "call-0001",
            "startedAt": "2026-10-05T14:10:00Z",
            "endedAt": "2026-10-05T14:25:00Z",
        },
        "artifact": {
            "transcript": "AI: Hi there\nUser: hello",
            "messages": [
                {"role": "bot", "message": "Hi there"},
                {"role": "user", "message": "hello"},
            ],
        },
    }


@pytest_asyncio.fixture
async def api_client(memory_store: InMemoryTranscriptStore) -> AsyncIterator[httpx.AsyncClient]:
    """HTTP client against the app, backed by ``memory_store``."""
    from voicelog.api.deps import get_store
    from voicelog.main import app

    app.dependency_overrides[get_store] = lambda: memory_store
    transport = httpx.ASGITransport(app=app)
    try:
        async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
            yield client
    finally:
        app.dependency_overrides.clear()
