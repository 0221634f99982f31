"""Transcript store: a key/value namespace keyed by session identifier.

Keys live in one of two logical namespaces. ``RECORDS`` holds one
TranscriptRecord per session id and is the only namespace that listings
and scans ever see. ``META`` holds bookkeeping entries (the latest
pointer, the callId index, allocator reservations) so they can never
collide with a session identifier.

Business logic depends on ``TranscriptStore`` only. The concrete store is
created once in the FastAPI lifespan and injected via Depends().
"""

from __future__ import annotations

import asyncio
import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum

import structlog

from voicelog.db.redis import RedisClient

logger = structlog.get_logger(__name__)

LATEST_POINTER_KEY = "latest"


class Namespace(str, Enum):
    RECORDS = "records"
    META = "meta"


@dataclass(frozen=True)
class StoredKey:
    """A key plus the integrity tag of the value stored under it."""

    key: str
    integrity_tag: str | None


def integrity_tag(value: str) -> str:
    """Content hash used as an ETag-style integrity tag."""
    return hashlib.md5(value.encode("utf-8")).hexdigest()


def call_index_key(call_id: str) -> str:
    return f"call:{call_id}"


def reservation_key(session_id: str) -> str:
    return f"reservation:{session_id}"


class TranscriptStore(ABC):
    """Abstract key/value store contract used by every service."""

    @abstractmethod
    async def get(self, namespace: Namespace, key: str) -> str | None:
        """Return the stored value, or None if the key does not exist."""
        ...

    @abstractmethod
    async def set(self, namespace: Namespace, key: str, value: str) -> str:
        """Store ``value`` unconditionally and return its integrity tag."""
        ...

    @abstractmethod
    async def put_if_absent(self, namespace: Namespace, key: str, value: str) -> bool:
        """Store ``value`` only if ``key`` is free.

        Returns:
            True if this call created the key, False if it already existed.
        """
        ...

    @abstractmethod
    async def delete(self, namespace: Namespace, key: str) -> None:
        """Remove ``key`` if present. Missing keys are not an error."""
        ...

    @abstractmethod
    async def list_keys(self, namespace: Namespace, prefix: str = "") -> list[StoredKey]:
        """List keys (with integrity tags) starting with ``prefix``, sorted by key."""
        ...


# ---------------------------------------------------------------------------
# In-memory store (development and tests)
# ---------------------------------------------------------------------------


class InMemoryTranscriptStore(TranscriptStore):
    """Process-local store. Every operation yields to the event loop first
    so concurrent callers interleave the way they would against a real
    backend; the check-and-set in ``put_if_absent`` stays atomic.
    """

    def __init__(self, latency: float = 0.0) -> None:
        self._data: dict[tuple[Namespace, str], str] = {}
        self._latency = latency
        self.write_count = 0

    async def _yield(self) -> None:
        await asyncio.sleep(self._latency)

    async def get(self, namespace: Namespace, key: str) -> str | None:
        await self._yield()
        return self._data.get((namespace, key))

    async def set(self, namespace: Namespace, key: str, value: str) -> str:
        await self._yield()
        self._data[(namespace, key)] = value
        self.write_count += 1
        return integrity_tag(value)

    async def put_if_absent(self, namespace: Namespace, key: str, value: str) -> bool:
        await self._yield()
        if (namespace, key) in self._data:
            return False
        self._data[(namespace, key)] = value
        self.write_count += 1
        return True

    async def delete(self, namespace: Namespace, key: str) -> None:
        await self._yield()
        if self._data.pop((namespace, key), None) is not None:
            self.write_count += 1

    async def list_keys(self, namespace: Namespace, prefix: str = "") -> list[StoredKey]:
        await self._yield()
        return [
            StoredKey(key=key, integrity_tag=integrity_tag(value))
            for (ns, key), value in sorted(self._data.items(), key=lambda item: item[0][1])
            if ns is namespace and key.startswith(prefix)
        ]

    def snapshot(self) -> dict[tuple[Namespace, str], str]:
        """Copy of the raw contents, for assertions."""
        return dict(self._data)


# ---------------------------------------------------------------------------
# Redis store
# ---------------------------------------------------------------------------


def _escape_glob(text: str) -> str:
    return "".join(f"\\{ch}" if ch in "*?[]\\" else ch for ch in text)


class RedisTranscriptStore(TranscriptStore):
    """Store backed by Redis.

    Values live at ``<root>:<namespace>:<key>``. Integrity tags are kept in
    one hash per namespace (``<root>:tags:<namespace>``) so listings never
    fetch bodies. Conditional puts use ``SET NX``.
    """

    def __init__(self, redis: RedisClient, key_prefix: str = "voicelog") -> None:
        self._redis = redis
        self._root = key_prefix

    def _key(self, namespace: Namespace, key: str) -> str:
        return f"{self._root}:{namespace.value}:{key}"

    def _tags_key(self, namespace: Namespace) -> str:
        return f"{self._root}:tags:{namespace.value}"

    async def get(self, namespace: Namespace, key: str) -> str | None:
        return await self._redis.get(self._key(namespace, key))

    async def set(self, namespace: Namespace, key: str, value: str) -> str:
        tag = integrity_tag(value)
        await self._redis.set(self._key(namespace, key), value)
        await self._redis.hset(self._tags_key(namespace), key, tag)
        return tag

    async def put_if_absent(self, namespace: Namespace, key: str, value: str) -> bool:
        created = await self._redis.set_if_absent(self._key(namespace, key), value)
        if created:
            await self._redis.hset(self._tags_key(namespace), key, integrity_tag(value))
        return created

    async def delete(self, namespace: Namespace, key: str) -> None:
        await self._redis.delete(self._key(namespace, key))
        await self._redis.hdel(self._tags_key(namespace), key)

    async def list_keys(self, namespace: Namespace, prefix: str = "") -> list[StoredKey]:
        base = f"{self._root}:{namespace.value}:"
        raw_keys = await self._redis.scan_keys(f"{_escape_glob(base + prefix)}*")
        keys = sorted(raw[len(base):] for raw in raw_keys)
        tags = await self._redis.hmget(self._tags_key(namespace), keys)
        return [StoredKey(key=key, integrity_tag=tag) for key, tag in zip(keys, tags)]
