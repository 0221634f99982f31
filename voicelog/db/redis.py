"""Redis async client backing the transcript store.

Provides helper methods wrapping raw Redis commands so callers never need
to handle redis.exceptions directly. All connection/command errors are
caught and re-raised as StoreUnavailableError.
"""

import structlog
from redis.asyncio import Redis
from redis.asyncio import from_url as redis_from_url
from redis.exceptions import RedisError

from voicelog.core.config import settings
from voicelog.core.exceptions import StoreUnavailableError

logger = structlog.get_logger(__name__)

_client: Redis = redis_from_url(
    settings.redis_url,
    decode_responses=True,
    encoding="utf-8",
)


# ---------------------------------------------------------------------------
# Accessor
# ---------------------------------------------------------------------------

async def get_redis() -> "RedisClient":
    """Return the singleton RedisClient wrapper."""
    return RedisClient(_client)


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

async def close_redis() -> None:
    """Gracefully close the Redis connection pool."""
    logger.info("redis_shutdown")
    await _client.aclose()


# ---------------------------------------------------------------------------
# Helper wrapper
# ---------------------------------------------------------------------------

class RedisClient:
    """Thin wrapper over redis.asyncio.Redis with typed helpers.

    Every public method catches RedisError and re-raises as
    StoreUnavailableError so the API layer gets a structured error.
    """

    def __init__(self, client: Redis) -> None:
        self._r = client

    async def get(self, key: str) -> str | None:
        """GET a key. Returns None if the key does not exist."""
        try:
            return await self._r.get(name=key)
        except RedisError as e:
            logger.error("redis_get_failed", key=key, error=str(e))
            raise StoreUnavailableError(f"Redis GET failed: {e}") from e

    async def set(self, key: str, value: str) -> None:
        """SET a key without expiry."""
        try:
            await self._r.set(name=key, value=value)
        except RedisError as e:
            logger.error("redis_set_failed", key=key, error=str(e))
            raise StoreUnavailableError(f"Redis SET failed: {e}") from e

    async def set_if_absent(self, key: str, value: str) -> bool:
        """SET NX. Returns True only if this call created the key."""
        try:
            return bool(await self._r.set(name=key, value=value, nx=True))
        except RedisError as e:
            logger.error("redis_setnx_failed", key=key, error=str(e))
            raise StoreUnavailableError(f"Redis SET NX failed: {e}") from e

    async def delete(self, key: str) -> None:
        """DEL a key."""
        try:
            await self._r.delete(key)
        except RedisError as e:
            logger.error("redis_delete_failed", key=key, error=str(e))
            raise StoreUnavailableError(f"Redis DEL failed: {e}") from e

    async def scan_keys(self, match: str, count: int = 500) -> list[str]:
        """SCAN the keyspace for keys matching a glob pattern."""
        try:
            return [key async for key in self._r.scan_iter(match=match, count=count)]
        except RedisError as e:
            logger.error("redis_scan_failed", match=match, error=str(e))
            raise StoreUnavailableError(f"Redis SCAN failed: {e}") from e

    async def hset(self, key: str, field: str, value: str) -> None:
        """HSET a single hash field."""
        try:
            await self._r.hset(name=key, key=field, value=value)
        except RedisError as e:
            logger.error("redis_hset_failed", key=key, field=field, error=str(e))
            raise StoreUnavailableError(f"Redis HSET failed: {e}") from e

    async def hdel(self, key: str, field: str) -> None:
        """HDEL a single hash field."""
        try:
            await self._r.hdel(key, field)
        except RedisError as e:
            logger.error("redis_hdel_failed", key=key, field=field, error=str(e))
            raise StoreUnavailableError(f"Redis HDEL failed: {e}") from e

    async def hmget(self, key: str, fields: list[str]) -> list[str | None]:
        """HMGET: values for ``fields`` in order, None where missing."""
        if not fields:
            return []
        try:
            return await self._r.hmget(name=key, keys=fields)
        except RedisError as e:
            logger.error("redis_hmget_failed", key=key, error=str(e))
            raise StoreUnavailableError(f"Redis HMGET failed: {e}") from e
