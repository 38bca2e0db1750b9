"""Redis cache backend implementation."""

from typing import Optional, Any, List
from datetime import timedelta

import redis.asyncio as redis
from redis.exceptions import RedisError

from tagcache.cache.backends.base import CacheBackend, encode_value, decode_value, validate_ttl
from tagcache.core.config import settings
from tagcache.core.errors import CacheError
from tagcache.core.logging import get_logger

logger = get_logger(__name__)

# Keys unlinked per round-trip when clearing a prefixed namespace.
CLEAR_CHUNK_SIZE = 500


class RedisBackend(CacheBackend):
    """Redis-based cache backend.

    Expiry is delegated to Redis (``SETEX``), so an expired key is simply
    absent on the next ``GET``. Failures surface as ``CacheError`` so the
    caller can fall back to the origin.

    When ``key_prefix`` is set every key is stored as ``{prefix}:{key}`` and
    ``clear_all`` only removes that namespace (SCAN + batched UNLINK)
    instead of flushing the whole database.
    """

    def __init__(
        self,
        redis_url: Optional[str] = None,
        client: Optional[redis.Redis] = None,
        key_prefix: Optional[str] = None,
    ):
        """Initialize Redis backend.

        Args:
            redis_url: Redis connection URL. If not provided, uses settings.redis_url.
            client: Pre-built client (dependency injection, tests).
            key_prefix: Optional namespace for multi-tenant isolation.
        """
        self._redis_url = redis_url or settings.redis_url
        self._client: Optional[redis.Redis] = client
        self._key_prefix = key_prefix
        self._enabled = False

    @property
    def enabled(self) -> bool:
        """Check if Redis is enabled and connected."""
        return self._enabled and self._client is not None

    @property
    def client(self) -> Optional[redis.Redis]:
        """Get the Redis client (for advanced operations)."""
        return self._client

    async def connect(self) -> None:
        """Connect to Redis.

        A failed connection leaves the backend disabled; every operation then
        raises ``CacheError`` and callers degrade to the origin.
        """
        if self._client is None:
            if not self._redis_url:
                logger.info("Redis URL not configured, cache disabled")
                self._enabled = False
                return
            self._client = redis.from_url(
                self._redis_url,
                encoding="utf-8",
                decode_responses=True
            )

        try:
            await self._client.ping()
            self._enabled = True
            logger.info("Connected to Redis cache")
        except (RedisError, OSError) as e:
            logger.error(f"Failed to connect to Redis: {e}")
            self._enabled = False

    async def disconnect(self) -> None:
        """Disconnect from Redis."""
        if self._client:
            await self._client.aclose()
            self._client = None
            self._enabled = False
            logger.info("Disconnected from Redis cache")

    def _full_key(self, key: str) -> str:
        if self._key_prefix:
            return f"{self._key_prefix}:{key}"
        return key

    def _require_enabled(self, key: Optional[str], operation: str) -> None:
        if not self.enabled:
            raise CacheError("Redis backend is not connected", key=key, operation=operation)

    async def get(self, key: str) -> Optional[Any]:
        """Get a value from Redis."""
        self._require_enabled(key, "get")

        try:
            value = await self._client.get(self._full_key(key))
        except (RedisError, OSError) as e:
            logger.error(f"Redis GET error for key {key}: {e}")
            raise CacheError(f"Redis GET failed: {e}", key=key, operation="get") from e
        except UnicodeDecodeError as e:
            # decode_responses=True makes the client decode; a non-UTF-8 payload is corrupt.
            logger.error(f"Redis GET returned undecodable payload for key {key}: {e}")
            raise CacheError(f"Corrupted cache payload: {e}", key=key, operation="get") from e

        if value is None:
            return None
        return decode_value(value, key)

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None
    ) -> None:
        """Set a value in Redis."""
        self._require_enabled(key, "set")
        validate_ttl(ttl)

        serialized = encode_value(value, key)
        try:
            if ttl is not None:
                await self._client.setex(
                    self._full_key(key),
                    timedelta(seconds=ttl),
                    serialized
                )
            else:
                await self._client.set(self._full_key(key), serialized)
        except (RedisError, OSError) as e:
            logger.error(f"Redis SET error for key {key}: {e}")
            raise CacheError(f"Redis SET failed: {e}", key=key, operation="set") from e

    async def delete(self, key: str) -> None:
        """Delete a key from Redis."""
        self._require_enabled(key, "delete")

        try:
            await self._client.delete(self._full_key(key))
        except (RedisError, OSError) as e:
            logger.error(f"Redis DELETE error for key {key}: {e}")
            raise CacheError(f"Redis DELETE failed: {e}", key=key, operation="delete") from e

    async def exists(self, key: str) -> bool:
        """Check if a key exists in Redis."""
        self._require_enabled(key, "exists")

        try:
            return await self._client.exists(self._full_key(key)) > 0
        except (RedisError, OSError) as e:
            logger.error(f"Redis EXISTS error for key {key}: {e}")
            raise CacheError(f"Redis EXISTS failed: {e}", key=key, operation="exists") from e

    async def remaining_ttl(self, key: str) -> Optional[float]:
        """Seconds left before the key expires, from ``PTTL``."""
        self._require_enabled(key, "ttl")

        try:
            millis = await self._client.pttl(self._full_key(key))
        except (RedisError, OSError) as e:
            logger.error(f"Redis PTTL error for key {key}: {e}")
            raise CacheError(f"Redis PTTL failed: {e}", key=key, operation="ttl") from e

        # -2: no such key, -1: no expiry
        if millis == -2:
            return 0.0
        if millis == -1:
            return None
        return max(0.0, millis / 1000)

    async def clear_all(self) -> None:
        """Clear this backend's keys (prefixed namespace) or the whole database."""
        self._require_enabled(None, "clear")

        try:
            if self._key_prefix:
                deleted = await self._unlink_matching(f"{self._key_prefix}:*")
                logger.info(f"Cleared {deleted} Redis cache entries under {self._key_prefix!r}")
            else:
                await self._client.flushdb()
                logger.info("Cleared all Redis cache entries")
        except (RedisError, OSError) as e:
            logger.error(f"Redis clear error: {e}")
            raise CacheError(f"Redis clear failed: {e}", operation="clear") from e

    async def _unlink_matching(self, pattern: str) -> int:
        """UNLINK all keys matching ``pattern`` in chunks, using SCAN (non-blocking)."""
        deleted = 0
        chunk: List[str] = []
        async for key in self._client.scan_iter(match=pattern):
            chunk.append(key)
            if len(chunk) >= CLEAR_CHUNK_SIZE:
                deleted += int(await self._client.unlink(*chunk) or 0)
                chunk = []
        if chunk:
            deleted += int(await self._client.unlink(*chunk) or 0)
        return deleted
