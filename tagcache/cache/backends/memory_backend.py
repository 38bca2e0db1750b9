"""In-memory cache backend."""

import time
from typing import Optional, Any, Callable, Dict, List
from dataclasses import dataclass

from tagcache.cache.backends.base import CacheBackend, encode_value, decode_value, validate_ttl
from tagcache.core.errors import CacheError


@dataclass
class CacheEntry:
    """A stored cache entry with optional expiration.

    Timestamps come from the owning backend's monotonic clock.
    """

    key: str
    value: str  # serialized payload
    created_at: float
    expires_at: Optional[float] = None

    def is_expired(self, now: float) -> bool:
        """Check if the entry has expired at ``now``."""
        if self.expires_at is None:
            return False
        return now >= self.expires_at


class MemoryBackend(CacheBackend):
    """In-memory cache backend.

    Mimics the Redis backend for single-process deployments, tests and
    local development. Expiry is checked lazily on access, so an expired
    entry stays in storage until the next read of that key (or a sweep).

    Features:
    - Lazy TTL expiry against an injectable monotonic clock
    - JSON serialization boundary identical to the Redis backend
    - Optional key prefix for namespace isolation
    """

    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        key_prefix: Optional[str] = None,
    ):
        """Initialize memory backend.

        Args:
            clock: Monotonic time source in seconds (override in tests).
            key_prefix: Optional namespace prepended to every key.
        """
        self._storage: Dict[str, CacheEntry] = {}
        self._enabled = False
        self._clock = clock
        self._key_prefix = key_prefix
        self.evictions = 0

    @property
    def enabled(self) -> bool:
        """Check if the backend is enabled."""
        return self._enabled

    async def connect(self) -> None:
        """Enable the cache backend."""
        self._enabled = True

    async def disconnect(self) -> None:
        """Disable the cache backend and clear storage."""
        self._enabled = False
        self._storage.clear()

    def _full_key(self, key: str) -> str:
        if self._key_prefix:
            return f"{self._key_prefix}:{key}"
        return key

    def _require_enabled(self, key: str, operation: str) -> None:
        if not self._enabled:
            raise CacheError("Memory backend is not connected", key=key, operation=operation)

    async def get(self, key: str) -> Optional[Any]:
        """Get a value from the cache."""
        self._require_enabled(key, "get")

        full_key = self._full_key(key)
        entry = self._storage.get(full_key)
        if entry is None:
            return None

        if entry.is_expired(self._clock()):
            del self._storage[full_key]
            self.evictions += 1
            return None

        return decode_value(entry.value, key)

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None
    ) -> None:
        """Set a value in the cache."""
        self._require_enabled(key, "set")
        validate_ttl(ttl)

        payload = encode_value(value, key)
        now = self._clock()
        expires_at = now + ttl if ttl is not None else None

        full_key = self._full_key(key)
        self._storage[full_key] = CacheEntry(
            key=full_key, value=payload, created_at=now, expires_at=expires_at
        )

    async def delete(self, key: str) -> None:
        """Delete a key from the cache."""
        self._require_enabled(key, "delete")
        self._storage.pop(self._full_key(key), None)

    async def exists(self, key: str) -> bool:
        """Check if a key exists in the cache."""
        self._require_enabled(key, "exists")

        full_key = self._full_key(key)
        entry = self._storage.get(full_key)
        if entry is None:
            return False

        if entry.is_expired(self._clock()):
            del self._storage[full_key]
            self.evictions += 1
            return False

        return True

    async def remaining_ttl(self, key: str) -> Optional[float]:
        """Seconds left before the entry expires."""
        self._require_enabled(key, "ttl")

        entry = self._storage.get(self._full_key(key))
        if entry is None:
            return 0.0
        if entry.expires_at is None:
            return None
        return max(0.0, entry.expires_at - self._clock())

    async def clear_all(self) -> None:
        """Clear all keys from the cache."""
        self._storage.clear()

    def sweep_expired(self) -> int:
        """Remove every expired entry now instead of waiting for reads.

        Returns:
            Number of entries removed.
        """
        now = self._clock()
        expired_keys = [
            key for key, entry in self._storage.items()
            if entry.is_expired(now)
        ]
        for key in expired_keys:
            del self._storage[key]
        self.evictions += len(expired_keys)
        return len(expired_keys)

    # Testing utilities

    def get_all_keys(self) -> List[str]:
        """Get all stored keys, including expired ones not yet evicted."""
        return list(self._storage.keys())

    def get_raw_entry(self, key: str) -> Optional[CacheEntry]:
        """Get a raw cache entry without expiry checks (testing utility)."""
        return self._storage.get(self._full_key(key))
