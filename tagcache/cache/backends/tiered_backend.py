"""Two-tier backend: an in-process near cache in front of a shared far cache."""

from typing import Optional, Any

from tagcache.cache.backends.base import CacheBackend
from tagcache.cache.backends.memory_backend import MemoryBackend
from tagcache.core.errors import CacheError
from tagcache.core.logging import get_logger

logger = get_logger(__name__)


class TieredBackend(CacheBackend):
    """Near/far backend composition.

    Reads hit the near tier first and fall back to the far tier, backfilling
    the near tier with at most ``near_ttl`` seconds so other processes'
    writes become visible quickly. Writes, deletes and clears go to both
    tiers; the far tier is authoritative for errors.
    """

    def __init__(
        self,
        far: CacheBackend,
        near: Optional[MemoryBackend] = None,
        near_ttl: int = 5,
    ):
        """Initialize tiered backend.

        Args:
            far: Shared backend (usually RedisBackend).
            near: In-process backend. Defaults to a fresh MemoryBackend.
            near_ttl: Maximum lifetime of near-tier entries in seconds.
        """
        self.far = far
        self.near = near or MemoryBackend()
        self.near_ttl = near_ttl

    @property
    def enabled(self) -> bool:
        """Enabled when the far tier is; the near tier is only an optimisation."""
        return self.far.enabled

    async def connect(self) -> None:
        await self.near.connect()
        await self.far.connect()

    async def disconnect(self) -> None:
        await self.near.disconnect()
        await self.far.disconnect()

    def _near_ttl(self, ttl: Optional[float]) -> float:
        if ttl is None:
            return self.near_ttl
        return min(ttl, self.near_ttl)

    async def get(self, key: str) -> Optional[Any]:
        """Get from the near tier, then the far tier with near backfill.

        The backfill never outlives the far entry, so a near copy cannot be
        served after the shared entry's expiry.
        """
        value = await self.near.get(key)
        if value is not None:
            return value

        value = await self.far.get(key)
        if value is None:
            return None

        try:
            remaining = await self.far.remaining_ttl(key)
        except CacheError as e:
            logger.warning(f"Could not read remaining TTL for key {key}, skipping near backfill: {e}")
            return value

        if remaining is None or remaining > 0:
            await self.near.set(key, value, self._near_ttl(remaining))
        return value

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None
    ) -> None:
        """Write the far tier first, then the near tier."""
        try:
            await self.far.set(key, value, ttl)
        except CacheError:
            # A stale near copy must not outlive a failed shared write.
            await self.near.delete(key)
            raise
        await self.near.set(key, value, self._near_ttl(ttl))

    async def delete(self, key: str) -> None:
        await self.near.delete(key)
        await self.far.delete(key)

    async def exists(self, key: str) -> bool:
        if await self.near.exists(key):
            return True
        return await self.far.exists(key)

    async def remaining_ttl(self, key: str) -> Optional[float]:
        """The far tier's remaining TTL; it is authoritative for expiry."""
        return await self.far.remaining_ttl(key)

    async def clear_all(self) -> None:
        await self.near.clear_all()
        await self.far.clear_all()
