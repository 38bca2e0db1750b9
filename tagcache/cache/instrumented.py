"""Metrics decorator over any cache backend."""

from typing import Optional, Any

from tagcache.cache.backends.base import CacheBackend
from tagcache.cache.metrics import MetricsCollector
from tagcache.core.errors import CacheError


class InstrumentedBackend(CacheBackend):
    """Records hits, misses and errors for every operation on ``inner``.

    The wrapped backend stays unaware of metrics. Errors are recorded and
    re-raised unchanged so the contract seen by callers is identical.
    """

    def __init__(self, inner: CacheBackend, metrics: Optional[MetricsCollector] = None):
        self.inner = inner
        self.metrics = metrics or MetricsCollector()

    @property
    def enabled(self) -> bool:
        return self.inner.enabled

    async def connect(self) -> None:
        await self.inner.connect()

    async def disconnect(self) -> None:
        await self.inner.disconnect()

    async def get(self, key: str) -> Optional[Any]:
        try:
            value = await self.inner.get(key)
        except CacheError:
            self.metrics.record_error(key)
            raise

        if value is None:
            self.metrics.record_miss(key)
        else:
            self.metrics.record_hit(key)
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        try:
            await self.inner.set(key, value, ttl)
        except CacheError:
            self.metrics.record_error(key)
            raise

    async def delete(self, key: str) -> None:
        try:
            await self.inner.delete(key)
        except CacheError:
            self.metrics.record_error(key)
            raise

    async def exists(self, key: str) -> bool:
        try:
            return await self.inner.exists(key)
        except CacheError:
            self.metrics.record_error(key)
            raise

    async def remaining_ttl(self, key: str) -> Optional[float]:
        try:
            return await self.inner.remaining_ttl(key)
        except CacheError:
            self.metrics.record_error(key)
            raise

    async def clear_all(self) -> None:
        # Errors without a key are not attributable to a per-key counter.
        await self.inner.clear_all()
