"""
Tagged cache facade.

One entry point over the adapter, write strategies, invalidation and TTL
profiles:
- read-through ``fetch`` with stale-while-revalidate
- write-through and write-behind writes that tag what they store
- group invalidation by tag (immediate or deferred)

Backend failures never reach callers of ``get``/``fetch``: they degrade to
a cache miss and are logged.
"""

import asyncio
import time
from typing import Any, Awaitable, Callable, Dict, FrozenSet, Iterable, Optional, Tuple, TypeVar, Union

from tagcache.cache.backends.base import CacheBackend
from tagcache.cache.instrumented import InstrumentedBackend
from tagcache.cache.invalidation import InvalidationMode, InvalidationService, validate_tag
from tagcache.cache.key_builder import CacheKeyBuilder, Segment
from tagcache.cache.metrics import MetricsCollector
from tagcache.cache.ttl_policy import TTLPolicy, TTLProfile, TTLProfileName
from tagcache.cache.write_strategies import (
    WriteBehindStrategy,
    WriteFn,
    WriteThroughStrategy,
    invoke,
)
from tagcache.core.errors import CacheError
from tagcache.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
Loader = Callable[[], Union[Awaitable[Any], Any]]
ProfileRef = Union[TTLProfile, TTLProfileName, str]


class TaggedCache:
    """Tag-addressable cache in front of an authoritative origin.

    Usage:
        cache = TaggedCache(backend, namespace="shop")
        key = cache.key("products", 42)

        product = await cache.fetch(
            key, lambda: repo.load(42), profile="hours", tags=["products", "products:42"]
        )

        await cache.write_through(key, lambda: repo.save(product), tags=["products"])
        await cache.invalidate_by_tag("products")
    """

    def __init__(
        self,
        backend: CacheBackend,
        namespace: str = "app",
        policy: Optional[TTLPolicy] = None,
        invalidation: Optional[InvalidationService] = None,
        write_behind: Optional[WriteBehindStrategy] = None,
        metrics: Optional[MetricsCollector] = None,
        default_ttl: Optional[int] = None,
        max_key_length: int = CacheKeyBuilder.MAX_KEY_LENGTH,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the facade.

        Args:
            backend: Cache adapter. Wrapped in InstrumentedBackend unless it
                already is one.
            namespace: Namespace used by ``key()``.
            policy: TTL profile registry. Defaults to the built-in profiles.
            invalidation: Tag index owner. Created over the backend if omitted.
            write_behind: Write-behind strategy. Created over the backend if omitted.
            metrics: Collector for the instrumented backend.
            default_ttl: TTL used when neither ``ttl`` nor ``profile`` is given.
            max_key_length: Whole-key limit for ``key()``.
            clock: Monotonic time source for revalidation deadlines.
        """
        if isinstance(backend, InstrumentedBackend):
            self.backend = backend
        else:
            self.backend = InstrumentedBackend(backend, metrics)

        self.namespace = namespace
        self.policy = policy or TTLPolicy()
        self.invalidation = invalidation or InvalidationService(self.backend)
        self.write_through_strategy = WriteThroughStrategy(self.backend)
        self.write_behind_strategy = write_behind or WriteBehindStrategy(self.backend)
        self.default_ttl = default_ttl
        self.max_key_length = max_key_length
        self._clock = clock

        # key -> monotonic time after which a read triggers a refresh
        self._revalidate_at: Dict[str, float] = {}
        self._refreshing: Dict[str, asyncio.Task] = {}

    @property
    def metrics(self) -> MetricsCollector:
        """Per-key hit/miss/error statistics."""
        return self.backend.metrics

    @property
    def enabled(self) -> bool:
        return self.backend.enabled

    def key(self, *segments: Segment) -> str:
        """Build a key in this cache's namespace."""
        return CacheKeyBuilder.build_key(
            self.namespace, *segments, max_length=self.max_key_length
        )

    # =========================================================================
    # Reads
    # =========================================================================

    async def get(self, key: str) -> Optional[Any]:
        """Get a cached value, or None on miss or backend failure.

        An entry marked stale by deferred invalidation is returned one last
        time and evicted.
        """
        return await self._read(key)

    async def fetch(
        self,
        key: str,
        loader: Loader,
        ttl: Optional[int] = None,
        profile: Optional[ProfileRef] = None,
        tags: Iterable[str] = (),
    ) -> Any:
        """Read-through get.

        Hit: the cached value; past the profile's revalidate point (or after a
        deferred invalidation) it is still returned while a background refresh
        reloads it. Miss: ``await loader()``, cache and tag the result.

        Raises:
            Exception: Whatever ``loader`` raises on a miss.
        """
        tags = self._validate_tags(tags)
        value = await self._read(key, loader=loader, ttl=ttl, profile=profile, tags=tags)
        if value is not None:
            return value

        result = await invoke(loader)
        if result is not None:
            await self.set(key, result, ttl=ttl, tags=tags, profile=profile)
        return result

    async def _read(
        self,
        key: str,
        loader: Optional[Loader] = None,
        ttl: Optional[int] = None,
        profile: Optional[ProfileRef] = None,
        tags: Iterable[str] = (),
    ) -> Optional[Any]:
        try:
            value = await self.backend.get(key)
        except CacheError as e:
            logger.warning(f"Cache read failed for key {key}, treating as miss: {e}")
            return None

        if value is None:
            self._revalidate_at.pop(key, None)
            return None

        if self.invalidation.is_stale(key):
            await self._evict_stale(key)
            if loader is not None:
                self._schedule_refresh(key, loader, ttl, profile, tags)
            return value

        deadline = self._revalidate_at.get(key)
        if deadline is not None and self._clock() >= deadline and loader is not None:
            self._schedule_refresh(key, loader, ttl, profile, tags)

        return value

    async def _evict_stale(self, key: str) -> None:
        try:
            await self.backend.delete(key)
        except CacheError as e:
            # Still marked, so the next read tries again.
            logger.warning(f"Could not evict stale key {key}: {e}")
            return
        self.invalidation.clear_stale(key)
        self._revalidate_at.pop(key, None)

    def _schedule_refresh(
        self,
        key: str,
        loader: Loader,
        ttl: Optional[int],
        profile: Optional[ProfileRef],
        tags: Iterable[str],
    ) -> None:
        if key in self._refreshing:
            return
        task = asyncio.create_task(self._refresh(key, loader, ttl, profile, tuple(tags)))
        self._refreshing[key] = task

    async def _refresh(
        self,
        key: str,
        loader: Loader,
        ttl: Optional[int],
        profile: Optional[ProfileRef],
        tags: Iterable[str],
    ) -> None:
        try:
            result = await invoke(loader)
            if result is not None:
                await self.set(key, result, ttl=ttl, tags=tags, profile=profile)
            logger.debug(f"Background refresh completed for key {key}")
        except Exception as e:
            logger.error(f"Background refresh failed for key {key}: {e}")
        finally:
            self._refreshing.pop(key, None)

    async def wait_for_refreshes(self) -> None:
        """Await every background refresh currently running."""
        tasks = list(self._refreshing.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # =========================================================================
    # Writes
    # =========================================================================

    @staticmethod
    def _validate_tags(tags: Iterable[str]) -> Tuple[str, ...]:
        return tuple(validate_tag(tag) for tag in tags)

    def _resolve_profile(self, profile: Optional[ProfileRef]) -> Optional[TTLProfile]:
        if profile is None:
            return None
        if isinstance(profile, TTLProfile):
            return profile
        return self.policy.resolve(profile)

    def _effective_ttl(self, ttl: Optional[int], resolved: Optional[TTLProfile]) -> Optional[int]:
        if ttl is not None:
            return ttl
        if resolved is not None:
            return resolved.expire
        return self.default_ttl

    def _track(self, key: str, resolved: Optional[TTLProfile], tags: Iterable[str]) -> None:
        # Only revalidate and expire drive reads; stale is advisory.
        if resolved is not None:
            self._revalidate_at[key] = self._clock() + resolved.revalidate
        else:
            self._revalidate_at.pop(key, None)
        self.invalidation.clear_stale(key)
        if tags:
            self.invalidation.tag(key, *tags)

    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None,
        tags: Iterable[str] = (),
        profile: Optional[ProfileRef] = None,
    ) -> bool:
        """Store a value.

        Args:
            key: Cache key.
            value: JSON-compatible value or bytes.
            ttl: Explicit TTL in seconds; wins over ``profile``.
            tags: Tags to associate with the key.
            profile: TTL profile (name, enum or TTLProfile). Its ``expire``
                becomes the backend TTL and its ``revalidate`` the point after
                which ``fetch`` refreshes in the background.

        Returns:
            True if stored, False if the backend failed (logged).

        Raises:
            UnknownProfileError: If ``profile`` names no registered profile.
            InvalidTTLError: If ``ttl`` is not positive.
            InvalidTagError: If a tag is invalid.
        """
        tags = self._validate_tags(tags)
        resolved = self._resolve_profile(profile)
        try:
            await self.backend.set(key, value, self._effective_ttl(ttl, resolved))
        except CacheError as e:
            logger.warning(f"Cache write failed for key {key}: {e}")
            return False

        self._track(key, resolved, tags)
        return True

    async def delete(self, key: str) -> bool:
        """Delete a key and drop it from the tag index. Idempotent."""
        try:
            await self.backend.delete(key)
        except CacheError as e:
            logger.warning(f"Cache delete failed for key {key}: {e}")
            return False

        self.invalidation.forget(key)
        self._revalidate_at.pop(key, None)
        return True

    async def clear(self) -> bool:
        """Drop every entry, tag and revalidation deadline."""
        try:
            await self.backend.clear_all()
        except CacheError as e:
            logger.error(f"Cache clear failed: {e}")
            return False

        self.invalidation.reset()
        self._revalidate_at.clear()
        logger.info("Cache cleared")
        return True

    async def write_through(
        self,
        key: str,
        write_fn: Callable[[], Union[Awaitable[T], T]],
        ttl: Optional[int] = None,
        tags: Iterable[str] = (),
        profile: Optional[ProfileRef] = None,
    ) -> T:
        """Write to the origin, then cache and tag its result.

        Raises:
            Exception: Whatever ``write_fn`` raises; nothing is cached.
        """
        tags = self._validate_tags(tags)
        resolved = self._resolve_profile(profile)
        result = await self.write_through_strategy.write(
            key, write_fn, self._effective_ttl(ttl, resolved)
        )
        self._track(key, resolved, tags)
        return result

    async def write_behind(
        self,
        key: str,
        value: Any,
        write_fn: WriteFn,
        ttl: Optional[int] = None,
        tags: Iterable[str] = (),
        profile: Optional[ProfileRef] = None,
    ) -> None:
        """Cache ``value`` now and queue ``write_fn`` for the origin.

        Raises:
            QueueFullError: If the write queue is still full after a flush.
        """
        tags = self._validate_tags(tags)
        resolved = self._resolve_profile(profile)
        await self.write_behind_strategy.write(
            key, value, write_fn, self._effective_ttl(ttl, resolved)
        )
        self._track(key, resolved, tags)

    async def flush_all(self) -> int:
        """Force every pending write-behind item to the origin."""
        return await self.write_behind_strategy.flush_all()

    # =========================================================================
    # Invalidation
    # =========================================================================

    async def invalidate_by_tag(
        self,
        tag: str,
        mode: Union[InvalidationMode, str] = InvalidationMode.IMMEDIATE,
    ) -> int:
        """Invalidate every key tagged with ``tag``.

        Returns:
            Number of keys affected.
        """
        keys = self.invalidation.index.keys_for(tag)
        affected = await self.invalidation.invalidate_by_tag(tag, mode)
        if InvalidationMode(mode) is InvalidationMode.IMMEDIATE:
            for key in keys:
                if not self.invalidation.is_stale(key):
                    self._revalidate_at.pop(key, None)
        return affected

    def tags_for(self, key: str) -> FrozenSet[str]:
        """Tags currently associated with ``key``."""
        return self.invalidation.index.tags_for(key)
