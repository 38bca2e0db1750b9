"""Dependency container for the cache object graph.

Builds the backend, metrics, TTL policy, tag index, write-behind strategy
and TaggedCache facade from Settings, and owns their lifecycle.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable, Optional, TYPE_CHECKING

from tagcache.core.errors import ConfigurationError, ServiceNotInitializedError
from tagcache.core.logging import get_logger

if TYPE_CHECKING:
    from tagcache.cache.backends.base import CacheBackend
    from tagcache.cache.metrics import MetricsCollector
    from tagcache.cache.tagged_cache import TaggedCache
    from tagcache.cache.write_strategies import WriteBehindStrategy
    from tagcache.core.config import Settings

logger = get_logger(__name__)

BACKEND_CHOICES = ("memory", "redis", "tiered")


def build_backend(
    settings: Settings, clock: Callable[[], float] = time.monotonic
) -> CacheBackend:
    """Construct the configured backend (not yet connected).

    Raises:
        ConfigurationError: If ``cache_backend`` is not a known choice.
    """
    from tagcache.cache.backends import MemoryBackend, RedisBackend, TieredBackend

    choice = settings.cache_backend.lower()
    if choice == "memory":
        return MemoryBackend(clock=clock, key_prefix=settings.redis_key_prefix)
    if choice == "redis":
        return RedisBackend(redis_url=settings.redis_url, key_prefix=settings.redis_key_prefix)
    if choice == "tiered":
        far = RedisBackend(redis_url=settings.redis_url, key_prefix=settings.redis_key_prefix)
        return TieredBackend(far, MemoryBackend(clock=clock), near_ttl=settings.near_cache_ttl)

    raise ConfigurationError(
        f"Unknown cache backend {settings.cache_backend!r}, expected one of {BACKEND_CHOICES}",
        setting="cache_backend",
    )


@dataclass
class CacheContainer:
    """Container owning the cache services.

    Services are accessed through properties that raise
    ServiceNotInitializedError before ``initialize()``.

    Usage:
        container = CacheContainer()
        await container.initialize(settings)

        cache = container.cache
        await cache.fetch(key, loader)

        # Cleanup (final write-behind flush, then disconnect)
        await container.shutdown()
    """

    _backend: Optional[CacheBackend] = field(default=None, repr=False)
    _metrics: Optional[MetricsCollector] = field(default=None, repr=False)
    _write_behind: Optional[WriteBehindStrategy] = field(default=None, repr=False)
    _cache: Optional[TaggedCache] = field(default=None, repr=False)
    _initialized: bool = field(default=False, repr=True)
    _settings: Optional[Settings] = field(default=None, repr=False)
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    async def initialize(self, settings: Settings, start_flusher: bool = True) -> None:
        """Build, connect and start all services.

        Args:
            settings: Cache settings.
            start_flusher: Start the background write-behind task.

        Raises:
            TagCacheError: If settings are invalid.
        """
        if self._initialized:
            logger.warning("Container already initialized, skipping")
            return

        self._settings = settings
        logger.info("Initializing cache container...")

        try:
            # Import here to avoid circular imports
            from tagcache.cache.instrumented import InstrumentedBackend
            from tagcache.cache.metrics import MetricsCollector
            from tagcache.cache.tagged_cache import TaggedCache
            from tagcache.cache.ttl_policy import TTLPolicy
            from tagcache.cache.write_strategies import WriteBehindStrategy, WriteQueue

            policy = TTLPolicy(settings.ttl_profiles)

            if self._backend is None:
                self._backend = build_backend(settings, self.clock)
            await self._backend.connect()
            if self._backend.enabled:
                logger.info(f"Cache backend '{settings.cache_backend}' connected")
            else:
                logger.warning(
                    f"Cache backend '{settings.cache_backend}' unavailable, reads will miss"
                )

            self._metrics = self._metrics or MetricsCollector()
            instrumented = InstrumentedBackend(self._backend, self._metrics)

            self._write_behind = WriteBehindStrategy(
                instrumented,
                WriteQueue(settings.write_behind_max_queue_size),
                flush_interval=settings.write_behind_flush_interval,
                max_retries=settings.write_behind_max_retries,
                retry_base_delay=settings.write_behind_retry_base_delay,
                retry_max_delay=settings.write_behind_retry_max_delay,
                clock=self.clock,
            )

            self._cache = TaggedCache(
                instrumented,
                namespace=settings.cache_namespace,
                policy=policy,
                write_behind=self._write_behind,
                default_ttl=settings.default_ttl,
                max_key_length=settings.max_key_length,
                clock=self.clock,
            )

            if start_flusher:
                self._write_behind.start()

            self._initialized = True
            logger.info("Cache container initialized successfully")

        except Exception as e:
            logger.error(f"Failed to initialize cache container: {e}")
            await self.shutdown()
            raise

    async def shutdown(self) -> None:
        """Stop the flusher (final flush) and disconnect the backend."""
        logger.info("Shutting down cache container...")

        if self._write_behind:
            try:
                await self._write_behind.stop()
                logger.info("Write-behind flusher stopped")
            except Exception as e:
                logger.error(f"Error stopping write-behind flusher: {e}")

        if self._cache:
            await self._cache.wait_for_refreshes()

        if self._backend:
            try:
                await self._backend.disconnect()
                logger.info("Cache backend disconnected")
            except Exception as e:
                logger.error(f"Error disconnecting cache backend: {e}")

        self._cache = None
        self._write_behind = None
        self._initialized = False
        logger.info("Cache container shut down")

    @property
    def is_initialized(self) -> bool:
        """Check if the container is initialized."""
        return self._initialized

    @property
    def settings(self) -> Settings:
        """Get cache settings."""
        if self._settings is None:
            raise ServiceNotInitializedError("settings")
        return self._settings

    @property
    def backend(self) -> CacheBackend:
        """Get the raw (uninstrumented) backend."""
        if self._backend is None:
            raise ServiceNotInitializedError("backend")
        return self._backend

    @property
    def metrics(self) -> MetricsCollector:
        """Get the metrics collector."""
        if self._metrics is None:
            raise ServiceNotInitializedError("metrics")
        return self._metrics

    @property
    def write_behind(self) -> WriteBehindStrategy:
        """Get the write-behind strategy."""
        if self._write_behind is None:
            raise ServiceNotInitializedError("write_behind")
        return self._write_behind

    @property
    def cache(self) -> TaggedCache:
        """Get the TaggedCache facade."""
        if self._cache is None:
            raise ServiceNotInitializedError("cache")
        return self._cache

    def set_backend(self, backend: CacheBackend) -> None:
        """Set the backend used by ``initialize()`` (for testing)."""
        self._backend = backend

    def set_metrics(self, metrics: MetricsCollector) -> None:
        """Set the metrics collector (for testing)."""
        self._metrics = metrics


# Module-level container instance
_container: Optional[CacheContainer] = None


def get_container() -> CacheContainer:
    """Get the global cache container instance.

    Raises:
        RuntimeError: If the container hasn't been created yet.
    """
    global _container
    if _container is None:
        raise RuntimeError(
            "Cache container not created. Call set_container() first "
            "or use cache_lifespan()."
        )
    return _container


def set_container(container: Optional[CacheContainer]) -> None:
    """Set (or clear, with None) the global cache container instance."""
    global _container
    _container = container


def create_container() -> CacheContainer:
    """Create a new, uninitialized container.

    Useful for isolated containers in tests.
    """
    return CacheContainer()
