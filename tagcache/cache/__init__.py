"""
Tag-addressable cache.

Layers, bottom up:
- backends: storage adapters (memory, Redis, tiered)
- key_builder: sanitised, namespaced keys
- ttl_policy: named freshness profiles
- metrics / instrumented: per-key hit and miss accounting
- write_strategies: write-through and write-behind
- invalidation: tag index and group invalidation
- tagged_cache: the facade tying them together

Usage:
    from tagcache.cache import TaggedCache, MemoryBackend

    backend = MemoryBackend()
    await backend.connect()
    cache = TaggedCache(backend, namespace="shop")

    key = cache.key("products", 42)
    product = await cache.fetch(key, load_product, profile="hours", tags=["products"])
"""

from tagcache.cache.backends import (
    CacheBackend,
    CacheEntry,
    MemoryBackend,
    RedisBackend,
    TieredBackend,
)
from tagcache.cache.instrumented import InstrumentedBackend
from tagcache.cache.invalidation import (
    InvalidationMode,
    InvalidationService,
    TagIndex,
    hierarchical_tags,
)
from tagcache.cache.key_builder import CacheKeyBuilder, build_key
from tagcache.cache.metrics import CacheStats, MetricsCollector
from tagcache.cache.tagged_cache import TaggedCache
from tagcache.cache.ttl_policy import DEFAULT_PROFILES, TTLPolicy, TTLProfile, TTLProfileName
from tagcache.cache.write_strategies import (
    PendingWrite,
    PendingWriteState,
    WriteBehindStrategy,
    WriteQueue,
    WriteQueueStats,
    WriteThroughStrategy,
)

__all__ = [
    # Facade
    "TaggedCache",
    # Backends
    "CacheBackend",
    "CacheEntry",
    "MemoryBackend",
    "RedisBackend",
    "TieredBackend",
    "InstrumentedBackend",
    # Keys
    "CacheKeyBuilder",
    "build_key",
    # TTL
    "DEFAULT_PROFILES",
    "TTLPolicy",
    "TTLProfile",
    "TTLProfileName",
    # Metrics
    "CacheStats",
    "MetricsCollector",
    # Writes
    "PendingWrite",
    "PendingWriteState",
    "WriteBehindStrategy",
    "WriteQueue",
    "WriteQueueStats",
    "WriteThroughStrategy",
    # Invalidation
    "InvalidationMode",
    "InvalidationService",
    "TagIndex",
    "hierarchical_tags",
]
