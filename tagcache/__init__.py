"""tagcache: a tag-addressable asyncio cache with write-through and write-behind."""

from tagcache.cache import (
    InvalidationMode,
    MemoryBackend,
    RedisBackend,
    TaggedCache,
    TieredBackend,
    TTLProfileName,
    build_key,
)
from tagcache.core.container import CacheContainer, get_container
from tagcache.core.errors import (
    CacheError,
    ConfigurationError,
    InvalidKeyError,
    InvalidTagError,
    InvalidTTLError,
    QueueFullError,
    TagCacheError,
    UnknownProfileError,
)
from tagcache.core.lifecycle import cache_lifespan

__version__ = "0.1.0"

__all__ = [
    "CacheContainer",
    "CacheError",
    "ConfigurationError",
    "InvalidKeyError",
    "InvalidTagError",
    "InvalidTTLError",
    "InvalidationMode",
    "MemoryBackend",
    "QueueFullError",
    "RedisBackend",
    "TTLProfileName",
    "TagCacheError",
    "TaggedCache",
    "TieredBackend",
    "UnknownProfileError",
    "build_key",
    "cache_lifespan",
    "get_container",
]
