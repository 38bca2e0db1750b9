"""Cache backend implementations.

Provides different storage backends for the tag-addressable cache:
- MemoryBackend: In-process caching with lazy TTL expiry
- RedisBackend: Shared Redis-based caching with native expiry
- TieredBackend: Near in-memory tier in front of a far shared tier
"""

from tagcache.cache.backends.base import CacheBackend, encode_value, decode_value
from tagcache.cache.backends.memory_backend import MemoryBackend, CacheEntry
from tagcache.cache.backends.redis_backend import RedisBackend
from tagcache.cache.backends.tiered_backend import TieredBackend

__all__ = [
    "CacheBackend",
    "CacheEntry",
    "MemoryBackend",
    "RedisBackend",
    "TieredBackend",
    "encode_value",
    "decode_value",
]
