"""Base interface for cache backends."""

import base64
import json
from abc import ABC, abstractmethod
from typing import Optional, Any

from tagcache.core.errors import CacheError, InvalidTTLError

# Envelope marker for bytes values; JSON has no native bytes type.
_BYTES_MARKER = "__tagcache_b64__"


def encode_value(value: Any, key: Optional[str] = None) -> str:
    """Serialize a cache value to its stored string form.

    Args:
        value: A JSON-compatible value or ``bytes``.
        key: The cache key, used for error reporting.

    Returns:
        JSON text.

    Raises:
        CacheError: If the value cannot be serialized.
    """
    if isinstance(value, (bytes, bytearray)):
        value = {_BYTES_MARKER: base64.b64encode(bytes(value)).decode("ascii")}
    try:
        return json.dumps(value)
    except (TypeError, ValueError) as e:
        raise CacheError(f"Cannot serialize value: {e}", key=key, operation="set") from e


def decode_value(raw: Any, key: Optional[str] = None) -> Any:
    """Deserialize a stored string back into the original value.

    Raises:
        CacheError: If the stored payload is corrupted.
    """
    try:
        if isinstance(raw, (bytes, bytearray)):
            raw = raw.decode("utf-8", errors="strict")
        value = json.loads(raw)
    except (json.JSONDecodeError, TypeError, UnicodeDecodeError) as e:
        raise CacheError(f"Corrupted cache payload: {e}", key=key, operation="get") from e

    if isinstance(value, dict) and len(value) == 1 and _BYTES_MARKER in value:
        try:
            return base64.b64decode(value[_BYTES_MARKER], validate=True)
        except (ValueError, TypeError) as e:
            raise CacheError(f"Corrupted bytes payload: {e}", key=key, operation="get") from e
    return value


def validate_ttl(ttl: Optional[int]) -> None:
    """Reject non-positive TTLs; ``None`` means no TTL expiry."""
    if ttl is not None and ttl <= 0:
        raise InvalidTTLError(f"TTL must be positive, got {ttl}", ttl=ttl)


class CacheBackend(ABC):
    """Abstract base class for cache backends.

    All backends share one contract so callers stay backend-agnostic:

    - ``get`` returns ``None`` for missing or expired keys and raises
      ``CacheError`` when the store itself fails.
    - ``set`` without a TTL stores the entry until deleted or cleared.
    - ``delete`` is idempotent.
    """

    @property
    @abstractmethod
    def enabled(self) -> bool:
        """Check if the backend is enabled and connected."""
        ...

    @abstractmethod
    async def connect(self) -> None:
        """Connect to the cache backend."""
        ...

    @abstractmethod
    async def disconnect(self) -> None:
        """Disconnect from the cache backend."""
        ...

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get a value from the cache.

        Args:
            key: The cache key.

        Returns:
            The cached value, or None if not found or expired.

        Raises:
            CacheError: On connection failure or corrupted data.
        """
        ...

    @abstractmethod
    async def set(
        self,
        key: str,
        value: Any,
        ttl: Optional[int] = None
    ) -> None:
        """Set a value in the cache.

        Args:
            key: The cache key.
            value: The value to cache (JSON-compatible or bytes).
            ttl: Time-to-live in seconds (None for no expiration).

        Raises:
            CacheError: If the value cannot be stored.
        """
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a key from the cache. Deleting a missing key is not an error."""
        ...

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Check if a live (non-expired) key exists in the cache."""
        ...

    @abstractmethod
    async def remaining_ttl(self, key: str) -> Optional[float]:
        """Seconds until ``key`` expires.

        Returns:
            None if the key has no expiry, 0.0 if it is missing or expired.
        """
        ...

    @abstractmethod
    async def clear_all(self) -> None:
        """Clear all keys owned by this backend."""
        ...
