"""Deterministic, namespaced cache key construction.

Every dynamic part of a key is normalised and checked against an allow-list
before it is joined, so raw caller input never reaches the backend and two
logically distinct resources cannot collide.
"""

import hashlib
import re
from typing import Any, Optional, Tuple, Union

from pydantic import SecretBytes, SecretStr

from tagcache.core.errors import InvalidKeyError

Segment = Union[str, int]

_SEGMENT_PATTERN = re.compile(r"^[a-z0-9-]+$")
_TOKEN_PREFIXES = ("sk-", "pk-", "rk-", "xoxb-", "xoxp-", "ghp-")
_TOKEN_RUN_LENGTH = 32


class CacheKeyBuilder:
    """Cache key builder.

    Key format: {namespace}:{segment}:{segment}...

    Examples:
        app:products:42
        app:users:7f0c2e0a-9d7e-4b7c-a1f1-0a5c3b3f2e11:profile
    """

    SEPARATOR = ":"
    MAX_KEY_LENGTH = 200
    HASH_LENGTH = 16

    @classmethod
    def build_key(
        cls,
        namespace: str,
        *segments: Segment,
        max_length: Optional[int] = None,
    ) -> str:
        """Build a normalised cache key.

        Args:
            namespace: Key namespace (application or tenant scope).
            *segments: Resource path and identifiers. Only ``str`` and
                ``int`` are accepted; secrets must never be passed.
            max_length: Whole-key limit, defaults to MAX_KEY_LENGTH.

        Returns:
            Cache key string of at most ``max_length`` characters.

        Raises:
            InvalidKeyError: If any part is empty, outside the allow-list,
                of an unsupported type or looks like a credential.
        """
        parts = [cls.normalize_segment(namespace)]
        parts.extend(cls.normalize_segment(segment) for segment in segments)
        key = cls.SEPARATOR.join(parts)

        limit = max_length or cls.MAX_KEY_LENGTH
        if limit <= cls.HASH_LENGTH + 1:
            raise ValueError(f"max_length must exceed {cls.HASH_LENGTH + 1}")
        if len(key) > limit:
            key = cls._truncate(key, limit)
        return key

    @classmethod
    def normalize_segment(cls, segment: Any) -> str:
        """Normalise and validate a single key part.

        Raises:
            InvalidKeyError: See build_key.
        """
        if isinstance(segment, (SecretStr, SecretBytes)):
            raise InvalidKeyError("Secret values cannot be used in cache keys", segment)
        if isinstance(segment, bool) or not isinstance(segment, (str, int)):
            raise InvalidKeyError(
                f"Unsupported key segment type: {type(segment).__name__}", segment
            )

        normalized = str(segment).strip().lower()
        if not normalized:
            raise InvalidKeyError("Cache key segment cannot be empty", segment)
        if not _SEGMENT_PATTERN.match(normalized):
            raise InvalidKeyError(
                "Cache key segment may only contain letters, digits and hyphens", segment
            )
        if cls._looks_like_secret(normalized):
            raise InvalidKeyError("Cache key segment looks like a credential", segment)
        return normalized

    @classmethod
    def parts(cls, key: str) -> Tuple[str, ...]:
        """Split a built key back into its parts."""
        return tuple(key.split(cls.SEPARATOR))

    @classmethod
    def hash_segment(cls, content: str) -> str:
        """Hash free-form content into a valid, fixed-length segment.

        Useful for query strings or filter sets that are not identifiers.
        """
        return hashlib.sha256(content.encode("utf-8")).hexdigest()[: cls.HASH_LENGTH]

    @classmethod
    def _truncate(cls, key: str, limit: int) -> str:
        # The digest of the full key keeps truncated keys distinct.
        digest = cls.hash_segment(key)
        head = key[: limit - cls.HASH_LENGTH - 1]
        return f"{head}-{digest}"

    @staticmethod
    def _looks_like_secret(segment: str) -> bool:
        if segment.startswith(_TOKEN_PREFIXES):
            return True
        for run in segment.split("-"):
            if (
                len(run) >= _TOKEN_RUN_LENGTH
                and any(c.isdigit() for c in run)
                and any(c.isalpha() for c in run)
            ):
                return True
        return False


def build_key(namespace: str, *segments: Segment, max_length: Optional[int] = None) -> str:
    """Module-level shortcut for CacheKeyBuilder.build_key."""
    return CacheKeyBuilder.build_key(namespace, *segments, max_length=max_length)
