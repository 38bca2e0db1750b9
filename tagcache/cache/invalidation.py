"""Tag index and tag-based invalidation."""

from collections import defaultdict
from enum import Enum
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Union

from tagcache.cache.backends.base import CacheBackend
from tagcache.core.errors import CacheError, InvalidTagError
from tagcache.core.logging import get_logger

logger = get_logger(__name__)

MAX_TAG_LENGTH = 128


class InvalidationMode(str, Enum):
    """How invalidate_by_tag treats affected entries."""

    IMMEDIATE = "immediate"  # delete now; next read is guaranteed fresh
    DEFERRED = "deferred"  # serve once more, refresh in background, evict


def validate_tag(tag: str) -> str:
    """Return ``tag`` unchanged if it is usable, else raise InvalidTagError."""
    if not isinstance(tag, str) or not tag:
        raise InvalidTagError("Cache tag cannot be empty", tag)
    if len(tag) > MAX_TAG_LENGTH:
        raise InvalidTagError(f"Cache tag too long (max {MAX_TAG_LENGTH} characters)", tag)
    if any(char.isspace() for char in tag):
        raise InvalidTagError("Cache tag cannot contain whitespace", tag)
    return tag


def hierarchical_tags(resource: str, resource_id: Union[str, int, None] = None) -> List[str]:
    """Broad and specific tags for a resource.

    ``hierarchical_tags("products", 42)`` gives ``["products", "products:42"]``
    so either granularity can be invalidated later.
    """
    tags = [validate_tag(resource)]
    if resource_id is not None:
        tags.append(validate_tag(f"{resource}:{resource_id}"))
    return tags


class TagIndex:
    """Bidirectional tag <-> key mapping.

    A key may carry many tags. Removing a key drops it from every tag;
    nothing else changes a key's membership.
    """

    def __init__(self) -> None:
        self._keys_by_tag: Dict[str, Set[str]] = defaultdict(set)
        self._tags_by_key: Dict[str, Set[str]] = defaultdict(set)

    def add(self, key: str, tags: Iterable[str]) -> None:
        for tag in tags:
            self._keys_by_tag[tag].add(key)
            self._tags_by_key[key].add(tag)

    def keys_for(self, tag: str) -> FrozenSet[str]:
        return frozenset(self._keys_by_tag.get(tag, ()))

    def tags_for(self, key: str) -> FrozenSet[str]:
        return frozenset(self._tags_by_key.get(key, ()))

    def remove_key(self, key: str) -> None:
        for tag in self._tags_by_key.pop(key, ()):
            keys = self._keys_by_tag.get(tag)
            if keys is None:
                continue
            keys.discard(key)
            if not keys:
                del self._keys_by_tag[tag]

    def clear(self) -> None:
        self._keys_by_tag.clear()
        self._tags_by_key.clear()

    def __len__(self) -> int:
        return len(self._keys_by_tag)


class InvalidationService:
    """Associates keys with tags and invalidates them as a group.

    The index is held in-process. With a shared backend and several
    processes, each process only knows the tags it applied itself.
    """

    def __init__(self, backend: CacheBackend, index: Optional[TagIndex] = None):
        self.backend = backend
        self.index = index if index is not None else TagIndex()
        self._stale: Set[str] = set()

    def tag(self, key: str, *tags: str) -> None:
        """Associate ``tags`` with ``key``.

        Raises:
            InvalidTagError: If any tag is empty, too long or has whitespace.
        """
        self.index.add(key, [validate_tag(tag) for tag in tags])

    async def invalidate_by_tag(
        self,
        tag: str,
        mode: Union[InvalidationMode, str] = InvalidationMode.IMMEDIATE,
    ) -> int:
        """Invalidate every key ever tagged with ``tag``.

        Args:
            tag: Tag to invalidate.
            mode: IMMEDIATE deletes before returning; DEFERRED only marks
                entries stale.

        Returns:
            Number of keys affected.
        """
        mode = InvalidationMode(mode)
        keys = sorted(self.index.keys_for(validate_tag(tag)))

        if mode is InvalidationMode.DEFERRED:
            self._stale.update(keys)
            logger.info(f"Marked {len(keys)} keys stale for tag {tag!r}")
            return len(keys)

        for key in keys:
            try:
                await self.backend.delete(key)
            except CacheError as e:
                # Keep it marked so the next successful read evicts it.
                logger.warning(f"Could not delete {key} while invalidating {tag!r}: {e}")
                self._stale.add(key)
                continue
            self.forget(key)

        logger.info(f"Invalidated {len(keys)} keys for tag {tag!r}")
        return len(keys)

    def is_stale(self, key: str) -> bool:
        return key in self._stale

    def mark_stale(self, key: str) -> None:
        self._stale.add(key)

    def clear_stale(self, key: str) -> None:
        """Drop the stale mark only; tag membership is kept."""
        self._stale.discard(key)

    def forget(self, key: str) -> None:
        """Drop ``key`` from the index and stale marks (after delete)."""
        self.index.remove_key(key)
        self._stale.discard(key)

    def reset(self) -> None:
        """Drop all tags and stale marks (after clear)."""
        self.index.clear()
        self._stale.clear()
