"""Per-key hit/miss/error bookkeeping used to validate TTL choices."""

from dataclasses import dataclass
from typing import Dict


@dataclass
class CacheStats:
    """Statistics for cache performance monitoring."""

    hits: int = 0
    misses: int = 0
    errors: int = 0

    @property
    def total_requests(self) -> int:
        """Total number of cache reads."""
        return self.hits + self.misses

    @property
    def hit_rate(self) -> float:
        """Calculate cache hit rate."""
        if self.total_requests == 0:
            return 0.0
        return self.hits / self.total_requests

    def record_hit(self) -> None:
        """Record a cache hit."""
        self.hits += 1

    def record_miss(self) -> None:
        """Record a cache miss."""
        self.misses += 1

    def record_error(self) -> None:
        """Record a cache error."""
        self.errors += 1

    def reset(self) -> None:
        """Reset all statistics."""
        self.hits = 0
        self.misses = 0
        self.errors = 0

    def to_dict(self) -> Dict[str, float]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "errors": self.errors,
            "hit_rate": self.hit_rate,
        }


class MetricsCollector:
    """Process-wide per-key cache statistics.

    Pure bookkeeping: no method touches anything outside this object and
    none of them raise.
    """

    def __init__(self) -> None:
        self._stats: Dict[str, CacheStats] = {}
        self._totals = CacheStats()

    def _for(self, key: str) -> CacheStats:
        stats = self._stats.get(key)
        if stats is None:
            stats = self._stats[key] = CacheStats()
        return stats

    def record_hit(self, key: str) -> None:
        self._for(key).record_hit()
        self._totals.record_hit()

    def record_miss(self, key: str) -> None:
        self._for(key).record_miss()
        self._totals.record_miss()

    def record_error(self, key: str) -> None:
        self._for(key).record_error()
        self._totals.record_error()

    def hit_rate(self, key: str) -> float:
        """Hit rate for ``key``; 0.0 when it was never read."""
        stats = self._stats.get(key)
        return stats.hit_rate if stats is not None else 0.0

    def stats(self, key: str) -> CacheStats:
        """Copy of the statistics for ``key``."""
        stats = self._stats.get(key)
        if stats is None:
            return CacheStats()
        return CacheStats(hits=stats.hits, misses=stats.misses, errors=stats.errors)

    @property
    def totals(self) -> CacheStats:
        """Aggregate statistics across all keys."""
        return self._totals

    def snapshot(self) -> Dict[str, Dict[str, float]]:
        """All per-key statistics as plain dictionaries."""
        return {key: stats.to_dict() for key, stats in self._stats.items()}

    def reset(self) -> None:
        """Drop every recorded statistic."""
        self._stats.clear()
        self._totals.reset()
