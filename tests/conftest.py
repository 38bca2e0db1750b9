"""Shared test fixtures for tagcache tests."""

import pytest
from typing import Any, List, Optional
from unittest.mock import AsyncMock, MagicMock

from tagcache.cache.backends.memory_backend import MemoryBackend
from tagcache.cache.metrics import MetricsCollector
from tagcache.cache.tagged_cache import TaggedCache


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeOrigin:
    """Authoritative store double that records every write.

    ``failures`` maps a value to how many times writing it should fail
    before succeeding.
    """

    def __init__(self, failures: Optional[dict] = None):
        self.value: Any = None
        self.writes: List[Any] = []
        self.calls: dict = {}
        self.failures = dict(failures or {})

    def writer(self, value: Any):
        async def write() -> Any:
            self.calls[value] = self.calls.get(value, 0) + 1
            if self.failures.get(value, 0) > 0:
                self.failures[value] -= 1
                raise ConnectionError(f"origin rejected {value}")
            self.value = value
            self.writes.append(value)
            return value

        return write


# ============================================================================
# Cache Fixtures
# ============================================================================

@pytest.fixture
def clock():
    """A fake monotonic clock starting at t=1000s."""
    return FakeClock()


@pytest.fixture
def memory_backend(clock):
    """Create a fresh memory backend on the fake clock."""
    return MemoryBackend(clock=clock)


@pytest.fixture
async def connected_memory_backend(memory_backend):
    """Create a connected memory backend."""
    await memory_backend.connect()
    yield memory_backend
    await memory_backend.disconnect()


@pytest.fixture
def metrics():
    """Create an empty metrics collector."""
    return MetricsCollector()


@pytest.fixture
async def tagged_cache(connected_memory_backend, metrics, clock):
    """Create a TaggedCache over a connected memory backend."""
    cache = TaggedCache(connected_memory_backend, namespace="app", metrics=metrics, clock=clock)
    yield cache
    await cache.wait_for_refreshes()


@pytest.fixture
def origin():
    """Create an origin double."""
    return FakeOrigin()


# ============================================================================
# Mock Fixtures
# ============================================================================

@pytest.fixture
def mock_redis_client():
    """Create a mock redis.asyncio client."""
    mock = MagicMock()
    mock.ping = AsyncMock(return_value=True)
    mock.get = AsyncMock(return_value=None)
    mock.set = AsyncMock(return_value=True)
    mock.setex = AsyncMock(return_value=True)
    mock.delete = AsyncMock(return_value=1)
    mock.exists = AsyncMock(return_value=0)
    mock.pttl = AsyncMock(return_value=-1)
    mock.flushdb = AsyncMock(return_value=True)
    mock.unlink = AsyncMock(return_value=0)
    mock.aclose = AsyncMock()
    return mock


@pytest.fixture
def failing_backend():
    """A backend whose every operation raises CacheError."""
    from tagcache.core.errors import CacheError

    mock = MagicMock(spec=MemoryBackend)
    mock.enabled = True
    error = CacheError("backend down")
    mock.get = AsyncMock(side_effect=error)
    mock.set = AsyncMock(side_effect=error)
    mock.delete = AsyncMock(side_effect=error)
    mock.exists = AsyncMock(side_effect=error)
    mock.clear_all = AsyncMock(side_effect=error)
    mock.connect = AsyncMock()
    mock.disconnect = AsyncMock()
    return mock
