"""Tests for the near/far tiered backend."""

from unittest.mock import AsyncMock

import pytest

from tagcache.cache.backends.memory_backend import MemoryBackend
from tagcache.cache.backends.tiered_backend import TieredBackend
from tagcache.core.errors import CacheError


@pytest.fixture
async def tiers(clock):
    """Create connected near and far memory backends plus the tiered view."""
    near = MemoryBackend(clock=clock)
    far = MemoryBackend(clock=clock)
    backend = TieredBackend(far, near, near_ttl=5)
    await backend.connect()
    return near, far, backend


class TestTieredBackend:
    """Tests for tier composition."""

    @pytest.mark.asyncio
    async def test_set_writes_both_tiers(self, tiers):
        """Test writes land in near and far tiers."""
        near, far, backend = tiers

        await backend.set("k", "v", ttl=60)

        assert await near.get("k") == "v"
        assert await far.get("k") == "v"

    @pytest.mark.asyncio
    async def test_near_ttl_is_capped(self, tiers, clock):
        """Test the near copy expires after near_ttl even with a longer TTL."""
        near, far, backend = tiers

        await backend.set("k", "v", ttl=60)
        clock.advance(6)

        assert await near.get("k") is None
        assert await backend.get("k") == "v"

    @pytest.mark.asyncio
    async def test_far_hit_backfills_near(self, tiers):
        """Test a far-only entry is copied into the near tier on read."""
        near, far, backend = tiers
        await far.set("k", "v")

        assert await backend.get("k") == "v"
        assert await near.get("k") == "v"

    @pytest.mark.asyncio
    async def test_delete_and_clear_both_tiers(self, tiers):
        """Test delete and clear act on both tiers."""
        near, far, backend = tiers
        await backend.set("a", 1)
        await backend.set("b", 2)

        await backend.delete("a")
        assert await near.get("a") is None
        assert await far.get("a") is None

        await backend.clear_all()
        assert await backend.exists("b") is False

    @pytest.mark.asyncio
    async def test_far_failure_drops_near_copy(self, tiers):
        """Test a failed far write does not leave a stale near copy."""
        near, far, backend = tiers
        await near.set("k", "old")
        far.set = AsyncMock(side_effect=CacheError("down", key="k"))

        with pytest.raises(CacheError):
            await backend.set("k", "new")

        assert await near.get("k") is None

    @pytest.mark.asyncio
    async def test_enabled_follows_far(self, clock):
        """Test enabled reports the far tier's state."""
        far = MemoryBackend(clock=clock)
        backend = TieredBackend(far, near_ttl=5)

        assert backend.enabled is False
        await backend.connect()
        assert backend.enabled is True

    @pytest.mark.asyncio
    async def test_backfill_never_outlives_far_expiry(self, clock):
        """Test a reader's near copy expires with the shared far entry."""
        far = MemoryBackend(clock=clock)
        writer = TieredBackend(far, MemoryBackend(clock=clock), near_ttl=5)
        reader = TieredBackend(far, MemoryBackend(clock=clock), near_ttl=5)
        await writer.connect()
        await reader.near.connect()

        await writer.set("k", "v", ttl=2)
        clock.advance(1.9)
        assert await reader.get("k") == "v"

        clock.advance(1.0)

        assert await far.get("k") is None
        assert await reader.get("k") is None

    @pytest.mark.asyncio
    async def test_no_backfill_when_far_ttl_unreadable(self, tiers):
        """Test the far value is served but not copied when its TTL cannot be read."""
        near, far, backend = tiers
        await far.set("k", "v", ttl=60)
        far.remaining_ttl = AsyncMock(side_effect=CacheError("down", key="k"))

        assert await backend.get("k") == "v"
        assert await near.get("k") is None

    @pytest.mark.asyncio
    async def test_remaining_ttl_comes_from_far(self, tiers, clock):
        """Test remaining_ttl reports the authoritative far entry."""
        near, far, backend = tiers
        await backend.set("k", "v", ttl=60)
        clock.advance(10)

        assert await backend.remaining_ttl("k") == 50
