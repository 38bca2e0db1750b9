"""Tests for the in-memory backend and the serialization boundary."""

import pytest

from tagcache.cache.backends.base import decode_value, encode_value
from tagcache.cache.backends.memory_backend import MemoryBackend
from tagcache.core.errors import CacheError, InvalidTTLError


class TestMemoryBackendBasics:
    """Tests for get/set/delete/exists."""

    @pytest.mark.asyncio
    async def test_set_then_get(self, connected_memory_backend):
        """Test a stored value is returned."""
        await connected_memory_backend.set("app:products:1", {"name": "lamp", "price": 12.5})

        assert await connected_memory_backend.get("app:products:1") == {"name": "lamp", "price": 12.5}

    @pytest.mark.asyncio
    async def test_get_missing(self, connected_memory_backend):
        """Test a missing key returns None."""
        assert await connected_memory_backend.get("app:missing") is None

    @pytest.mark.asyncio
    async def test_overwrite_last_write_wins(self, connected_memory_backend):
        """Test a second set replaces the first."""
        await connected_memory_backend.set("k", "v1")
        await connected_memory_backend.set("k", "v2")

        assert await connected_memory_backend.get("k") == "v2"

    @pytest.mark.asyncio
    async def test_delete_is_idempotent(self, connected_memory_backend):
        """Test deleting twice, or deleting a missing key, does not raise."""
        await connected_memory_backend.set("k", "v")

        await connected_memory_backend.delete("k")
        await connected_memory_backend.delete("k")
        await connected_memory_backend.delete("never-set")

        assert await connected_memory_backend.get("k") is None

    @pytest.mark.asyncio
    async def test_exists(self, connected_memory_backend):
        """Test exists reflects stored keys."""
        await connected_memory_backend.set("k", "v")

        assert await connected_memory_backend.exists("k") is True
        assert await connected_memory_backend.exists("other") is False

    @pytest.mark.asyncio
    async def test_clear_all(self, connected_memory_backend):
        """Test clear removes every entry, with and without TTL."""
        await connected_memory_backend.set("a", 1)
        await connected_memory_backend.set("b", 2, ttl=60)

        await connected_memory_backend.clear_all()

        assert await connected_memory_backend.get("a") is None
        assert await connected_memory_backend.get("b") is None
        assert connected_memory_backend.get_all_keys() == []

    @pytest.mark.asyncio
    async def test_disconnected_backend_raises(self, memory_backend):
        """Test operations before connect surface as CacheError."""
        assert memory_backend.enabled is False

        with pytest.raises(CacheError):
            await memory_backend.get("k")
        with pytest.raises(CacheError):
            await memory_backend.set("k", "v")

    @pytest.mark.asyncio
    async def test_key_prefix(self, clock):
        """Test a prefix is applied to stored keys transparently."""
        backend = MemoryBackend(clock=clock, key_prefix="tenant-a")
        await backend.connect()

        await backend.set("k", "v")

        assert backend.get_all_keys() == ["tenant-a:k"]
        assert await backend.get("k") == "v"


class TestMemoryBackendTTL:
    """Tests for lazy TTL expiry."""

    @pytest.mark.asyncio
    async def test_value_live_before_ttl(self, connected_memory_backend, clock):
        """Test an entry is returned within its TTL."""
        await connected_memory_backend.set("k", "v", ttl=5)
        clock.advance(4.9)

        assert await connected_memory_backend.get("k") == "v"

    @pytest.mark.asyncio
    async def test_value_expires_after_ttl(self, connected_memory_backend, clock):
        """Test set with ttl=5 then get at t+6s returns None."""
        await connected_memory_backend.set("k", "v", ttl=5)
        clock.advance(6)

        assert await connected_memory_backend.get("k") is None
        assert connected_memory_backend.evictions == 1

    @pytest.mark.asyncio
    async def test_expiry_is_lazy(self, connected_memory_backend, clock):
        """Test an expired entry stays stored until it is read."""
        await connected_memory_backend.set("k", "v", ttl=5)
        clock.advance(6)

        assert connected_memory_backend.get_all_keys() == ["k"]
        await connected_memory_backend.get("k")
        assert connected_memory_backend.get_all_keys() == []

    @pytest.mark.asyncio
    async def test_exists_respects_ttl(self, connected_memory_backend, clock):
        """Test exists treats expired entries as absent."""
        await connected_memory_backend.set("k", "v", ttl=1)
        clock.advance(1)

        assert await connected_memory_backend.exists("k") is False

    @pytest.mark.asyncio
    async def test_no_ttl_never_expires(self, connected_memory_backend, clock):
        """Test entries without TTL survive any amount of time."""
        await connected_memory_backend.set("k", "v")
        clock.advance(10 ** 9)

        assert await connected_memory_backend.get("k") == "v"
        assert connected_memory_backend.get_raw_entry("k").expires_at is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("ttl", [0, -5])
    async def test_non_positive_ttl_rejected(self, connected_memory_backend, ttl):
        """Test ttl <= 0 raises InvalidTTLError."""
        with pytest.raises(InvalidTTLError):
            await connected_memory_backend.set("k", "v", ttl=ttl)

    @pytest.mark.asyncio
    async def test_sweep_expired(self, connected_memory_backend, clock):
        """Test sweep removes only expired entries."""
        await connected_memory_backend.set("short", 1, ttl=1)
        await connected_memory_backend.set("long", 2, ttl=100)
        clock.advance(2)

        assert connected_memory_backend.sweep_expired() == 1
        assert connected_memory_backend.get_all_keys() == ["long"]

    @pytest.mark.asyncio
    async def test_remaining_ttl(self, connected_memory_backend, clock):
        """Test remaining_ttl counts down and distinguishes no-expiry from missing."""
        await connected_memory_backend.set("short", 1, ttl=10)
        await connected_memory_backend.set("forever", 2)
        clock.advance(4)

        assert await connected_memory_backend.remaining_ttl("short") == 6
        assert await connected_memory_backend.remaining_ttl("forever") is None
        assert await connected_memory_backend.remaining_ttl("missing") == 0.0

        clock.advance(7)
        assert await connected_memory_backend.remaining_ttl("short") == 0.0


class TestSerialization:
    """Tests for the JSON / base64 serialization boundary."""

    @pytest.mark.asyncio
    async def test_bytes_round_trip(self, connected_memory_backend):
        """Test bytes values come back as bytes."""
        await connected_memory_backend.set("blob", b"\x00\xffpayload")

        assert await connected_memory_backend.get("blob") == b"\x00\xffpayload"

    @pytest.mark.asyncio
    async def test_stored_form_is_text(self, connected_memory_backend):
        """Test entries are stored serialized, not as live objects."""
        value = {"items": [1, 2]}
        await connected_memory_backend.set("k", value)
        value["items"].append(3)

        assert await connected_memory_backend.get("k") == {"items": [1, 2]}
        assert isinstance(connected_memory_backend.get_raw_entry("k").value, str)

    @pytest.mark.asyncio
    async def test_unserializable_value(self, connected_memory_backend):
        """Test values JSON cannot represent raise CacheError."""
        with pytest.raises(CacheError):
            await connected_memory_backend.set("k", object())

    @pytest.mark.asyncio
    async def test_corrupted_entry(self, connected_memory_backend):
        """Test undecodable stored data raises CacheError on read."""
        await connected_memory_backend.set("k", "v")
        connected_memory_backend.get_raw_entry("k").value = "{not json"

        with pytest.raises(CacheError) as exc_info:
            await connected_memory_backend.get("k")

        assert exc_info.value.key == "k"
        assert exc_info.value.operation == "get"

    def test_decode_accepts_bytes_payload(self):
        """Test raw bytes from a store are decoded as UTF-8 JSON."""
        assert decode_value(b'{"a": 1}') == {"a": 1}

    def test_decode_non_utf8_bytes(self):
        """Test a non-UTF-8 byte payload raises CacheError."""
        with pytest.raises(CacheError) as exc_info:
            decode_value(b"\xff\xfe", key="k")

        assert exc_info.value.key == "k"

    def test_encode_plain_dict_with_marker_name_is_not_bytes(self):
        """Test only the exact single-key envelope decodes to bytes."""
        raw = encode_value({"__tagcache_b64__": "AAEC", "other": 1})
        assert decode_value(raw) == {"__tagcache_b64__": "AAEC", "other": 1}

    def test_corrupted_bytes_envelope(self):
        """Test an envelope with invalid base64 raises CacheError."""
        with pytest.raises(CacheError):
            decode_value('{"__tagcache_b64__": "not base64!!"}')
