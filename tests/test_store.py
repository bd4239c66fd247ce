"""
Tests for the in-memory key-value store.
"""

import pytest


class TestMemoryStore:
    """Tests for TTL handling and counters."""

    @pytest.mark.asyncio
    async def test_set_get_expire(self, store, clock):
        await store.set("a", b"1", 10)
        assert await store.get("a") == b"1"
        assert await store.exists("a")

        clock.advance(10)
        assert await store.get("a") is None
        assert not await store.exists("a")

    @pytest.mark.asyncio
    async def test_ttl(self, store, clock):
        await store.set("a", b"1", 10)
        await store.set("b", b"1")

        clock.advance(3.5)
        assert await store.ttl("a") == 7  # rounded up
        assert await store.ttl("b") is None
        assert await store.ttl("missing") is None

    @pytest.mark.asyncio
    async def test_increment(self, store, clock):
        """Counters start at zero and keep their TTL."""
        assert await store.increment("c") == 1
        assert await store.expire("c", 30)

        clock.advance(10)
        assert await store.increment("c") == 2
        assert await store.ttl("c") == 20
        assert await store.get("c") == b"2"

    @pytest.mark.asyncio
    async def test_increment_non_integer(self, store):
        await store.set("c", b"abc")
        with pytest.raises(ValueError):
            await store.increment("c")

    @pytest.mark.asyncio
    async def test_expire_missing_key(self, store):
        assert not await store.expire("missing", 10)

    @pytest.mark.asyncio
    async def test_delete(self, store):
        await store.set("a", b"1")
        assert await store.delete("a")
        assert not await store.delete("a")

    @pytest.mark.asyncio
    async def test_keys_by_prefix(self, store, clock):
        await store.set("device:u1:a", b"1", 100)
        await store.set("device:u1:b", b"1", 5)
        await store.set("device:u2:a", b"1", 100)

        clock.advance(5)
        assert await store.keys("device:u1:") == ["device:u1:a"]
        assert len(store) == 2

    @pytest.mark.asyncio
    async def test_non_positive_ttl_deletes(self, store):
        await store.set("a", b"1")
        await store.set("a", b"2", 0)
        assert await store.get("a") is None

    @pytest.mark.asyncio
    async def test_unread_expired_keys_are_swept(self, store, clock):
        """Expired keys nobody reads again do not accumulate."""
        await store.set("persistent", b"1")
        for i in range(100):
            await store.set(f"window:{i}", b"1", 30)
            clock.advance(store.CLEANUP_INTERVAL)

        await store.set("trigger", b"1", 30)

        assert "window:0" not in store._data
        assert set(store._data) == {"persistent", "trigger"}

    @pytest.mark.asyncio
    async def test_sweep_waits_for_interval(self, store, clock):
        await store.set("a", b"1", 1)
        clock.advance(2)
        await store.set("b", b"1")

        # Expired but not yet swept; still invisible to readers
        assert "a" in store._data
        assert await store.get("a") is None
