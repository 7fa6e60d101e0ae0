"""
Tests for expiring stores, the summary result cache and the command cooldown.
"""

import pytest

from chatdigest.bot import CommandThrottle
from chatdigest.cache import SummaryResultCache, TTLStore
from chatdigest.delivery import ChatPermissionService
from chatdigest.models import SummaryDocument


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class TestTTLStore:
    """Tests for TTLStore."""

    def test_entry_expires(self, clock):
        store = TTLStore(default_ttl=60, clock=clock)
        store.set("key", "value")

        clock.now += 59
        assert store.get("key") == "value"
        clock.now += 1
        assert store.get("key") is None
        assert store.get("key", "fallback") == "fallback"

    def test_per_entry_ttl(self, clock):
        store = TTLStore(default_ttl=60, clock=clock)
        store.set("short", 1, ttl=5)
        store.set("long", 2)

        clock.now += 10
        assert not store.contains("short")
        assert store.contains("long")

    def test_stored_none_is_present(self, clock):
        store = TTLStore(clock=clock)
        store.set("key", None)
        assert store.contains("key")

    def test_ttl_remaining(self, clock):
        store = TTLStore(default_ttl=60, clock=clock)
        store.set("key", True)

        clock.now += 15
        assert store.ttl_remaining("key") == 45
        assert store.ttl_remaining("missing") == 0.0

    def test_evicts_oldest_when_full(self, clock):
        store = TTLStore(max_size=2, clock=clock)
        store.set("a", 1)
        store.set("b", 2)
        store.set("c", 3)

        assert store.keys() == ["b", "c"]

    def test_purge_expired(self, clock):
        store = TTLStore(default_ttl=10, clock=clock)
        store.set("a", 1)
        store.set("b", 2, ttl=100)

        clock.now += 20
        assert store.purge_expired() == 1
        assert len(store) == 1


class TestSummaryResultCache:
    """Tests for SummaryResultCache."""

    @pytest.mark.asyncio
    async def test_hit_and_expiry(self, clock):
        cache = SummaryResultCache(store=TTLStore(clock=clock), ttl=300)
        fingerprint = (-100, 50, 1714564800.0)
        await cache.cache_summary(fingerprint, SummaryDocument(body="summary"))

        assert (await cache.get_cached_summary(fingerprint)).body == "summary"
        assert await cache.get_cached_summary((-100, 60, 1714564800.0)) is None

        clock.now += 301
        assert await cache.get_cached_summary(fingerprint) is None

    @pytest.mark.asyncio
    async def test_invalidate_chat(self, clock):
        cache = SummaryResultCache(store=TTLStore(clock=clock))
        await cache.cache_summary((1, 10, 0.0), SummaryDocument(body="a"))
        await cache.cache_summary((1, 20, 0.0), SummaryDocument(body="b"))
        await cache.cache_summary((2, 10, 0.0), SummaryDocument(body="c"))

        assert await cache.invalidate_chat(1) == 2
        assert await cache.get_cached_summary((2, 10, 0.0)) is not None

    @pytest.mark.asyncio
    async def test_stats_and_clear(self, clock):
        cache = SummaryResultCache(store=TTLStore(max_size=10, clock=clock), ttl=300)
        await cache.cache_summary((1, 10, 0.0), SummaryDocument(body="a"))
        await cache.cache_summary((2, 10, 0.0), SummaryDocument(body="b"))
        await cache.get_cached_summary((1, 10, 0.0))
        await cache.get_cached_summary((3, 10, 0.0))

        stats = cache.stats()
        assert stats["size"] == 2
        assert stats["max_size"] == 10
        assert (stats["hits"], stats["misses"], stats["hit_rate"]) == (1, 1, 0.5)

        assert await cache.clear() == 2
        assert cache.stats()["size"] == 0


class TestCommandThrottle:
    """Tests for CommandThrottle."""

    def test_cooldown_per_user_and_chat(self, clock):
        throttle = CommandThrottle(cooldown_seconds=300, store=TTLStore(clock=clock))
        throttle.mark(1, 10)

        assert throttle.is_throttled(1, 10)
        assert not throttle.is_throttled(1, 11)
        assert not throttle.is_throttled(2, 10)

        clock.now += 120
        assert throttle.remaining(1, 10) == 180

        clock.now += 180
        assert not throttle.is_throttled(1, 10)

    def test_zero_cooldown_disables(self, clock):
        throttle = CommandThrottle(cooldown_seconds=0, store=TTLStore(clock=clock))
        throttle.mark(1, 10)
        assert not throttle.is_throttled(1, 10)

    def test_reset(self, clock):
        throttle = CommandThrottle(cooldown_seconds=300, store=TTLStore(clock=clock))
        throttle.mark(1, 10)
        throttle.reset(1, 10)
        assert not throttle.is_throttled(1, 10)


class TestChatPermissionService:
    """Tests for ChatPermissionService."""

    def test_restriction_expires(self, clock):
        permissions = ChatPermissionService(store=TTLStore(clock=clock), ttl=3600)
        permissions.mark_send_restricted(-100, "kicked")

        assert permissions.is_send_restricted(-100)
        assert permissions.restriction_reason(-100) == "kicked"
        assert not permissions.is_send_restricted(-200)

        clock.now += 3600
        assert not permissions.is_send_restricted(-100)

    def test_clear(self, clock):
        permissions = ChatPermissionService(store=TTLStore(clock=clock))
        permissions.mark_send_restricted(-100)
        permissions.clear(-100)
        assert not permissions.is_send_restricted(-100)
