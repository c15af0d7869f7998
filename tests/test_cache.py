"""
Tests for the in-memory TTL cache in mediahub/cache.py.
"""

import pytest

from mediahub.cache import TTLCache, YOUTUBE_CACHE_KEYS, make_key
from tests.conftest import FakeClock


@pytest.fixture
def clock():
    return FakeClock(start=1000.0)


@pytest.fixture
def cache(clock):
    """Provide a fresh cache with a 60s default TTL and a fake clock."""
    return TTLCache(default_ttl=60, maxsize=5, timer=clock)


class TestTTLCache:
    """Tests for TTLCache."""

    def test_set_and_get(self, cache):
        data = {"video_id": "dQw4w9WgXcQ", "title": "Sample"}
        cache.set("youtube:video:dQw4w9WgXcQ", data)
        assert cache.get("youtube:video:dQw4w9WgXcQ") == data

    def test_miss_returns_default(self, cache):
        assert cache.get("missing") is None
        assert cache.get("missing", default="fallback") == "fallback"

    @pytest.mark.parametrize("ttl", [0.5, 30, 3600])
    def test_entry_expires_after_ttl(self, cache, clock, ttl):
        cache.set("key", "value", ttl=ttl)
        assert cache.get("key") == "value"

        clock.advance(ttl + 0.001)
        assert cache.get("key") is None

    def test_default_ttl_is_used(self, cache, clock):
        cache.set("key", "value")
        clock.advance(59)
        assert cache.get("key") == "value"
        clock.advance(2)
        assert cache.get("key") is None

    def test_entry_still_fresh_at_exact_expiry(self, cache, clock):
        cache.set("key", "value", ttl=10)
        clock.advance(10)
        assert cache.has("key") is True
        assert cache.get("key") == "value"
        assert cache.get_info()[0]["is_expired"] is False

        clock.advance(0.001)
        assert cache.get("key") is None

    def test_default_ttl_is_fifteen_minutes(self):
        assert TTLCache().default_ttl == 15 * 60

    def test_per_call_ttl_overrides_default(self, cache, clock):
        cache.set("short", 1, ttl=5)
        cache.set("long", 2, ttl=500)
        clock.advance(100)
        assert cache.get("short") is None
        assert cache.get("long") == 2

    def test_non_positive_ttl_rejected(self, cache):
        with pytest.raises(ValueError):
            cache.set("key", "value", ttl=0)
        with pytest.raises(ValueError):
            cache.set("key", "value", ttl=-1)

    def test_overwrite_replaces_value_and_expiry(self, cache, clock):
        cache.set("key", {"version": 1}, ttl=10)
        clock.advance(8)
        cache.set("key", {"version": 2}, ttl=10)
        clock.advance(8)
        assert cache.get("key") == {"version": 2}

    def test_expired_entry_removed_on_get(self, cache, clock):
        cache.set("key", "value", ttl=10)
        clock.advance(11)
        assert cache.get("key") is None
        assert cache.get_stats()["size"] == 0

    def test_has(self, cache, clock):
        cache.set("key", "value", ttl=10)
        assert cache.has("key") is True
        assert cache.has("other") is False
        clock.advance(11)
        assert cache.has("key") is False

    def test_delete(self, cache):
        cache.set("key", "value")
        assert cache.delete("key") is True
        assert cache.get("key") is None
        assert cache.delete("key") is False

    def test_clear(self, cache):
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.clear() == 2
        assert cache.get("a") is None
        assert cache.get_stats()["size"] == 0

    def test_maxsize_eviction(self, cache):
        for i in range(8):
            cache.set(f"key{i}", i)
        assert cache.get_stats()["size"] <= 5
        assert cache.get("key7") == 7

    def test_expire_drops_stale_entries(self, cache, clock):
        cache.set("short", 1, ttl=5)
        cache.set("long", 2, ttl=500)
        clock.advance(10)
        assert cache.expire() == 1
        assert cache.get("long") == 2

    def test_stats_track_hits_and_misses(self, cache):
        cache.get("miss1")
        cache.get("miss2")
        cache.set("hit", "data")
        cache.get("hit")
        cache.get("hit")

        stats = cache.get_stats()
        assert stats["hits"] == 2
        assert stats["misses"] == 2
        assert stats["hit_rate"] == 0.5

    def test_stats_empty(self, cache):
        stats = cache.get_stats()
        assert stats == {"size": 0, "hits": 0, "misses": 0, "hit_rate": 0}

    def test_get_info_reports_expiry(self, cache, clock):
        cache.set("short", 1, ttl=5)
        cache.set("long", 2, ttl=500)
        clock.advance(10)

        info = {entry["key"]: entry for entry in cache.get_info()}
        assert info["short"]["is_expired"] is True
        assert info["long"]["is_expired"] is False
        assert info["long"]["stored_at"] == 1000.0
        assert info["long"]["expires_at"] == 1500.0


class TestCacheKeys:
    """Tests for cache key helpers."""

    def test_make_key(self):
        assert make_key("youtube:search", "cats", 2) == "youtube:search:cats:2"

    def test_youtube_keys(self):
        assert YOUTUBE_CACHE_KEYS.TRENDING == "youtube:trending"
        assert YOUTUBE_CACHE_KEYS.search("lofi") == "youtube:search:lofi"
        assert YOUTUBE_CACHE_KEYS.channel_videos("UC123") == "youtube:channel_videos:UC123"
