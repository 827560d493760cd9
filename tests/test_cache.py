"""Tests for the TTL cache manager."""

from __future__ import annotations

from datetime import datetime

import pytest

from offlinesync.cache import CacheEntry, CacheManager, CacheStats
from offlinesync.store import LocalStore, Table

from tests.conftest import FakeClock


class TestCacheEntry:
    """Tests for CacheEntry dataclass."""

    def test_expiry_boundary(self) -> None:
        """An entry is still valid at exactly expires_at."""
        entry = CacheEntry(key="k", data=1, created_at=0.0, expires_at=10.0)

        assert not entry.is_expired(10.0)
        assert entry.is_expired(10.001)

    def test_bytes_are_stored_raw(self) -> None:
        """Binary values keep their bytes through the store record."""
        entry = CacheEntry(key="k", data=b"\x00\xff", created_at=0.0, expires_at=1.0)

        record = entry.to_record()
        restored = CacheEntry.from_record(record)

        assert record["encoding"] == "bytes"
        assert restored.data == b"\x00\xff"


class TestCacheStats:
    """Tests for CacheStats."""

    def test_hit_rate_without_lookups(self) -> None:
        """Hit rate is zero before any lookup."""
        assert CacheStats().hit_rate == 0.0

    def test_hit_rate(self) -> None:
        """Hit rate is a percentage of lookups."""
        assert CacheStats(hits=3, misses=1).hit_rate == 75.0


class TestCacheManager:
    """Tests for CacheManager."""

    def test_get_within_ttl(self, cache: CacheManager, clock: FakeClock) -> None:
        """A value is returned until its TTL elapses."""
        cache.cache_data("profile", {"name": "Ada"}, ttl=60)
        clock.advance(60)

        assert cache.get_cached_data("profile") == {"name": "Ada"}

    def test_get_after_ttl(self, cache: CacheManager, clock: FakeClock, store: LocalStore) -> None:
        """An expired value is a miss and is removed from the store."""
        cache.cache_data("profile", {"name": "Ada"}, ttl=60)
        clock.advance(60.5)

        assert cache.get_cached_data("profile") is None
        assert store.get(Table.CACHE, "profile") is None
        assert cache.stats.expired == 1

    def test_default_ttl(self, store: LocalStore, clock: FakeClock) -> None:
        """Without a TTL the manager's default applies."""
        cache = CacheManager(store, default_ttl=10, clock=clock)
        cache.cache_data("k", [1, 2, 3])

        clock.advance(10)
        assert cache.get_cached_data("k") == [1, 2, 3]
        clock.advance(1)
        assert cache.get_cached_data("k") is None

    def test_zero_ttl_is_never_served(self, cache: CacheManager) -> None:
        """A TTL of zero stores nothing."""
        cache.cache_data("k", "v", ttl=0)

        assert cache.get_cached_data("k") is None

    def test_non_positive_ttl_drops_previous_value(self, cache: CacheManager) -> None:
        """Re-caching with a non-positive TTL removes the old entry."""
        cache.cache_data("k", "old", ttl=60)
        cache.cache_data("k", "new", ttl=-5)

        assert cache.get_cached_data("k") is None

    def test_overwrite_resets_expiry(self, cache: CacheManager, clock: FakeClock) -> None:
        """Caching a key again replaces its value and lifetime."""
        cache.cache_data("k", "v1", ttl=10)
        clock.advance(8)
        cache.cache_data("k", "v2", ttl=10)
        clock.advance(8)

        assert cache.get_cached_data("k") == "v2"

    def test_missing_key(self, cache: CacheManager) -> None:
        """Unknown keys are a miss."""
        assert cache.get_cached_data("nope") is None
        assert cache.stats.misses == 1

    def test_stats(self, cache: CacheManager) -> None:
        """Hits, misses and sets are counted."""
        cache.cache_data("k", 1, ttl=10)
        cache.get_cached_data("k")
        cache.get_cached_data("k")
        cache.get_cached_data("other")

        assert cache.stats.sets == 1
        assert cache.stats.hits == 2
        assert cache.stats.misses == 1

    def test_clear_expired_cache(self, cache: CacheManager, clock: FakeClock) -> None:
        """The sweep removes only entries past their expiry."""
        cache.cache_data("short", 1, ttl=5)
        cache.cache_data("boundary", 2, ttl=10)
        cache.cache_data("long", 3, ttl=100)
        clock.advance(10)

        assert cache.clear_expired_cache() == 1
        assert cache.get_cached_data("boundary") == 2
        assert cache.get_cached_data("long") == 3

    def test_storage_failure_degrades_to_miss(self, store: LocalStore, clock: FakeClock) -> None:
        """A closed store makes writes no-ops and reads misses."""
        cache = CacheManager(store, clock=clock)
        store.close()

        cache.cache_data("k", "v")

        assert cache.get_cached_data("k") is None
        assert cache.clear_expired_cache() == 0

    def test_unserializable_value_is_not_cached(
        self, cache: CacheManager, caplog: pytest.LogCaptureFixture
    ) -> None:
        """Values json cannot encode are logged and reported as a miss."""
        cache.cache_data("when", {"at": datetime(2024, 1, 1)})
        cache.cache_data("raw", {"b": b"nested"})

        assert cache.get_cached_data("when") is None
        assert cache.get_cached_data("raw") is None
        assert cache.stats.sets == 0
        assert "Cannot cache data for when" in caplog.text
