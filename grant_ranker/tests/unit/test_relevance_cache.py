"""
tests/unit/test_relevance_cache.py
──────────────────────────────────────────────────────────────────────────────
Unit tests for RelevanceCache: LRU eviction, TTL expiry and metrics.

A FakeClock replaces time.monotonic so expiry is tested without sleeping.
"""
from __future__ import annotations

import threading

import pytest

from grant_ranker.domain.exceptions import ConfigurationError
from grant_ranker.services.relevance_cache import CacheEntry, RelevanceCache
from grant_ranker.tests.conftest import FakeClock


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def small_cache(clock) -> RelevanceCache:
    return RelevanceCache(capacity=2, default_ttl=1.0, clock=clock)


class TestConstruction:
    @pytest.mark.parametrize("capacity", [0, -5])
    def test_invalid_capacity(self, capacity):
        with pytest.raises(ConfigurationError):
            RelevanceCache(capacity=capacity, default_ttl=10)

    @pytest.mark.parametrize("ttl", [0, -1.0])
    def test_invalid_ttl(self, ttl):
        with pytest.raises(ConfigurationError):
            RelevanceCache(capacity=10, default_ttl=ttl)

    def test_non_positive_ttl_on_set(self, small_cache):
        with pytest.raises(ValueError):
            small_cache.set("a", 1, ttl=0)


class TestGetSet:
    def test_miss_on_empty(self, small_cache):
        assert small_cache.get("a") is None
        assert small_cache.stats().total_misses == 1

    def test_hit_after_set(self, small_cache):
        small_cache.set("a", "A")
        assert small_cache.get("a") == "A"
        s = small_cache.stats()
        assert (s.total_hits, s.total_misses) == (1, 0)

    def test_overwrite_does_not_evict(self, small_cache):
        small_cache.set("a", 1)
        small_cache.set("b", 2)
        small_cache.set("a", 3)
        assert len(small_cache) == 2
        assert small_cache.get("a") == 3
        assert small_cache.stats().total_evictions == 0

    def test_access_count_tracked(self, small_cache):
        small_cache.set("a", 1)
        small_cache.get("a")
        small_cache.get("a")
        assert small_cache.stats().total_access_count == 2

    def test_contains_does_not_count(self, small_cache):
        small_cache.set("a", 1)
        assert "a" in small_cache
        assert "b" not in small_cache
        s = small_cache.stats()
        assert (s.total_hits, s.total_misses) == (0, 0)


class TestExpiry:
    def test_expired_entry_is_a_miss_and_removed(self, small_cache, clock):
        small_cache.set("a", 1)
        clock.advance(1.0)
        assert small_cache.get("a") is None
        assert len(small_cache) == 0
        assert small_cache.stats().total_misses == 1

    def test_entry_alive_just_before_expiry(self, small_cache, clock):
        small_cache.set("a", 1)
        clock.advance(0.999)
        assert small_cache.get("a") == 1

    def test_custom_ttl(self, small_cache, clock):
        small_cache.set("a", 1, ttl=10)
        clock.advance(5)
        assert small_cache.get("a") == 1

    def test_expired_not_in_keys(self, small_cache, clock):
        small_cache.set("a", 1)
        small_cache.set("b", 2, ttl=5)
        clock.advance(2)
        assert small_cache.keys() == ["b"]
        assert "a" not in small_cache

    def test_purge_expired(self, small_cache, clock):
        small_cache.set("a", 1)
        small_cache.set("b", 2, ttl=5)
        clock.advance(2)
        assert small_cache.stats().expired_entries == 1
        assert small_cache.purge_expired() == 1
        assert len(small_cache) == 1

    def test_expired_swept_before_lru_eviction(self, small_cache, clock):
        small_cache.set("a", 1)
        small_cache.set("b", 2, ttl=5)
        clock.advance(2)
        small_cache.set("c", 3)
        assert small_cache.stats().total_evictions == 0
        assert small_cache.keys() == ["b", "c"]


class TestEviction:
    def test_capacity_two_ttl_one_scenario(self, small_cache, clock):
        """set a, set b, get a, set c evicts b; a expires after its TTL."""
        small_cache.set("a", "A")
        clock.advance(0.1)
        small_cache.set("b", "B")
        clock.advance(0.1)
        assert small_cache.get("a") == "A"
        clock.advance(0.1)
        small_cache.set("c", "C")

        assert small_cache.get("b") is None
        assert small_cache.get("c") == "C"
        assert small_cache.stats().total_evictions == 1

        clock.advance(1.0)
        assert small_cache.get("a") is None

    def test_size_never_exceeds_capacity(self, clock):
        cache = RelevanceCache(capacity=3, default_ttl=100, clock=clock)
        for i in range(20):
            cache.set(f"k{i}", i)
            clock.advance(0.01)
            assert len(cache) <= 3

    def test_tie_broken_by_insertion_order(self, small_cache):
        small_cache.set("a", 1)
        small_cache.set("b", 2)
        small_cache.set("c", 3)
        assert "a" not in small_cache
        assert "b" in small_cache

    def test_eviction_rank_order(self):
        older = CacheEntry("x", 1, created_at=0, expires_at=10, last_accessed=1, sequence=1)
        newer = CacheEntry("y", 1, created_at=0, expires_at=10, last_accessed=2, sequence=2)
        assert older.eviction_rank() < newer.eviction_rank()


class TestInvalidation:
    def test_invalidate_present(self, small_cache):
        small_cache.set("a", 1)
        assert small_cache.invalidate("a") is True
        assert small_cache.get("a") is None
        assert small_cache.stats().total_invalidations == 1

    def test_invalidate_absent(self, small_cache):
        assert small_cache.invalidate("nope") is False
        assert small_cache.stats().total_invalidations == 0

    def test_invalidate_prefix(self, clock):
        cache = RelevanceCache(capacity=10, default_ttl=100, clock=clock)
        for key in ("1:a", "1:b", "2:a"):
            cache.set(key, key)
        assert cache.invalidate_prefix("1:") == 2
        assert cache.keys() == ["2:a"]

    def test_clear_keeps_counters(self, small_cache):
        small_cache.set("a", 1)
        small_cache.get("a")
        assert small_cache.clear() == 1
        assert len(small_cache) == 0
        assert small_cache.stats().total_hits == 1


class TestCompact:
    def test_compacts_to_target(self, clock):
        cache = RelevanceCache(capacity=8, default_ttl=100, clock=clock)
        for i in range(8):
            cache.set(f"k{i}", i)
            clock.advance(0.01)
        assert cache.compact(0.5) == 4
        assert cache.keys() == ["k4", "k5", "k6", "k7"]

    def test_invalid_ratio(self, small_cache):
        with pytest.raises(ValueError):
            small_cache.compact(1.5)


class TestStats:
    def test_hit_rate_is_percent(self, small_cache):
        small_cache.set("a", 1)
        small_cache.get("a")
        small_cache.get("a")
        small_cache.get("b")
        s = small_cache.stats()
        assert s.hit_rate == pytest.approx(66.67)
        assert s.size == 1
        assert s.capacity == 2

    def test_hit_rate_zero_without_lookups(self, small_cache):
        assert small_cache.stats().hit_rate == 0.0


class TestConcurrency:
    def test_no_lost_counter_updates(self):
        cache = RelevanceCache(capacity=50, default_ttl=1000)
        cache.set("hot", 1)

        def worker():
            for _ in range(500):
                cache.get("hot")
                cache.get("cold")

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        s = cache.stats()
        assert s.total_hits == 8 * 500
        assert s.total_misses == 8 * 500
