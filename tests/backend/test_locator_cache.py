"""Unit tests for the healed-locator cache."""

import threading

import pytest

from locator_healer.core.models import Candidate, HealingConfiguration, LocatorKind, Platform
from locator_healer.services.locator_cache import LocatorCache


def _candidate(value: str = "com.app:id/login", score: float = 0.9) -> Candidate:
    return Candidate(strategy=LocatorKind.ID, value=value, score=score, platform=Platform.ANDROID)


class TestCacheBasics:
    """Test cases for storing and looking up entries."""

    def setup_method(self):
        self.cache = LocatorCache()

    def test_put_and_get(self):
        candidate = _candidate()
        self.cache.put("id||login", candidate)

        assert self.cache.get("id||login") == candidate
        assert "id||login" in self.cache
        assert len(self.cache) == 1

    def test_miss_is_counted(self):
        assert self.cache.get("id||missing") is None

        stats = self.cache.stats()
        assert stats["misses"] == 1
        assert stats["hits"] == 0

    def test_put_none_is_ignored(self):
        self.cache.put("id||login", None)
        assert len(self.cache) == 0

    def test_put_replaces_entry_and_resets_counters(self):
        self.cache.put("id||login", _candidate("old"))
        self.cache.record_usage("id||login", False)

        self.cache.put("id||login", _candidate("new"))
        entry = self.cache.peek_entry("id||login")

        assert entry.candidate.value == "new"
        assert entry.use_count == 0
        assert entry.failure_count == 0

    def test_invalidate(self):
        self.cache.put("id||login", _candidate())

        assert self.cache.invalidate("id||login") is True
        assert self.cache.invalidate("id||login") is False
        assert self.cache.get("id||login") is None
        assert self.cache.stats()["invalidations"] == 1

    def test_clear(self):
        self.cache.put("a", _candidate())
        self.cache.put("b", _candidate())

        self.cache.clear()

        assert len(self.cache) == 0

    def test_invalid_max_size(self):
        with pytest.raises(ValueError):
            LocatorCache(max_size=0)


class TestCacheKeys:
    """Test cases for cache key generation."""

    def test_plain_key(self):
        assert LocatorCache.generate_cache_key(LocatorKind.ID, "login") == "id||login"

    def test_semantic_key_is_appended(self):
        key = LocatorCache.generate_cache_key("accessibility", "", "login.input.email")
        assert key == "accessibility||||KEY:login.input.email"

    def test_same_input_same_key(self):
        first = LocatorCache.generate_cache_key(LocatorKind.XPATH, "//a", "k")
        second = LocatorCache.generate_cache_key(LocatorKind.XPATH, "//a", "k")
        assert first == second


class TestExpiry:
    """Test cases for TTL handling."""

    def test_entry_expires_after_ttl(self, fake_clock):
        cache = LocatorCache(ttl_seconds=300, clock=fake_clock)
        cache.put("id||login", _candidate())

        fake_clock.advance(301)

        assert cache.get("id||login") is None
        assert "id||login" not in cache
        assert cache.stats()["invalidations"] == 1

    def test_entry_alive_at_exact_ttl(self, fake_clock):
        cache = LocatorCache(ttl_seconds=300, clock=fake_clock)
        cache.put("id||login", _candidate())

        fake_clock.advance(300)

        assert cache.get("id||login") is not None

    def test_set_ttl(self, fake_clock):
        cache = LocatorCache(ttl_seconds=300, clock=fake_clock)
        cache.put("id||login", _candidate())

        cache.set_ttl(10)
        fake_clock.advance(11)

        assert cache.get("id||login") is None
        assert cache.stats()["ttl_seconds"] == 10

    def test_set_ttl_rejects_non_positive(self):
        cache = LocatorCache()
        with pytest.raises(ValueError):
            cache.set_ttl(0)


class TestEviction:
    """Test cases for least-recently-used eviction."""

    def test_oldest_entry_is_evicted(self):
        cache = LocatorCache(max_size=2)
        cache.put("a", _candidate("a"))
        cache.put("b", _candidate("b"))
        cache.put("c", _candidate("c"))

        assert "a" not in cache
        assert "b" in cache and "c" in cache
        assert cache.stats()["evictions"] == 1

    def test_get_refreshes_recency(self):
        cache = LocatorCache(max_size=2)
        cache.put("a", _candidate("a"))
        cache.put("b", _candidate("b"))

        cache.get("a")
        cache.put("c", _candidate("c"))

        assert "a" in cache
        assert "b" not in cache


class TestReliability:
    """Test cases for usage feedback and unreliable entry purging."""

    def setup_method(self):
        self.cache = LocatorCache()
        self.cache.put("id||login", _candidate())

    def test_record_usage_counts(self):
        self.cache.record_usage("id||login", True)
        self.cache.record_usage("id||login", False)

        entry = self.cache.peek_entry("id||login")
        assert entry.use_count == 2
        assert entry.success_count == 1
        assert entry.failure_count == 1
        assert entry.success_rate == 0.5

    def test_record_usage_for_unknown_key(self):
        self.cache.record_usage("id||other", True)

        assert "id||other" not in self.cache
        assert self.cache.peek_entry("id||login").use_count == 0

    def test_unreliable_entry_is_purged_on_lookup(self):
        self.cache.record_usage("id||login", True)
        self.cache.record_usage("id||login", False)
        self.cache.record_usage("id||login", False)

        assert self.cache.get("id||login") is None
        assert "id||login" not in self.cache

    def test_too_few_uses_to_judge(self):
        self.cache.record_usage("id||login", False)
        self.cache.record_usage("id||login", False)

        assert self.cache.get("id||login") is not None

    def test_concurrent_usage_reports(self):
        def report(success):
            for _ in range(200):
                self.cache.record_usage("id||login", success)

        threads = [threading.Thread(target=report, args=(i % 2 == 0,)) for i in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        entry = self.cache.peek_entry("id||login")
        assert entry.use_count == 1600
        assert entry.use_count == entry.success_count + entry.failure_count


class TestEnableAndStats:
    """Test cases for toggling the cache and reading its statistics."""

    def test_disabling_clears_entries(self):
        cache = LocatorCache()
        cache.put("a", _candidate())

        cache.set_enabled(False)

        assert not cache.is_enabled()
        assert len(cache) == 0
        cache.put("b", _candidate())
        assert cache.get("b") is None
        assert len(cache) == 0

    def test_from_config(self):
        config = HealingConfiguration(cache_max_size=7, cache_ttl_seconds=42.0, cache_enabled=False)
        cache = LocatorCache.from_config(config)

        stats = cache.stats()
        assert stats["max_size"] == 7
        assert stats["ttl_seconds"] == 42.0
        assert stats["enabled"] is False

    def test_stats_aggregate_usage(self):
        cache = LocatorCache()
        cache.put("a", _candidate("a"))
        cache.put("b", _candidate("b"))
        cache.record_usage("a", True)
        cache.record_usage("b", True)
        cache.record_usage("b", False)
        cache.get("a")
        cache.get("missing")

        stats = cache.stats()
        assert stats["size"] == 2
        assert stats["total_uses"] == 3
        assert stats["total_successes"] == 2
        assert stats["overall_success_rate"] == pytest.approx(2 / 3)
        assert stats["hits"] == 1
        assert stats["misses"] == 1
