"""
Tests for the Result Cache.

Tests cache key generation, TTL expiration, eviction, tag invalidation and
single-flight computation.
"""

import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from oceanval.data.cache.manager import (
    CacheConfig,
    CacheEntryStatus,
    CacheManager,
    EvictionPolicy,
)
from oceanval.exceptions import InsufficientDataError, QueryCancelledError


@pytest.fixture
def cache():
    return CacheManager(CacheConfig(default_ttl_seconds=3600))


# ==============================================================================
# Configuration and keys
# ==============================================================================


class TestCacheConfig:
    """Tests for CacheConfig."""

    def test_defaults(self):
        config = CacheConfig()
        assert config.max_entries == 0
        assert config.default_ttl_seconds == 86400
        assert config.eviction_policy == EvictionPolicy.LRU

    def test_policy_from_string(self):
        assert CacheConfig(eviction_policy="lfu").eviction_policy == EvictionPolicy.LFU

    def test_invalid_max_entries(self):
        with pytest.raises(ValueError, match="max_entries must be >= 0"):
            CacheConfig(max_entries=-1)

    def test_invalid_ttl(self):
        with pytest.raises(ValueError, match="default_ttl_seconds must be >= 0"):
            CacheConfig(default_ttl_seconds=-5)


class TestCacheKeys:
    """Tests for deterministic key generation."""

    def test_deterministic(self):
        key1 = CacheManager.generate_cache_key("T", "2025-08-05", extra={"b": 2, "a": 1})
        key2 = CacheManager.generate_cache_key("T", "2025-08-05", extra={"a": 1, "b": 2})
        assert key1 == key2
        assert len(key1) == 32

    def test_parts_distinguish(self):
        assert (
            CacheManager.generate_cache_key("T", "2025-08-05")
            != CacheManager.generate_cache_key("S", "2025-08-05")
        )


# ==============================================================================
# Entries
# ==============================================================================


class TestCacheEntries:
    """Tests for put/get, expiry and eviction."""

    def test_put_and_get(self, cache):
        cache.put("k1", {"rmse": 0.3}, tags={"2902123|T|2025-08-05"})

        assert cache.get("k1") == {"rmse": 0.3}
        assert cache.contains("k1")
        stats = cache.get_statistics()
        assert stats.hits == 1
        assert stats.active_entries == 1

    def test_get_missing(self, cache):
        assert cache.get("nope") is None
        assert cache.get_statistics().misses == 1

    def test_expired_entry_not_returned(self, cache):
        entry = cache.put("k1", "value", ttl_seconds=60)
        entry.expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)

        assert cache.get("k1") is None
        assert entry.status == CacheEntryStatus.EXPIRED
        assert cache.get_statistics().expirations == 1

    def test_zero_ttl_never_expires(self, cache):
        entry = cache.put("k1", "value", ttl_seconds=0)
        assert entry.expires_at is None
        assert not entry.is_expired

    def test_cleanup_expired(self, cache):
        cache.put("k1", "a", ttl_seconds=60).expires_at = datetime.now(timezone.utc) - timedelta(seconds=1)
        cache.put("k2", "b")

        assert cache.cleanup_expired() == 1
        assert cache.contains("k2")

    def test_lru_eviction(self):
        cache = CacheManager(CacheConfig(max_entries=2, eviction_policy=EvictionPolicy.LRU))
        cache.put("a", 1)
        cache.put("b", 2)
        cache.get("a")
        cache.put("c", 3)

        assert cache.contains("a")
        assert not cache.contains("b")
        assert cache.contains("c")
        assert cache.get_statistics().evictions == 1

    def test_lfu_eviction(self):
        cache = CacheManager(CacheConfig(max_entries=2, eviction_policy=EvictionPolicy.LFU))
        cache.put("a", 1)
        cache.put("b", 2)
        cache.get("b")
        cache.get("b")
        cache.get("a")
        cache.put("c", 3)

        assert not cache.contains("a")
        assert cache.contains("b")

    def test_clear(self, cache):
        cache.put("a", 1)
        cache.put("b", 2)
        assert cache.clear() == 2
        assert cache.list_entries() == []


class TestCacheInvalidation:
    """Tests for key and tag invalidation."""

    def test_invalidate_key(self, cache):
        entry = cache.put("k1", "value")
        assert cache.invalidate("k1")
        assert entry.status == CacheEntryStatus.INVALID
        assert not cache.contains("k1")
        assert not cache.invalidate("k1")

    def test_invalidate_by_tag(self, cache):
        cache.put("k1", 1, tags={"2902123|T|2025-08-05"})
        cache.put("k2", 2, tags={"2902123|T|2025-08-05", "2902124|T|2025-08-05"})
        cache.put("k3", 3, tags={"2902124|T|2025-08-05"})

        assert cache.invalidate_by_tag("2902123|T|2025-08-05") == 2
        assert cache.contains("k3")
        assert [e.cache_key for e in cache.list_entries()] == ["k3"]
        assert cache.get_statistics().invalidations == 2

    def test_invalidation_during_computation_discards_result(self, cache):
        """A result computed over invalidated data is returned but not stored."""
        def compute():
            cache.invalidate_by_tag("2902123|T|2025-08-05")
            return "stale"

        value = cache.get_or_compute("k1", compute, tags={"2902123|T|2025-08-05"})

        assert value == "stale"
        assert not cache.contains("k1")


# ==============================================================================
# Single-flight
# ==============================================================================


class TestGetOrCompute:
    """Tests for single-flight computation."""

    def test_computes_once_then_hits(self, cache):
        calls = []
        compute = lambda: calls.append(1) or "result"

        assert cache.get_or_compute("k1", compute) == "result"
        assert cache.get_or_compute("k1", compute) == "result"
        assert len(calls) == 1
        assert cache.get_statistics().computations == 1

    def test_failure_not_cached(self, cache):
        """Errors propagate and leave nothing in the cache."""
        def compute():
            raise InsufficientDataError("no pairs")

        with pytest.raises(InsufficientDataError):
            cache.get_or_compute("k1", compute)
        assert not cache.contains("k1")
        assert cache.get_statistics().in_flight == 0

    def test_concurrent_identical_requests_single_flight(self, cache):
        """Concurrent callers for one key share one computation."""
        calls = []
        release = threading.Event()

        def compute():
            calls.append(1)
            release.wait(timeout=5)
            return "shared"

        results = []
        threads = [
            threading.Thread(target=lambda: results.append(cache.get_or_compute("k1", compute)))
            for _ in range(8)
        ]
        for t in threads:
            t.start()
        # Let every thread reach the cache before releasing the leader
        deadline = time.monotonic() + 5
        while cache.get_statistics().in_flight == 0 and time.monotonic() < deadline:
            time.sleep(0.01)
        time.sleep(0.1)
        release.set()
        for t in threads:
            t.join(timeout=5)

        assert results == ["shared"] * 8
        assert len(calls) == 1
        assert cache.get_statistics().computations == 1

    def test_concurrent_waiters_see_failure(self, cache):
        """Waiters receive the leader's error instead of recomputing."""
        calls = []
        release = threading.Event()
        errors = []

        def compute():
            calls.append(1)
            release.wait(timeout=5)
            raise InsufficientDataError("no pairs")

        def worker():
            try:
                cache.get_or_compute("k1", compute)
            except InsufficientDataError as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for t in threads:
            t.start()
        time.sleep(0.2)
        release.set()
        for t in threads:
            t.join(timeout=5)

        assert len(errors) == 4
        assert len(calls) == 1

    def test_cancelled_leader_hands_over(self):
        """When the leader is cancelled a waiter computes instead."""
        cache = CacheManager(cancel_exceptions=(QueryCancelledError,))
        leader_started = threading.Event()
        release = threading.Event()
        outcome = {}

        def cancelled_compute():
            leader_started.set()
            release.wait(timeout=5)
            raise QueryCancelledError()

        def leader():
            try:
                cache.get_or_compute("k1", cancelled_compute)
            except QueryCancelledError:
                outcome["leader"] = "cancelled"

        def waiter():
            outcome["waiter"] = cache.get_or_compute("k1", lambda: "fresh")

        t1 = threading.Thread(target=leader)
        t1.start()
        leader_started.wait(timeout=5)
        t2 = threading.Thread(target=waiter)
        t2.start()
        time.sleep(0.1)
        release.set()
        t1.join(timeout=5)
        t2.join(timeout=5)

        assert outcome == {"leader": "cancelled", "waiter": "fresh"}
        assert cache.get("k1") == "fresh"
