"""
Tests for the result cache.
"""

import asyncio
import threading
from dataclasses import replace
from datetime import datetime, timezone

import pytest

from token_screening.cache import NoOpCache, ResultCache
from token_screening.config import CacheConfig
from token_screening.types import RiskCategory, ScreeningLevel, ScreeningResult

from screening_fixtures import BONK_TOKEN, FakeClock, SOL_TOKEN, USDC_TOKEN


def make_result(token_id: str = SOL_TOKEN, score: int = 90) -> ScreeningResult:
    return ScreeningResult(
        token_id=token_id,
        score=score,
        category=RiskCategory.from_score(score),
        breakdown={"liquidity": 15, "honeypot": 20},
        flags=(),
        computed_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
        level=ScreeningLevel.NORMAL,
    )


@pytest.fixture
def cache(clock):
    return ResultCache(
        CacheConfig(ttl_seconds=60, max_entries=3, cleanup_interval_seconds=0),
        clock=clock,
    )


# ============================================================
# CONTRACT TESTS
# ============================================================

class TestResultCacheContract:
    """Tests for get/put/invalidate."""

    def test_round_trip(self, cache):
        result = make_result()
        cache.put(SOL_TOKEN, result)

        assert cache.get(SOL_TOKEN) == result

    def test_miss(self, cache):
        assert cache.get(SOL_TOKEN) is None

    def test_get_returns_copy(self, cache):
        cache.put(SOL_TOKEN, make_result())

        first = cache.get(SOL_TOKEN)
        first.breakdown["liquidity"] = 0

        assert cache.get(SOL_TOKEN).breakdown["liquidity"] == 15

    def test_put_stores_copy(self, cache):
        result = make_result()
        cache.put(SOL_TOKEN, result)

        result.breakdown["liquidity"] = 0

        assert cache.get(SOL_TOKEN).breakdown["liquidity"] == 15

    def test_put_replaces(self, cache):
        cache.put(SOL_TOKEN, make_result(score=90))
        cache.put(SOL_TOKEN, make_result(score=40))

        assert cache.get(SOL_TOKEN).score == 40
        assert len(cache) == 1

    def test_invalidate(self, cache):
        cache.put(SOL_TOKEN, make_result())

        assert cache.invalidate(SOL_TOKEN) is True
        assert cache.invalidate(SOL_TOKEN) is False
        assert cache.get(SOL_TOKEN) is None

    def test_contains(self, cache, clock):
        cache.put(SOL_TOKEN, make_result())

        assert SOL_TOKEN in cache
        clock.advance(61)
        assert SOL_TOKEN not in cache


# ============================================================
# EXPIRY TESTS
# ============================================================

class TestResultCacheExpiry:
    """Tests for TTL handling."""

    def test_fresh_within_ttl(self, cache, clock):
        cache.put(SOL_TOKEN, make_result())
        clock.advance(59.9)

        assert cache.get(SOL_TOKEN) is not None

    def test_expired_after_ttl(self, cache, clock):
        cache.put(SOL_TOKEN, make_result())
        clock.advance(60)

        assert cache.get(SOL_TOKEN) is None
        assert len(cache) == 0
        assert cache.get_stats()["expirations"] == 1

    def test_custom_ttl(self, cache, clock):
        cache.put(SOL_TOKEN, make_result(), ttl=5)
        clock.advance(6)

        assert cache.get(SOL_TOKEN) is None

    def test_cleanup_removes_only_expired(self, cache, clock):
        cache.put(SOL_TOKEN, make_result(), ttl=10)
        cache.put(USDC_TOKEN, make_result(USDC_TOKEN), ttl=100)
        clock.advance(20)

        assert cache.cleanup() == 1
        assert len(cache) == 1
        assert cache.get(USDC_TOKEN) is not None

    def test_clear(self, cache):
        cache.put(SOL_TOKEN, make_result())
        cache.put(USDC_TOKEN, make_result(USDC_TOKEN))

        cache.clear()

        assert len(cache) == 0


# ============================================================
# EVICTION TESTS
# ============================================================

class TestResultCacheEviction:
    """Tests for the capacity bound."""

    def test_lru_eviction(self, cache):
        cache.put("a", make_result("a"))
        cache.put("b", make_result("b"))
        cache.put("c", make_result("c"))
        cache.get("a")

        cache.put("d", make_result("d"))

        assert cache.get("b") is None
        assert cache.get("a") is not None
        assert cache.get("c") is not None
        assert cache.get("d") is not None
        assert cache.get_stats()["evictions"] == 1

    def test_expired_entries_go_first(self, cache, clock):
        cache.put("a", make_result("a"), ttl=100)
        cache.put("b", make_result("b"), ttl=10)
        cache.put("c", make_result("c"), ttl=100)
        cache.get("a")
        clock.advance(20)

        cache.put("d", make_result("d"))

        # "b" was expired; the LRU entry "c" survives
        assert cache.get("c") is not None
        assert cache.get("a") is not None
        assert cache.get_stats()["evictions"] == 0

    def test_never_exceeds_capacity(self, cache):
        for i in range(20):
            cache.put(f"token-{i}", make_result(f"token-{i}"))
            assert len(cache) <= 3


# ============================================================
# STATS & CONCURRENCY TESTS
# ============================================================

class TestResultCacheStats:
    """Tests for statistics."""

    def test_hit_rate(self, cache):
        cache.put(SOL_TOKEN, make_result())
        cache.get(SOL_TOKEN)
        cache.get(SOL_TOKEN)
        cache.get(BONK_TOKEN)

        stats = cache.get_stats()

        assert stats["hits"] == 2
        assert stats["misses"] == 1
        assert stats["hit_rate_percent"] == pytest.approx(66.67)
        assert stats["entries"] == 1
        assert stats["max_entries"] == 3

    def test_uncovered_level_counts_as_miss(self, cache):
        quick = replace(make_result(), level=ScreeningLevel.QUICK)
        cache.put(SOL_TOKEN, quick)

        assert cache.get(SOL_TOKEN, ScreeningLevel.NORMAL) is None
        assert cache.get(SOL_TOKEN, ScreeningLevel.QUICK) == quick

        stats = cache.get_stats()
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["entries"] == 1

    def test_covering_level_is_a_hit(self, cache):
        cache.put(SOL_TOKEN, make_result())

        assert cache.get(SOL_TOKEN, ScreeningLevel.QUICK) is not None
        assert cache.get_stats()["hits"] == 1


class TestResultCacheThreadSafety:
    """Concurrent access from threads."""

    def test_concurrent_put_get(self):
        cache = ResultCache(CacheConfig(ttl_seconds=60, max_entries=50, cleanup_interval_seconds=0))
        errors = []

        def worker(offset: int) -> None:
            try:
                for i in range(200):
                    key = f"token-{(offset + i) % 80}"
                    cache.put(key, make_result(key))
                    cache.get(key)
                    if i % 7 == 0:
                        cache.invalidate(key)
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n * 10,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert errors == []
        assert len(cache) <= 50


# ============================================================
# BACKGROUND SWEEP TESTS
# ============================================================

class TestResultCacheSweep:
    """Tests for the periodic cleanup task."""

    @pytest.mark.asyncio
    async def test_sweep_removes_expired_entries(self):
        clock = FakeClock()
        cache = ResultCache(
            CacheConfig(ttl_seconds=5, max_entries=10, cleanup_interval_seconds=0.01),
            clock=clock,
        )
        cache.put(SOL_TOKEN, make_result())
        clock.advance(10)

        await cache.start()
        assert cache.is_running
        await asyncio.sleep(0.05)
        await cache.stop()

        assert not cache.is_running
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_disabled_interval_starts_nothing(self, cache):
        await cache.start()
        assert not cache.is_running
        await cache.stop()

    @pytest.mark.asyncio
    async def test_stop_without_start(self, cache):
        await cache.stop()
        assert not cache.is_running

    @pytest.mark.asyncio
    async def test_context_manager(self):
        cache = ResultCache(CacheConfig(cleanup_interval_seconds=0.01))

        async with cache:
            assert cache.is_running

        assert not cache.is_running


class TestNoOpCache:
    """Tests for NoOpCache."""

    def test_never_stores(self):
        cache = NoOpCache()
        cache.put(SOL_TOKEN, make_result())

        assert cache.get(SOL_TOKEN) is None
        assert cache.invalidate(SOL_TOKEN) is False
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_lifecycle_is_noop(self):
        async with NoOpCache() as cache:
            assert cache.get_stats() == {}
