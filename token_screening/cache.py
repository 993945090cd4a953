"""
Token Screening - Result Cache.

============================================================
PURPOSE
============================================================
Keeps recent screening results so a token screened again
within the freshness window is answered without upstream calls.

============================================================
POLICY
============================================================
- TTL: entries expire ttl_seconds after insertion; an expired
  entry is deleted when read
- Capacity: at most max_entries; on overflow expired entries
  are purged first, then the least-recently-used entry goes
- Sweep: an optional asyncio task purges expired entries every
  cleanup_interval_seconds, so tokens never looked up again do
  not pin memory
- Ownership: results are copied in and copied out

============================================================
THREAD SAFETY
============================================================
One threading.Lock guards the entry map. It is held for a
single operation only and never across an await.

============================================================
"""

import asyncio
import logging
import threading
import time
from abc import ABC, abstractmethod
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Union

from .config import CacheConfig
from .types import CacheEntry, ScreeningLevel, ScreeningResult, TokenIdentifier


logger = logging.getLogger(__name__)


TokenKey = Union[str, TokenIdentifier]


def _key(token_id: TokenKey) -> str:
    return str(token_id)


class ScreeningCache(ABC):
    """Contract the screener uses to store and look up results."""

    @abstractmethod
    def get(
        self,
        token_id: TokenKey,
        level: Optional[ScreeningLevel] = None,
    ) -> Optional[ScreeningResult]:
        """
        Return a copy of the cached result, or None when absent/expired.

        With `level`, an entry computed at a level that does not cover
        it counts as a miss and is left in place.
        """
        pass

    @abstractmethod
    def put(
        self,
        token_id: TokenKey,
        result: ScreeningResult,
        ttl: Optional[float] = None,
    ) -> None:
        """Store a copy of `result` for `ttl` seconds (default TTL if None)."""
        pass

    @abstractmethod
    def invalidate(self, token_id: TokenKey) -> bool:
        """Drop an entry. Returns True if one was present."""
        pass

    async def start(self) -> None:
        """Start background maintenance, if any."""

    async def stop(self) -> None:
        """Stop background maintenance, if any."""

    def get_stats(self) -> Dict[str, Any]:
        return {}

    async def __aenter__(self) -> "ScreeningCache":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.stop()


class ResultCache(ScreeningCache):
    """
    In-memory TTL + LRU cache of screening results.

    The clock is injectable (a zero-argument callable returning
    monotonic seconds) so expiry can be tested without sleeping.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config or CacheConfig()
        self._clock = clock

        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()

        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

        self._cleanup_task: Optional[asyncio.Task] = None
        self._running = False

    # ─────────────────────────────────────────────────────────────
    # Contract
    # ─────────────────────────────────────────────────────────────

    def get(
        self,
        token_id: TokenKey,
        level: Optional[ScreeningLevel] = None,
    ) -> Optional[ScreeningResult]:
        key = _key(token_id)
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            if entry.is_expired(self._clock()):
                del self._entries[key]
                self._expirations += 1
                self._misses += 1
                return None

            if level is not None and not entry.result.level.covers(level):
                self._misses += 1
                return None

            self._entries.move_to_end(key)
            entry.hits += 1
            self._hits += 1
            return entry.result.copy()

    def put(
        self,
        token_id: TokenKey,
        result: ScreeningResult,
        ttl: Optional[float] = None,
    ) -> None:
        key = _key(token_id)
        ttl = self.config.ttl_seconds if ttl is None else ttl
        now = self._clock()

        with self._lock:
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.config.max_entries:
                self._make_room(now)

            self._entries[key] = CacheEntry(
                result=result.copy(),
                expires_at=now + ttl,
                created_at=now,
            )

    def invalidate(self, token_id: TokenKey) -> bool:
        with self._lock:
            return self._entries.pop(_key(token_id), None) is not None

    # ─────────────────────────────────────────────────────────────
    # Maintenance
    # ─────────────────────────────────────────────────────────────

    def _make_room(self, now: float) -> None:
        """Purge expired entries, then evict LRU entries until one slot is free."""
        self._purge_expired(now)
        while len(self._entries) >= self.config.max_entries:
            key, _ = self._entries.popitem(last=False)
            self._evictions += 1
            logger.debug(f"Evicted least-recently-used cache entry {key}")

    def _purge_expired(self, now: float) -> int:
        expired_keys = [
            key for key, entry in self._entries.items()
            if entry.is_expired(now)
        ]
        for key in expired_keys:
            del self._entries[key]
        self._expirations += len(expired_keys)
        return len(expired_keys)

    def cleanup(self) -> int:
        """Remove expired entries now. Returns the number removed."""
        with self._lock:
            removed = self._purge_expired(self._clock())
        if removed:
            logger.debug(f"Cleaned {removed} expired cache entries")
        return removed

    def clear(self) -> None:
        """Clear all cache entries."""
        with self._lock:
            self._entries.clear()
        logger.info("Screening cache cleared")

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, token_id: object) -> bool:
        with self._lock:
            entry = self._entries.get(_key(token_id))
            return entry is not None and not entry.is_expired(self._clock())

    # ─────────────────────────────────────────────────────────────
    # Background sweep
    # ─────────────────────────────────────────────────────────────

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Start the periodic sweep of expired entries."""
        if self._running or self.config.cleanup_interval_seconds <= 0:
            return

        self._running = True
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info(
            f"Started screening cache cleanup "
            f"(interval={self.config.cleanup_interval_seconds}s)"
        )

    async def stop(self) -> None:
        """Stop the periodic sweep."""
        if not self._running:
            return

        self._running = False
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None
        logger.info("Stopped screening cache cleanup")

    async def _cleanup_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.config.cleanup_interval_seconds)
            try:
                self.cleanup()
            except Exception as e:
                logger.error(f"Cache cleanup error: {e}")

    # ─────────────────────────────────────────────────────────────
    # Statistics
    # ─────────────────────────────────────────────────────────────

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        with self._lock:
            total_requests = self._hits + self._misses
            hit_rate = (self._hits / total_requests * 100) if total_requests > 0 else 0

            return {
                "entries": len(self._entries),
                "max_entries": self.config.max_entries,
                "ttl_seconds": self.config.ttl_seconds,
                "hits": self._hits,
                "misses": self._misses,
                "evictions": self._evictions,
                "expirations": self._expirations,
                "hit_rate_percent": round(hit_rate, 2),
            }


class NoOpCache(ScreeningCache):
    """Cache that never stores anything. Disables caching."""

    def get(
        self,
        token_id: TokenKey,
        level: Optional[ScreeningLevel] = None,
    ) -> Optional[ScreeningResult]:
        return None

    def put(
        self,
        token_id: TokenKey,
        result: ScreeningResult,
        ttl: Optional[float] = None,
    ) -> None:
        return None

    def invalidate(self, token_id: TokenKey) -> bool:
        return False

    def __len__(self) -> int:
        return 0
