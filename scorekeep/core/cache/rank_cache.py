"""
Read-through cache for materialized rank lists (Scorekeep 2025).

Purpose
-------
Absorb read bursts on hot leaderboards. Entries are ordered rank rows with
an absolute expiry; callers populate the cache on miss from the RankStore
or the record store.

Features
--------
- Fixed TTL per entry (30 s by default), checked lazily on ``get``
- Explicit invalidation per key, per category, or wholesale
- Background sweep every ``sweep_interval`` seconds that drops expired
  entries and, above ``max_entries``, the oldest half by insertion order
- Hit/miss/eviction counters for status reporting
- Injectable clock so expiry is testable without sleeping

Non-Responsibilities
--------------------
- Cross-process coherence (a single instance owns the cache)
- Deciding what to cache (LeaderboardService does that)

Concurrency
-----------
All operations are synchronous and never suspend; only the sweep loop
awaits, between sweeps.
"""

from __future__ import annotations

import asyncio
import copy
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional

from scorekeep.core.logging.logger import get_logger

logger = get_logger(__name__)

Clock = Callable[[], float]


@dataclass
class CacheEntry:
    payload: Any
    expires_at: float


@dataclass
class _CacheCounters:
    hits: int = 0
    misses: int = 0
    expired: int = 0
    invalidations: int = 0
    forced_evictions: int = 0
    sweeps: int = 0

    def snapshot(self) -> Dict[str, int]:
        return dict(self.__dict__)


class RankCache:
    """
    Time-bounded cache of rank-list payloads.

    Keys are opaque hashables; LeaderboardService uses
    ``(CategoryKey, field)`` tuples, which ``invalidate_category`` matches
    on their first element.

    Args:
        ttl_seconds: Default entry lifetime
        sweep_interval_seconds: Pause between background sweeps
        max_entries: Ceiling that triggers the forced half eviction
        clock: Monotonic seconds source
    """

    def __init__(
        self,
        ttl_seconds: float = 30.0,
        sweep_interval_seconds: float = 120.0,
        max_entries: int = 1000,
        clock: Optional[Clock] = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        if max_entries <= 0:
            raise ValueError("max_entries must be positive")

        self.ttl_seconds = ttl_seconds
        self.sweep_interval_seconds = sweep_interval_seconds
        self.max_entries = max_entries
        self._clock: Clock = clock or time.monotonic

        self._entries: Dict[Hashable, CacheEntry] = {}
        self._counters = _CacheCounters()
        self._sweep_task: Optional[asyncio.Task[None]] = None

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: Hashable) -> bool:
        entry = self._entries.get(key)
        return entry is not None and self._clock() < entry.expires_at

    # ========================================================================
    # Core Operations
    # ========================================================================

    def get(self, key: Hashable) -> Optional[Any]:
        """
        Cached payload (a copy) while ``now < expiry``; None on miss.

        An expired entry found here is dropped immediately.
        """
        entry = self._entries.get(key)
        if entry is None:
            self._counters.misses += 1
            return None

        if self._clock() >= entry.expires_at:
            del self._entries[key]
            self._counters.expired += 1
            self._counters.misses += 1
            return None

        self._counters.hits += 1
        return copy.deepcopy(entry.payload)

    def put(self, key: Hashable, payload: Any, ttl: Optional[float] = None) -> None:
        """Store a copy of ``payload`` expiring ``ttl`` seconds from now."""
        lifetime = self.ttl_seconds if ttl is None else ttl

        # Re-insert so the dict order reflects the latest write
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            payload=copy.deepcopy(payload),
            expires_at=self._clock() + lifetime,
        )

    def invalidate(self, key: Hashable) -> bool:
        removed = self._entries.pop(key, None) is not None
        if removed:
            self._counters.invalidations += 1
        return removed

    def invalidate_category(self, category: Hashable) -> int:
        """Drop every entry whose tuple key starts with ``category``."""
        doomed = [
            key
            for key in self._entries
            if isinstance(key, tuple) and key and key[0] == category
        ]
        for key in doomed:
            del self._entries[key]
        self._counters.invalidations += len(doomed)
        return len(doomed)

    def clear(self) -> int:
        count = len(self._entries)
        self._entries.clear()
        self._counters.invalidations += count
        if count:
            logger.info("Rank cache cleared", extra={"entries_removed": count})
        return count

    # ========================================================================
    # Eviction
    # ========================================================================

    def sweep(self) -> int:
        """
        Drop expired entries; when the cache started above the ceiling, also
        drop the oldest entries until at most half the starting size remains.

        Returns:
            Number of entries removed
        """
        before = len(self._entries)
        now = self._clock()

        expired = [key for key, entry in self._entries.items() if now >= entry.expires_at]
        for key in expired:
            del self._entries[key]
        self._counters.expired += len(expired)

        forced = 0
        if before > self.max_entries:
            # Insertion order: the first keys are the oldest writes
            forced = max(0, len(self._entries) - before // 2)
            for key in list(self._entries)[:forced]:
                del self._entries[key]
            self._counters.forced_evictions += forced

        self._counters.sweeps += 1
        removed = before - len(self._entries)

        if removed:
            logger.info(
                "Rank cache sweep removed entries",
                extra={
                    "entries_before": before,
                    "expired_removed": len(expired),
                    "forced_removed": forced,
                    "entries_after": len(self._entries),
                },
            )
        return removed

    # ========================================================================
    # Background Sweep
    # ========================================================================

    @property
    def is_sweeping(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    def start(self) -> None:
        """Start the periodic sweep task on the running loop (idempotent)."""
        if self.is_sweeping:
            return
        self._sweep_task = asyncio.get_running_loop().create_task(
            self._sweep_loop(), name="rank-cache-sweep"
        )
        logger.info(
            "Rank cache sweep started",
            extra={"interval_seconds": self.sweep_interval_seconds},
        )

    async def stop(self) -> None:
        task, self._sweep_task = self._sweep_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("Rank cache sweep stopped")

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval_seconds)
            try:
                self.sweep()
            except Exception as exc:
                logger.error(
                    "Rank cache sweep failed",
                    extra={"error": str(exc), "error_type": type(exc).__name__},
                    exc_info=True,
                )

    # ========================================================================
    # Observability
    # ========================================================================

    def stats(self) -> Dict[str, Any]:
        counters = self._counters.snapshot()
        lookups = counters["hits"] + counters["misses"]
        return {
            **counters,
            "entries": len(self._entries),
            "max_entries": self.max_entries,
            "ttl_seconds": self.ttl_seconds,
            "hit_rate": round(counters["hits"] / lookups, 4) if lookups else 0.0,
        }
