"""
Retention Engine (Scorekeep 2025)

Purpose
-------
Keep the persisted dataset within configured bounds without touching the
request path: remove inactive ("zombie") players across every dependent
table, then trim capped tables down to their maximum row count.

Run State Machine
-----------------
    IDLE -> DETECT_ZOMBIES -> BATCH_DELETE -> SIZE_CAP_CHECK
         -> BATCH_DELETE_EXCESS -> IDLE

Zombie Pass
-----------
- A zombie is a known player with no game record updated within the
  inactivity threshold: ``all players - players active since cutoff``.
- Automatic runs skip the pass while the guard table (player profiles by
  default) is within its cap; ``force=True`` bypasses the guard.
- One transaction covers the whole zombie set. Game records go first in
  batches with a pause between batches (inside the transaction), then
  profile and reward rows in batches of the same size.

Size-Cap Pass
-------------
- For each capped table over its maximum, the watermark is the row at
  offset ``count - max_rows`` ordered oldest first; every row before it is
  deleted in paced batches, leaving exactly ``max_rows``.

Failure Semantics
-----------------
Any error rolls back the active transaction, bumps ``stats.errors``, logs
and surfaces as ``RetentionRunError``. Nothing is resumed: the next run
recomputes detection from scratch. Runs never overlap; a second caller
waits for the run lock.
"""

from __future__ import annotations

import asyncio
import functools
from typing import TYPE_CHECKING, Awaitable, Callable, Dict, List, Optional

from scorekeep.core.database.base import utc_now
from scorekeep.core.logging.logger import LogContext, get_logger
from scorekeep.database.models import GameRecord
from scorekeep.modules.retention.policy import (
    TABLE_MODELS,
    CleanupReport,
    CleanupStats,
    RetentionPolicy,
    RetentionState,
    TablePolicy,
    TableSize,
)
from scorekeep.modules.shared.exceptions import RetentionRunError

if TYPE_CHECKING:
    from datetime import datetime
    from logging import Logger

    from sqlalchemy.ext.asyncio import AsyncSession

    from scorekeep.core.config.manager import ConfigManager
    from scorekeep.modules.records.repository import RecordStore, Watermark

Sleeper = Callable[[float], Awaitable[None]]


class RetentionEngine:
    """
    Policy-driven, transactional, batched eviction of stale or excess rows.

    Args:
        store: Record store adapter
        config_manager: Source of the retention policy (read every run)
        clock: Current UTC datetime source
        sleep: Awaitable pause used between batches
        logger: Optional logger override
    """

    def __init__(
        self,
        store: RecordStore,
        config_manager: ConfigManager,
        clock: Callable[[], datetime] = utc_now,
        sleep: Sleeper = asyncio.sleep,
        logger: Optional[Logger] = None,
    ) -> None:
        self.store = store
        self._config = config_manager
        self._clock = clock
        self._sleep = sleep
        self.log = logger or get_logger(__name__)

        self.stats = CleanupStats()
        self._state = RetentionState.IDLE
        self._run_lock: Optional[asyncio.Lock] = None

    @property
    def state(self) -> RetentionState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._run_lock is not None and self._run_lock.locked()

    def _lock(self) -> asyncio.Lock:
        if self._run_lock is None:
            self._run_lock = asyncio.Lock()
        return self._run_lock

    def policy(self) -> RetentionPolicy:
        return RetentionPolicy.from_config(self._config)

    # ========================================================================
    # Run
    # ========================================================================

    async def run(self, force: bool = False) -> CleanupReport:
        """
        Execute one full retention run.

        Raises:
            RetentionRunError: the run aborted; stats.errors was incremented
        """
        async with self._lock():
            started = self._clock()
            report = CleanupReport(started_at=started, forced=force)

            async with LogContext(component="retention", operation="retention_run"):
                self.log.info("Retention run started", extra={"forced": force})
                try:
                    policy = self.policy()
                    await self._zombie_pass(policy, report, force)
                    await self._size_cap_pass(policy, report)
                except Exception as exc:
                    phase = self._state.value
                    self.stats.record_failure(self._clock(), exc)
                    self.log.error(
                        "Retention run aborted",
                        extra={
                            "phase": phase,
                            "error": str(exc),
                            "error_type": type(exc).__name__,
                            "errors_total": self.stats.errors,
                        },
                        exc_info=True,
                    )
                    raise RetentionRunError(phase, exc) from exc
                finally:
                    self._state = RetentionState.IDLE

                report.finished_at = self._clock()
                self.stats.record_success(report)
                self.log.info(
                    "Retention run finished",
                    extra={
                        "removed": report.removed,
                        "zombie_players": report.zombie_players,
                        "zombie_pass_skipped": report.zombie_pass_skipped,
                        "excess_rows": report.excess_rows,
                        "duration_seconds": report.duration_seconds,
                    },
                )
                return report

    # ========================================================================
    # Zombie Pass
    # ========================================================================

    async def detect_zombies(self, policy: Optional[RetentionPolicy] = None) -> List[str]:
        """Players with no game record updated since the inactivity cutoff."""
        policy = policy or self.policy()
        cutoff = self._clock() - policy.inactivity

        active = await self.store.find_active_players(cutoff)
        known = await self.store.find_all_players()
        return sorted(known - active)

    async def _zombie_pass(
        self, policy: RetentionPolicy, report: CleanupReport, force: bool
    ) -> None:
        self._state = RetentionState.DETECT_ZOMBIES

        if not force and await self._guard_allows_skip(policy):
            report.zombie_pass_skipped = True
            return

        zombies = await self.detect_zombies(policy)
        report.zombie_players = len(zombies)
        if not zombies:
            self.log.info("No zombie players found")
            return

        self._state = RetentionState.BATCH_DELETE
        self.log.info(
            "Deleting zombie players",
            extra={"zombie_players": len(zombies), "sample": zombies[:5]},
        )

        async def delete_zombies(session: AsyncSession) -> Dict[str, int]:
            removed: Dict[str, int] = {}
            batch = policy.batch_size

            # Gameplay rows first and paced; every table is chunked to bound IN lists
            for table, model in TABLE_MODELS.items():
                paced = model is GameRecord
                rows = 0
                for start in range(0, len(zombies), batch):
                    if start and paced:
                        await self._sleep(policy.batch_pause_seconds)
                    chunk = zombies[start : start + batch]
                    deleted = await self.store.delete_players(session, model, chunk)
                    rows += deleted
                    self.log.debug(
                        "Zombie batch deleted",
                        extra={
                            "table": table,
                            "batch_start": start,
                            "batch_size": len(chunk),
                            "deleted": deleted,
                        },
                    )
                removed[table] = rows
            return removed

        report.zombie_rows = await self.store.run_in_transaction(delete_zombies)

    async def _guard_allows_skip(self, policy: RetentionPolicy) -> bool:
        if policy.zombie_guard_table is None:
            return False
        guard = policy.table(policy.zombie_guard_table)
        if guard.max_rows is None:
            return False

        current = await self.store.count_all(guard.model)
        if current > guard.max_rows:
            return False

        self.log.info(
            "Zombie pass skipped; guard table within cap",
            extra={"table": guard.table, "current": current, "max_rows": guard.max_rows},
        )
        return True

    # ========================================================================
    # Size-Cap Pass
    # ========================================================================

    async def _size_cap_pass(self, policy: RetentionPolicy, report: CleanupReport) -> None:
        for table_policy in policy.capped_tables():
            self._state = RetentionState.SIZE_CAP_CHECK
            assert table_policy.max_rows is not None

            current = await self.store.count_all(table_policy.model)
            excess = current - table_policy.max_rows
            if excess <= 0:
                continue

            watermark = await self.store.find_oldest_boundary(table_policy.model, excess)
            if watermark is None:
                continue

            self._state = RetentionState.BATCH_DELETE_EXCESS
            self.log.info(
                "Trimming table to cap",
                extra={
                    "table": table_policy.table,
                    "current": current,
                    "max_rows": table_policy.max_rows,
                    "excess": excess,
                },
            )
            report.excess_rows[table_policy.table] = await self.store.run_in_transaction(
                functools.partial(
                    self._delete_excess,
                    policy=policy,
                    table_policy=table_policy,
                    watermark=watermark,
                    excess=excess,
                )
            )

    async def _delete_excess(
        self,
        session: AsyncSession,
        policy: RetentionPolicy,
        table_policy: TablePolicy,
        watermark: Watermark,
        excess: int,
    ) -> int:
        removed = 0
        remaining = excess
        while remaining > 0:
            deleted = await self.store.delete_older_than(
                session,
                table_policy.model,
                watermark,
                min(policy.batch_size, remaining),
            )
            if deleted == 0:
                break
            removed += deleted
            remaining -= deleted
            if remaining > 0:
                await self._sleep(policy.batch_pause_seconds)
        return removed

    # ========================================================================
    # Reporting
    # ========================================================================

    async def check_table_sizes(
        self, policy: Optional[RetentionPolicy] = None
    ) -> Dict[str, TableSize]:
        policy = policy or self.policy()
        sizes: Dict[str, TableSize] = {}
        for table_policy in policy.tables:
            sizes[table_policy.table] = TableSize(
                table=table_policy.table,
                current=await self.store.count_all(table_policy.model),
                max_rows=table_policy.max_rows,
            )
        return sizes
