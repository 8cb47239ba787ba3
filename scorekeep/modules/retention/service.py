"""
Retention Service

Admin-facing API over the retention engine: forced runs, status reporting,
and the job the daily scheduler fires. After a run that removed rows the
leaderboard's in-memory views are dropped so boards reload from storage.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Dict, Optional

from scorekeep.core.logging.logger import get_logger
from scorekeep.modules.shared.base_service import BaseService

if TYPE_CHECKING:
    from logging import Logger

    from scorekeep.core.config.manager import ConfigManager
    from scorekeep.modules.leaderboard.service import LeaderboardService
    from scorekeep.modules.retention.engine import RetentionEngine
    from scorekeep.modules.retention.policy import CleanupReport
    from scorekeep.modules.retention.scheduler import DailyScheduler


class RetentionService(BaseService):
    def __init__(
        self,
        engine: RetentionEngine,
        config_manager: ConfigManager,
        leaderboard: Optional[LeaderboardService] = None,
        logger: Optional[Logger] = None,
    ) -> None:
        super().__init__(config_manager, logger or get_logger(__name__))
        self.engine = engine
        self.leaderboard = leaderboard
        self.scheduler: Optional[DailyScheduler] = None

    def attach_scheduler(self, scheduler: DailyScheduler) -> None:
        self.scheduler = scheduler

    async def run_scheduled(self) -> CleanupReport:
        """Job fired by the daily scheduler; honours the zombie guard."""
        report = await self.engine.run(force=False)
        self._after_run(report)
        return report

    async def force_cleanup_run(self) -> CleanupReport:
        """
        Run immediately, bypassing the zombie guard.

        Returns:
            The report of this run (rows removed per table)

        Raises:
            RetentionRunError: the run aborted and was rolled back
        """
        self.log_operation("force_cleanup_run")
        report = await self.engine.run(force=True)
        self._after_run(report)
        return report

    async def get_cleanup_status(self, include_table_sizes: bool = True) -> Dict[str, Any]:
        policy = self.engine.policy()
        status: Dict[str, Any] = {
            "state": self.engine.state.value,
            "running": self.engine.is_running,
            "stats": self.engine.stats.snapshot(),
            "policy": policy.to_dict(),
            "scheduler_running": self.scheduler is not None and self.scheduler.is_running,
            "next_run": (
                self.scheduler.next_run.isoformat()
                if self.scheduler is not None and self.scheduler.next_run is not None
                else None
            ),
        }
        if include_table_sizes:
            sizes = await self.engine.check_table_sizes(policy)
            status["table_sizes"] = {name: size.to_dict() for name, size in sizes.items()}
        return status

    def _after_run(self, report: CleanupReport) -> None:
        if report.removed and self.leaderboard is not None:
            self.leaderboard.clear_caches()
