"""
Service Container
=================

Purpose
-------
Build every Scorekeep component exactly once and hand the shared
instances to whoever needs them. The RankStore and RankCache are created
first and injected into the services, so no module reaches for ambient
global state.

Responsibilities
----------------
- Construct the record store, boards, cache, services and scheduler
- Start infrastructure in order: logging, database, cache sweep, scheduler
- Stop it in reverse order, cancelling every timer so the loop can exit

Usage
-----
    container = ServiceContainer(ConfigManager.from_directory(Config.CONFIG_DIR))
    await container.initialize()
    await container.leaderboard.record_score(CategoryKey(1001), "p-1", 42.0)
    ...
    await container.shutdown()
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING, Any, Dict, Optional

from scorekeep.core.cache.rank_cache import RankCache
from scorekeep.core.config.config import Config
from scorekeep.core.config.manager import ConfigManager
from scorekeep.core.database.service import DatabaseService
from scorekeep.core.logging.logger import (
    get_logger,
    get_logging_metrics,
    setup_logging,
    shutdown_logging,
)
from scorekeep.modules.leaderboard.categories import CategoryRules
from scorekeep.modules.leaderboard.rank_store import RankStore
from scorekeep.modules.leaderboard.service import LeaderboardService
from scorekeep.modules.records.repository import RecordStore
from scorekeep.modules.retention.engine import RetentionEngine
from scorekeep.modules.retention.scheduler import DailyScheduler
from scorekeep.modules.retention.service import RetentionService

if TYPE_CHECKING:
    from logging import Logger

_NOT_INITIALIZED = "ServiceContainer not initialized. Call initialize() first."


class ServiceContainer:
    """
    Dependency injection root for one Scorekeep process.

    Args:
        config_manager: YAML-backed tunables; loaded from Config.CONFIG_DIR
            when omitted
        database_url: Optional override of Config.DATABASE_URL
        configure_logging: Install the structured logging pipeline
        create_schema: Create missing tables on startup (dev/test only)
    """

    def __init__(
        self,
        config_manager: Optional[ConfigManager] = None,
        *,
        database_url: Optional[str] = None,
        configure_logging: bool = True,
        create_schema: bool = False,
        logger: Optional[Logger] = None,
    ) -> None:
        self._config_manager = config_manager
        self._database_url = database_url
        self._configure_logging = configure_logging
        self._create_schema = create_schema
        self._logger = logger or get_logger(__name__)

        self._records: Optional[RecordStore] = None
        self._rank_store: Optional[RankStore] = None
        self._cache: Optional[RankCache] = None
        self._leaderboard: Optional[LeaderboardService] = None
        self._engine: Optional[RetentionEngine] = None
        self._scheduler: Optional[DailyScheduler] = None
        self._retention: Optional[RetentionService] = None

        self._initialized = False
        self._init_duration: Optional[float] = None

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def build(self) -> None:
        """Construct every component without starting anything (idempotent)."""
        if self._leaderboard is not None:
            return

        if self._config_manager is None:
            self._config_manager = ConfigManager.from_directory(Config.CONFIG_DIR)
        config_manager = self._config_manager

        self._records = RecordStore(DatabaseService, get_logger("scorekeep.records"))
        self._rank_store = RankStore(
            CategoryRules.from_config(config_manager),
            capacity=Config.LEADERBOARD_TOP_N,
            logger=get_logger("scorekeep.leaderboard.rank_store"),
        )
        self._cache = RankCache(
            ttl_seconds=Config.RANK_CACHE_TTL_SECONDS,
            sweep_interval_seconds=Config.RANK_CACHE_SWEEP_INTERVAL_SECONDS,
            max_entries=Config.RANK_CACHE_MAX_ENTRIES,
        )
        self._leaderboard = LeaderboardService(
            self._records,
            self._rank_store,
            self._cache,
            config_manager,
            logger=get_logger("scorekeep.leaderboard"),
        )
        self._engine = RetentionEngine(
            self._records,
            config_manager,
            logger=get_logger("scorekeep.retention.engine"),
        )
        self._retention = RetentionService(
            self._engine,
            config_manager,
            leaderboard=self._leaderboard,
            logger=get_logger("scorekeep.retention"),
        )
        self._scheduler = DailyScheduler(
            self._retention.run_scheduled,
            hour=Config.RETENTION_RUN_HOUR,
            minute=Config.RETENTION_RUN_MINUTE,
            logger=get_logger("scorekeep.retention.scheduler"),
        )
        self._retention.attach_scheduler(self._scheduler)

    async def initialize(self) -> None:
        if self._initialized:
            self._logger.warning("ServiceContainer already initialized")
            return

        start = time.perf_counter()
        if self._configure_logging:
            setup_logging()

        self._logger.info("Service container initialization starting...")
        try:
            Config.validate()
            self.build()
            assert self._cache is not None and self._scheduler is not None

            await DatabaseService.initialize(self._database_url)
            if self._create_schema:
                await DatabaseService.create_schema()

            self._cache.start()
            if Config.RETENTION_SCHEDULER_ENABLED:
                self._scheduler.start()
            else:
                self._logger.info("Retention scheduler disabled by configuration")

        except Exception:
            self._logger.error("Service container initialization failed", exc_info=True)
            await self._stop_components()
            raise

        self._initialized = True
        self._init_duration = time.perf_counter() - start
        self._logger.info(
            "Service container initialized",
            extra={"duration_seconds": round(self._init_duration, 3)},
        )

    async def shutdown(self) -> None:
        if not self._initialized:
            return

        self._logger.info("Shutting down service container...")
        await self._stop_components()
        self._initialized = False
        self._logger.info("Service container shut down")

        if self._configure_logging:
            shutdown_logging()

    async def _stop_components(self) -> None:
        if self._scheduler is not None:
            await self._scheduler.stop()
        if self._cache is not None:
            await self._cache.stop()
        await DatabaseService.shutdown()

    async def health_check(self) -> Dict[str, Any]:
        metrics = get_logging_metrics()
        return {
            "initialized": self._initialized,
            "database": await DatabaseService.health_check(),
            "cache_sweeping": self._cache is not None and self._cache.is_sweeping,
            "scheduler_running": self._scheduler is not None and self._scheduler.is_running,
            "logging": {
                "records_enqueued": metrics.records_enqueued,
                "records_dropped": metrics.records_dropped,
            },
            "config": Config.get_config_summary(),
            "init_time_seconds": (
                round(self._init_duration, 3) if self._init_duration is not None else None
            ),
        }

    # ========================================================================
    # Accessors
    # ========================================================================

    @property
    def leaderboard(self) -> LeaderboardService:
        if self._leaderboard is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._leaderboard

    @property
    def retention(self) -> RetentionService:
        if self._retention is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._retention

    @property
    def rank_cache(self) -> RankCache:
        if self._cache is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._cache

    @property
    def rank_store(self) -> RankStore:
        if self._rank_store is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._rank_store

    @property
    def scheduler(self) -> DailyScheduler:
        if self._scheduler is None:
            raise RuntimeError(_NOT_INITIALIZED)
        return self._scheduler
