"""
Data retention: zombie-player cleanup, per-table size caps, and the daily
scheduler that drives them.
"""

from scorekeep.modules.retention.engine import RetentionEngine
from scorekeep.modules.retention.policy import (
    CleanupReport,
    CleanupStats,
    RetentionPolicy,
    RetentionState,
    TablePolicy,
    TableSize,
)
from scorekeep.modules.retention.scheduler import DailyScheduler
from scorekeep.modules.retention.service import RetentionService

__all__ = [
    "CleanupReport",
    "CleanupStats",
    "DailyScheduler",
    "RetentionEngine",
    "RetentionPolicy",
    "RetentionService",
    "RetentionState",
    "TablePolicy",
    "TableSize",
]
