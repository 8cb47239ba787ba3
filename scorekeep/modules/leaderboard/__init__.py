"""
Leaderboards: category rules, bounded Top-N boards and the request-facing
LeaderboardService.
"""

from scorekeep.modules.leaderboard.categories import (
    CategoryKey,
    CategoryRule,
    CategoryRules,
    RankEntry,
    SortOrder,
)
from scorekeep.modules.leaderboard.rank_store import RankStore
from scorekeep.modules.leaderboard.service import LeaderboardService

__all__ = [
    "CategoryKey",
    "CategoryRule",
    "CategoryRules",
    "LeaderboardService",
    "RankEntry",
    "RankStore",
    "SortOrder",
]
