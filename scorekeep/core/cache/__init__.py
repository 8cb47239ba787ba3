"""
In-process caching for Scorekeep.

Provides the read-through RankCache that fronts the leaderboard boards.
"""

from scorekeep.core.cache.rank_cache import CacheEntry, RankCache

__all__ = ["CacheEntry", "RankCache"]
