"""
Persisted tables.

- GameRecord: per-player-per-category gameplay record (leaderboard source)
- PlayerProfile: profile / currency row, one per player
- ShareReward: reward rows keyed by player
"""

from scorekeep.database.models.game_record import GameRecord
from scorekeep.database.models.player_profile import PlayerProfile
from scorekeep.database.models.share_reward import ShareReward

__all__ = ["GameRecord", "PlayerProfile", "ShareReward"]
