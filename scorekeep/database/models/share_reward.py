"""
ShareReward: share-to-earn reward bookkeeping per player.
Schema only.
"""

from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from scorekeep.core.database.base import Base, IdMixin, TimestampMixin


class ShareReward(Base, IdMixin, TimestampMixin):
    __tablename__ = "share_rewards"

    player_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    share_time: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    share_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
