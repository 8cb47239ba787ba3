"""
PlayerProfile: per-player profile and currency row.
Schema only.
"""

from __future__ import annotations

from sqlalchemy import Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from scorekeep.core.database.base import Base, IdMixin, TimestampMixin


class PlayerProfile(Base, IdMixin, TimestampMixin):
    """Display fields, coin balance and owned skins of a player."""

    __tablename__ = "player_profiles"

    player_id: Mapped[str] = mapped_column(
        String(64), nullable=False, unique=True, index=True
    )
    nick_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    avatar_url: Mapped[str] = mapped_column(String(512), nullable=False, default="")

    score: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skin_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    skin_list: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
