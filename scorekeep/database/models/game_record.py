"""
GameRecord: one row per (player, game_type, sub_type).
Schema only.
"""

from __future__ import annotations

from sqlalchemy import Float, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from scorekeep.core.database.base import Base, IdMixin, TimestampMixin


class GameRecord(Base, IdMixin, TimestampMixin):
    """
    Best result of a player in one category.

    The (player_id, game_type, sub_type) triple is the natural key; the
    surrogate ``id`` only exists for persistence mechanics and as the
    final tie-breaker when ordering.
    """

    __tablename__ = "game_records"
    __table_args__ = (
        UniqueConstraint(
            "player_id", "game_type", "sub_type", name="uq_game_records_player_category"
        ),
        Index("ix_game_records_category_score", "game_type", "sub_type", "score"),
        Index("ix_game_records_player", "player_id"),
    )

    player_id: Mapped[str] = mapped_column(String(64), nullable=False)
    game_type: Mapped[int] = mapped_column(Integer, nullable=False)
    sub_type: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    app_id: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    play_time: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)

    nick_name: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    avatar_url: Mapped[str] = mapped_column(String(512), nullable=False, default="")
