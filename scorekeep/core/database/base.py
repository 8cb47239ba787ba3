"""
ORM base classes and mixins for Scorekeep models.

Schema-only building blocks: a declarative ``Base``, a surrogate integer
primary key mixin, and timezone-aware created/updated timestamps.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import DateTime, Integer
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Declarative base shared by every persisted table."""


class IdMixin:
    """Surrogate primary key; the natural key lives on each model."""

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)


class TimestampMixin:
    """
    Creation and last-update instants.

    ``updated_at`` drives both zombie detection and the size-cap watermark,
    so it is indexed on every model that uses this mixin.
    """

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
        index=True,
    )
