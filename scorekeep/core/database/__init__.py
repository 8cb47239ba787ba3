"""
Database subsystem for Scorekeep.

Provides the async SQLAlchemy engine, session management, and the ORM base
classes and mixins used by model definitions.
"""

from scorekeep.core.database.base import Base, IdMixin, TimestampMixin, utc_now
from scorekeep.core.database.service import (
    DatabaseInitializationError,
    DatabaseNotInitializedError,
    DatabaseService,
)

__all__ = [
    "Base",
    "IdMixin",
    "TimestampMixin",
    "utc_now",
    "DatabaseService",
    "DatabaseInitializationError",
    "DatabaseNotInitializedError",
]
