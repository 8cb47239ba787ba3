"""
Scorekeep Shared Module

Domain-level foundations shared by the leaderboard and retention modules:

- BaseService: logging and config access for service classes
- BaseRepository: type-safe async database access patterns
- Domain exceptions: structured errors with severity and retry hints

Usage
-----
    from scorekeep.modules.shared import BaseService, NotFoundError
"""

from scorekeep.modules.shared.base_repository import BaseRepository
from scorekeep.modules.shared.base_service import BaseService
from scorekeep.modules.shared.exceptions import (
    ConfigurationError,
    ErrorSeverity,
    NotFoundError,
    RecordRejectedError,
    RetentionRunError,
    ScorekeepError,
    ValidationError,
)

__all__ = [
    "BaseRepository",
    "BaseService",
    "ConfigurationError",
    "ErrorSeverity",
    "NotFoundError",
    "RecordRejectedError",
    "RetentionRunError",
    "ScorekeepError",
    "ValidationError",
]
