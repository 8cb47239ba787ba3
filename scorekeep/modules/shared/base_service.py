"""
Base Service Foundation

Purpose
-------
Provides the foundational class for the Scorekeep domain services
(leaderboard, retention). Services implement business rules, own their
in-memory state, and delegate persistence to repositories.

Design Notes
------------
This base class provides:
- Structured logging with operation context
- Caller input validation

What this class does NOT do:
- Manage database transactions (that's DatabaseService's job)
- Handle SQLAlchemy sessions directly

Usage
-----
    class LeaderboardService(BaseService):
        def __init__(self, store, rank_store, cache, config_manager, logger):
            super().__init__(config_manager, logger)
            ...
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from scorekeep.modules.shared.exceptions import ValidationError

if TYPE_CHECKING:
    from logging import Logger

    from scorekeep.core.config.manager import ConfigManager


class BaseService:
    """
    Base class for all domain services.

    Args:
        config_manager: Application configuration manager
        logger: Structured logger instance
    """

    def __init__(self, config_manager: ConfigManager, logger: Logger) -> None:
        self._config = config_manager
        self.log = logger

    def log_operation(self, operation: str, **context: Any) -> None:
        """Log a service operation with structured context."""
        self.log.info(
            f"Service operation: {operation}",
            extra={"operation": operation, **context},
        )

    def validate_positive_int(self, value: int, name: str) -> None:
        """
        Validate that a value is a positive integer.

        Raises:
            ValidationError: If value is not positive
        """
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ValidationError(
                name, f"{name} must be a positive integer, got {value}"
            )

