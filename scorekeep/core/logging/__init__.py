"""
Scorekeep Logging Infrastructure

Exports the structured logging subsystem and log context helpers.
"""

from scorekeep.core.logging.logger import (
    LogContext,
    LoggerConfig,
    clear_log_context,
    get_logger,
    setup_logging,
    shutdown_logging,
)

__all__ = [
    "setup_logging",
    "shutdown_logging",
    "get_logger",
    "LogContext",
    "clear_log_context",
    "LoggerConfig",
]
