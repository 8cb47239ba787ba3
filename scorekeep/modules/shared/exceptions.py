"""
Domain exceptions for Scorekeep.

Purpose
-------
Define the structured exception hierarchy raised by the leaderboard and
retention services. The request-handling layer translates these into
responses; the retention status endpoint surfaces them to operators.

Design Notes
------------
- All domain exceptions inherit from `ScorekeepError`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict-like)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
- Transient storage errors are not wrapped here; SQLAlchemy's own
  exceptions propagate so the caller at the adapter boundary can retry.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """Error severity levels for logging and alerting."""

    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class ScorekeepError(Exception):
    """
    Base exception for all Scorekeep domain-level errors.

    Args:
        message: Human-readable error message
        details: Additional structured data about the error (dict-like)
        severity: Error severity level for logging handlers
        is_retryable: Whether the operation can be retried
        error_code: Optional code for programmatic handling
    """

    DEFAULT_SEVERITY: ErrorSeverity = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE: bool = False

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        severity: Optional[ErrorSeverity] = None,
        is_retryable: Optional[bool] = None,
        error_code: Optional[str] = None,
    ) -> None:
        self.message: str = message
        self.details: Dict[str, Any] = details or {}
        self.severity: ErrorSeverity = severity or self.DEFAULT_SEVERITY
        self.is_retryable: bool = (
            is_retryable if is_retryable is not None else self.DEFAULT_RETRYABLE
        )
        self.error_code: str = error_code or self.__class__.__name__
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        details_str = f" | Details: {self.details}" if self.details else ""
        return f"[{self.error_code}] {self.message}{details_str}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"details={self.details!r}, "
            f"severity={self.severity.value!r}, "
            f"is_retryable={self.is_retryable!r}"
            ")"
        )


class ValidationError(ScorekeepError):
    """
    Raised when caller input fails validation (bad category key, negative
    limit, unknown ranking field).
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, field: str, message: str) -> None:
        self.field = field
        self.validation_message = message
        super().__init__(
            f"Validation error for {field}: {message}",
            details={"field": field, "validation_message": message},
            error_code=f"VALIDATION_{field.upper()}",
        )


class NotFoundError(ScorekeepError):
    """
    Raised when a requested record cannot be found.

    Args:
        resource_type: Type of resource (e.g., "GameRecord")
        identifier: Optional identifier for the missing resource
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO

    def __init__(self, resource_type: str, identifier: Optional[Any] = None) -> None:
        self.resource_type = resource_type
        self.identifier = identifier

        if identifier is not None:
            message = f"{resource_type} not found: {identifier}"
        else:
            message = f"{resource_type} not found"

        super().__init__(
            message,
            details={"resource_type": resource_type, "identifier": identifier},
            error_code=f"{resource_type.upper()}_NOT_FOUND",
        )


class RecordRejectedError(ScorekeepError):
    """
    Raised when a score submission lacks required fields.

    A data-integrity anomaly: the submission is dropped before any write,
    logged, and never treated as fatal.
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING

    def __init__(self, missing_fields: list[str], context: Optional[Dict[str, Any]] = None) -> None:
        self.missing_fields = missing_fields
        super().__init__(
            f"Score submission rejected; missing fields: {', '.join(missing_fields)}",
            details={"missing_fields": missing_fields, **(context or {})},
            error_code="RECORD_REJECTED",
        )


class RetentionRunError(ScorekeepError):
    """
    Raised when a retention run aborts.

    The active transaction has been rolled back; the next scheduled run
    recomputes everything from scratch.
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(self, phase: str, cause: BaseException) -> None:
        self.phase = phase
        self.cause = cause
        super().__init__(
            f"Retention run aborted during {phase}: {cause}",
            details={"phase": phase, "cause_type": type(cause).__name__},
            error_code="RETENTION_RUN_FAILED",
        )


class ConfigurationError(ScorekeepError):
    """Raised when a required configuration key is missing or malformed."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, key: str, message: str) -> None:
        self.key = key
        super().__init__(
            message,
            details={"key": key},
            error_code="CONFIGURATION_ERROR",
        )
