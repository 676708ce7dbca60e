"""
Infrastructure exceptions for QuizRank.

Purpose
-------
Errors raised below the ranking domain: configuration problems and
failures of the key/value backends (SQL, Redis). Ranking errors live in
`quizrank.modules.shared.exceptions` and share `ErrorSeverity` with this
module.

Design Notes
------------
- Every exception exposes `message`, `details`, `severity`,
  `is_retryable` and `error_code`, and serializes with `to_dict()` for
  `extra={"error": ...}` logging.
- Backend wrappers keep the underlying exception on `original_error` and
  are raised `from` it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional


class ErrorSeverity(Enum):
    """How loudly an error should be logged."""

    DEBUG = "debug"
    INFO = "info"  # rejected input
    WARNING = "warning"  # degraded but recovered (cache fallback)
    ERROR = "error"
    CRITICAL = "critical"  # cannot start


def _describe(original_error: Optional[Exception]) -> Dict[str, Any]:
    return {
        "error": str(original_error) if original_error else None,
        "error_type": type(original_error).__name__ if original_error else None,
    }


class RankingInfrastructureException(Exception):
    """
    Base class for infrastructure failures.

    Subclasses pick their defaults through `DEFAULT_SEVERITY` and
    `DEFAULT_RETRYABLE`; callers may override either per instance.
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
        self.message = message
        self.details: Dict[str, Any] = dict(details or {})
        self.severity = severity or self.DEFAULT_SEVERITY
        self.is_retryable = (
            self.DEFAULT_RETRYABLE if is_retryable is None else is_retryable
        )
        self.error_code = error_code or type(self).__name__
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_type": type(self).__name__,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
            "severity": self.severity.value,
            "is_retryable": self.is_retryable,
        }

    def __str__(self) -> str:
        if not self.details:
            return f"[{self.error_code}] {self.message}"
        return f"[{self.error_code}] {self.message} | Details: {self.details}"


class ConfigurationError(RankingInfrastructureException):
    """A configuration value is unusable; raised by `Config.validate()`."""

    DEFAULT_SEVERITY = ErrorSeverity.CRITICAL

    def __init__(self, config_key: str, message: str) -> None:
        self.config_key = config_key
        super().__init__(
            f"Invalid {config_key}: {message}",
            details={"config_key": config_key, "reason": message},
            error_code="CONFIG_ERROR",
        )


class RedisConnectionError(RankingInfrastructureException):
    """
    The Redis client could not be created or a command failed.

    Args:
        operation: Redis command or lifecycle step (e.g. "initialize", "get")
        original_error: Exception raised by redis-py
    """

    DEFAULT_RETRYABLE = True

    def __init__(self, operation: str, original_error: Exception) -> None:
        self.operation = operation
        self.original_error = original_error
        super().__init__(
            f"Redis {operation} failed: {original_error}",
            details={"operation": operation, **_describe(original_error)},
            error_code="REDIS_ERROR",
        )


class CacheError(RankingInfrastructureException):
    """
    A key/value backend failed to read, write or remove a key.

    Args:
        operation: "get", "set" or "remove"
        cache_key: Key being accessed
        original_error: Backend exception, if any
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        operation: str,
        cache_key: str,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.operation = operation
        self.cache_key = cache_key
        self.original_error = original_error
        reason = str(original_error) if original_error else "operation failed"
        super().__init__(
            f"Cache {operation} failed for '{cache_key}': {reason}",
            details={
                "operation": operation,
                "cache_key": cache_key,
                **_describe(original_error),
            },
            error_code="CACHE_ERROR",
        )
