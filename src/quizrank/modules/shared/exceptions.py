"""
Domain exceptions for the QuizRank ranking engine.

Purpose
-------
Define the structured, domain-specific exception hierarchy raised by the
ranking services. Only `InvalidEventError` (and its `ValidationError` base)
is caller-visible; the remaining exceptions describe failures that the engine
recovers from internally and records in logs.

Design Notes
------------
- All domain exceptions inherit from `RankingDomainException`.
- Each exception carries:
  - `message`: human-readable description
  - `details`: additional structured context (dict-like)
  - `severity`: `ErrorSeverity` value for logging/alerting
  - `is_retryable`: whether the operation can be retried
  - `error_code`: short, stable identifier for programmatic use
- Recovered exceptions are constructed even though they are never raised
  past the engine boundary, so that the log record has the same structured
  shape as a raised error (`exc.to_dict()`).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

from quizrank.core.exceptions import ErrorSeverity


class RankingDomainException(Exception):
    """
    Base class for ranking errors.

    Carries the same structured fields as the infrastructure exceptions
    (`message`, `details`, `severity`, `is_retryable`, `error_code`) so log
    records have one shape regardless of the layer that failed.
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


class ValidationError(RankingDomainException):
    """
    Raised when input validation fails.

    Args:
        field: Name of the field that failed validation
        message: Description of the validation failure
    """

    DEFAULT_SEVERITY = ErrorSeverity.INFO
    DEFAULT_RETRYABLE = False

    def __init__(self, field: str, message: str, **details: Any) -> None:
        self.field = field
        super().__init__(
            message,
            details={"field": field, **details},
            error_code=f"INVALID_{field.upper()}",
        )


class InvalidEventError(ValidationError):
    """
    Raised when a quiz-completion event cannot be ingested.

    The event is rejected before any standing, history, or snapshot is
    touched, and no observer is notified.

    Args:
        field: Offending event field (e.g., "total_questions")
        message: Description of the problem
        user_id: User the event was submitted for
        quiz_id: Quiz the event refers to
    """

    def __init__(
        self,
        field: str,
        message: str,
        user_id: Optional[str] = None,
        quiz_id: Optional[str] = None,
    ) -> None:
        self.user_id = user_id
        self.quiz_id = quiz_id
        super().__init__(field, message, user_id=user_id, quiz_id=quiz_id)
        self.error_code = "INVALID_SCORE_EVENT"


class RemoteUnavailableError(RankingDomainException):
    """
    Raised by a remote ranking source when the global listing cannot be read.

    Recovered inside the persistence layer by falling back to the cache.

    Args:
        reason: Short description of the failure
        source: Identifier of the remote source (usually its URL)
        original_error: Underlying transport or parse error (if any)
    """

    DEFAULT_SEVERITY = ErrorSeverity.WARNING
    DEFAULT_RETRYABLE = True

    def __init__(
        self,
        reason: str,
        source: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ) -> None:
        self.reason = reason
        self.source = source
        self.original_error = original_error
        super().__init__(
            f"Remote ranking source unavailable: {reason}",
            details={
                "source": source,
                "error_type": (
                    type(original_error).__name__ if original_error else None
                ),
            },
            error_code="REMOTE_UNAVAILABLE",
        )


class CacheWriteError(RankingDomainException):
    """
    Raised when writing a snapshot or history to the durable cache fails.

    Best-effort persistence: logged and swallowed by the engine.

    Args:
        cache_key: Key that could not be written
        original_error: Underlying backend error
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = True

    def __init__(self, cache_key: str, original_error: Optional[Exception] = None) -> None:
        self.cache_key = cache_key
        self.original_error = original_error
        error_msg = str(original_error) if original_error else "write failed"
        super().__init__(
            f"Failed to write ranking cache key '{cache_key}': {error_msg}",
            details={
                "cache_key": cache_key,
                "error_type": (
                    type(original_error).__name__ if original_error else None
                ),
            },
            error_code="CACHE_WRITE_FAILED",
        )


class ObserverError(RankingDomainException):
    """
    Raised (and immediately logged) when a ranking observer callback fails.

    Isolated per observer: delivery continues with the next observer.

    Args:
        observer: Identifier of the failing observer
        event_name: Event being delivered
        original_error: Exception raised by the observer
    """

    DEFAULT_SEVERITY = ErrorSeverity.ERROR
    DEFAULT_RETRYABLE = False

    def __init__(self, observer: str, event_name: str, original_error: Exception) -> None:
        self.observer = observer
        self.event_name = event_name
        self.original_error = original_error
        super().__init__(
            f"Observer '{observer}' failed handling '{event_name}': {original_error}",
            details={
                "observer": observer,
                "event_name": event_name,
                "error_type": type(original_error).__name__,
            },
            error_code="OBSERVER_FAILED",
        )

