"""
Listener error handling for the QuizRank EventBus.

Centralizes the default logging of listener failures so that every
isolated error is reported with the same structured fields.
"""

from __future__ import annotations

from quizrank.core.event.types import EventListener
from quizrank.core.logging.logger import get_logger

logger = get_logger(__name__)


def handle_listener_error(
    event_name: str,
    listener: EventListener,
    exc: Exception,
) -> None:
    """
    Log a listener execution error.

    Never raises: delivery to the remaining listeners continues.
    """
    logger.error(
        "EventBus listener error",
        extra={
            "event_name": event_name,
            "listener_id": listener.identifier,
            "error": str(exc),
            "error_type": type(exc).__name__,
        },
        exc_info=(type(exc), exc, exc.__traceback__),
    )
