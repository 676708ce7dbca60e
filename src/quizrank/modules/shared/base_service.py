"""
Base Service Foundation

Purpose
-------
Common base for QuizRank services: a logger with operation-scoped helpers
and an EventBus for announcing state changes.

Services own their rules and raise domain exceptions; they do not open
database sessions or Redis connections (store adapters do) and do not pick
backends (ApplicationContext does).

Usage
-----
    class RankingEngine(BaseService):
        def __init__(self, persistence, event_bus):
            super().__init__(event_bus, get_logger(__name__))
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from logging import Logger

    from quizrank.core.event.bus import EventBus


class BaseService:
    def __init__(self, event_bus: EventBus, logger: Logger) -> None:
        self._events = event_bus
        self.log = logger

    async def emit_event(self, event_type: str, payload: Any) -> int:
        """Publish to every subscriber; returns how many handled it without error."""
        return await self._events.publish(event_type, payload)

    def log_operation(self, operation: str, **context: Any) -> None:
        self.log.info(
            "%s completed",
            operation,
            extra={"operation": operation, **context},
        )

    def log_error(self, operation: str, error: Exception, **context: Any) -> None:
        """
        Log a recovered failure. Structured exceptions are serialized with
        `to_dict()` under "error".
        """
        to_dict = getattr(error, "to_dict", None)
        self.log.error(
            "%s failed: %s",
            operation,
            error,
            extra={
                "operation": operation,
                "error": to_dict() if callable(to_dict) else {"message": str(error)},
                "error_type": type(error).__name__,
                **context,
            },
        )
