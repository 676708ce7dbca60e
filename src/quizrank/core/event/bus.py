"""
QuizRank EventBus: ordered async pub/sub with per-listener error isolation.

Purpose
-------
Deliver ranking notifications to observers. Each publish invokes every
listener registered for the event, one at a time, in registration order.

Responsibilities
----------------
- Register/unregister listeners (by callback or identifier)
- Publish an event to all listeners of that event name
- Await async listeners; call sync listeners inline
- Error isolation (one failing listener never blocks the next)
- Lightweight metrics and introspection

Design Decisions
----------------
- **Instance-based**: each engine owns its bus; tests build their own.
- **Sequential delivery**: listeners run strictly in registration order
  and the publish call returns only after the last one completes.
- **Snapshot of listeners per publish**: subscribing or unsubscribing from
  inside a listener affects the next publish, not the current one.
- **Pluggable error handler**: callers may translate listener failures
  into their own error types before logging.

Thread Safety
-------------
Designed for single-threaded asyncio usage.
"""

from __future__ import annotations

import inspect
from collections import Counter
from typing import Any, Optional, Union

from quizrank.core.event.errors import handle_listener_error
from quizrank.core.event.types import (
    CallbackType,
    EventListener,
    EventPayload,
    ListenerErrorHandler,
)
from quizrank.core.logging.logger import get_logger

logger = get_logger(__name__)


class EventBus:
    """
    Ordered, error-isolated EventBus.

    Examples
    --------
    >>> bus = EventBus()
    >>> listener_id = bus.subscribe("ranking.changed", on_ranking_changed)
    >>> await bus.publish("ranking.changed", snapshot)
    1
    >>> bus.unsubscribe("ranking.changed", listener_id)
    True
    """

    def __init__(
        self,
        *,
        error_handler: Optional[ListenerErrorHandler] = None,
        enable_metrics: bool = True,
    ) -> None:
        self._listeners: dict[str, list[EventListener]] = {}
        self._error_handler: ListenerErrorHandler = error_handler or handle_listener_error
        self._metrics_enabled = enable_metrics
        self._published: Counter[str] = Counter()
        self._errors: Counter[str] = Counter()

    # ------------------------------------------------------------------ #
    # Listener Validation
    # ------------------------------------------------------------------ #

    @staticmethod
    def _validate_callback_signature(callback: CallbackType) -> None:
        """
        Ensure callback accepts exactly one positional parameter.

        Catches mis-registered listeners at subscription time rather than
        failing later at publish time.

        Raises
        ------
        ValueError:
            If callback signature is invalid.
        """
        if not callable(callback):
            raise ValueError(f"Event listener must be callable, got {callback!r}")

        try:
            sig = inspect.signature(callback)
        except (TypeError, ValueError):
            # Built-ins may not expose a signature; trust the caller
            return

        params = list(sig.parameters.values())
        positional = [
            p for p in params if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
        ]
        required = [p for p in positional if p.default is p.empty]
        has_varargs = any(p.kind is p.VAR_POSITIONAL for p in params)

        accepts_one = len(required) == 1 or (
            not required and (bool(positional) or has_varargs)
        )
        if not accepts_one:
            callback_name = getattr(callback, "__qualname__", None) or getattr(
                callback, "__name__", repr(callback)
            )
            raise ValueError(
                f"Event listener must accept exactly 1 parameter, "
                f"got {len(required)} parameters for '{callback_name}'"
            )

    # ------------------------------------------------------------------ #
    # Subscription API
    # ------------------------------------------------------------------ #

    def subscribe(
        self,
        event_name: str,
        callback: CallbackType,
        *,
        identifier: Optional[str] = None,
    ) -> str:
        """
        Subscribe a callback to an event.

        Registering a callback that is already subscribed to the same event
        is ignored and returns the existing identifier.

        Returns
        -------
        str:
            The listener identifier (for unsubscribing later).

        Raises
        ------
        ValueError:
            If callback signature is invalid or the identifier is taken.
        """
        self._validate_callback_signature(callback)

        listeners = self._listeners.setdefault(event_name, [])
        for existing in listeners:
            if existing.callback == callback:
                logger.warning(
                    "EventBus: duplicate listener prevented",
                    extra={"event_name": event_name, "listener_id": existing.identifier},
                )
                return existing.identifier

        listener = EventListener.from_callback(event_name, callback, identifier)
        if any(existing.identifier == listener.identifier for existing in listeners):
            raise ValueError(
                f"Listener identifier '{listener.identifier}' already registered "
                f"for '{event_name}'"
            )

        listeners.append(listener)

        logger.debug(
            "EventBus: subscribed listener",
            extra={"event_name": event_name, "listener_id": listener.identifier},
        )
        return listener.identifier

    def unsubscribe(
        self, event_name: str, callback_or_id: Union[CallbackType, str]
    ) -> bool:
        """
        Unsubscribe a listener by its callback or by the identifier
        returned from subscribe().

        Returns
        -------
        bool:
            True if a listener was removed, False otherwise.
        """
        listeners = self._listeners.get(event_name, [])

        for index, listener in enumerate(listeners):
            if isinstance(callback_or_id, str):
                matched = listener.identifier == callback_or_id
            else:
                matched = listener.callback == callback_or_id
            if matched:
                del listeners[index]
                if not listeners:
                    self._listeners.pop(event_name, None)
                logger.debug(
                    "EventBus: unsubscribed listener",
                    extra={"event_name": event_name, "listener_id": listener.identifier},
                )
                return True

        return False

    def clear(self) -> None:
        """Remove all listeners from all events."""
        total = self.get_listener_count()
        self._listeners.clear()
        logger.info(
            "EventBus: cleared all listeners",
            extra={"previous_listener_count": total},
        )

    # ------------------------------------------------------------------ #
    # Publish API
    # ------------------------------------------------------------------ #

    async def publish(self, event_name: str, data: EventPayload) -> int:
        """
        Publish an event to every listener, sequentially in registration order.

        A listener that raises is handed to the error handler and skipped;
        delivery continues with the next listener.

        Returns
        -------
        int:
            Number of listeners that completed without error.
        """
        if self._metrics_enabled:
            self._published[event_name] += 1

        listeners = list(self._listeners.get(event_name, ()))
        if not listeners:
            logger.debug(
                "EventBus: no listeners for event", extra={"event_name": event_name}
            )
            return 0

        delivered = 0
        for listener in listeners:
            try:
                result = listener.callback(data)
                if inspect.isawaitable(result):
                    await result
            except Exception as exc:
                if self._metrics_enabled:
                    self._errors[event_name] += 1
                self._error_handler(event_name, listener, exc)
                continue
            delivered += 1

        logger.debug(
            "EventBus: event delivered",
            extra={
                "event_name": event_name,
                "listener_count": len(listeners),
                "delivered": delivered,
            },
        )
        return delivered

    # ------------------------------------------------------------------ #
    # Metrics & Introspection
    # ------------------------------------------------------------------ #

    def get_listener_count(self, event_name: Optional[str] = None) -> int:
        if event_name is not None:
            return len(self._listeners.get(event_name, ()))
        return sum(len(listeners) for listeners in self._listeners.values())

    def get_listener_ids(self, event_name: str) -> list[str]:
        return [listener.identifier for listener in self._listeners.get(event_name, ())]

    def get_metrics_summary(self) -> dict[str, Any]:
        """
        Summary of publish and error counts.

        Examples
        --------
        >>> bus.get_metrics_summary()["total_events_published"]
        3
        """
        if not self._metrics_enabled:
            return {}
        total = sum(self._published.values())
        errors = sum(self._errors.values())
        return {
            "total_events_published": total,
            "events_by_type": dict(self._published),
            "total_errors": errors,
            "errors_by_event": dict(self._errors),
            "total_listeners": self.get_listener_count(),
        }
