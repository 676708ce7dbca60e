"""
Core event types for the QuizRank EventBus.

Purpose
-------
Type definitions shared by the event system: the payload alias, callback
union, listener record, and the error-handler hook signature.

Design Decisions
----------------
- **EventPayload is opaque**: ranking observers receive an immutable
  `RankingSnapshot` object, so the bus does not constrain payload shape.
- **CallbackType union**: supports both async and sync callbacks.
- **EventListener with slots**: immutable record of one registration.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Union

EventPayload = Any

# Sync or async callables taking a single payload parameter
CallbackType = Union[
    Callable[[EventPayload], Any],
    Callable[[EventPayload], Awaitable[Any]],
]


@dataclass(slots=True, frozen=True)
class EventListener:
    """
    A registered event listener.

    Attributes
    ----------
    callback:
        Async or sync callable invoked with the event payload.
    identifier:
        Unique string identifier used for deduplication and unsubscription.
    """

    callback: CallbackType
    identifier: str

    @classmethod
    def from_callback(
        cls,
        event_name: str,
        callback: CallbackType,
        identifier: Optional[str] = None,
    ) -> EventListener:
        """
        Create an EventListener, generating an identifier when none is given.

        Generated identifiers embed the callable's id so that two lambdas
        defined in the same scope stay distinguishable.

        Examples
        --------
        >>> listener = EventListener.from_callback("ranking.changed", print)
        >>> listener.identifier.endswith("@ranking.changed")
        True
        """
        if identifier is None:
            module = getattr(callback, "__module__", None) or "unknown"
            qualname = getattr(
                callback, "__qualname__", getattr(callback, "__name__", "callback")
            )
            identifier = f"{module}.{qualname}#{id(callback):x}@{event_name}"

        return cls(callback=callback, identifier=identifier)


# Invoked with (event_name, listener, exc) when a listener raises
ListenerErrorHandler = Callable[[str, EventListener, Exception], None]
