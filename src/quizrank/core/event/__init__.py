"""
Event Module
============

Ordered, error-isolated pub/sub used to notify ranking observers.
"""

from quizrank.core.event.bus import EventBus
from quizrank.core.event.types import EventListener

__all__ = ["EventBus", "EventListener"]
