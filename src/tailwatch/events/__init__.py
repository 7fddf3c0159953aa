"""Event system for tail notifications."""

from tailwatch.events.bus import EventBus
from tailwatch.events.models import (
    ERROR_OCCURRED,
    LINES_ADDED,
    STATE_CHANGED,
    TAIL_EVENT_TYPES,
    Event,
    EventHandler,
)

__all__ = [
    "Event",
    "EventHandler",
    "EventBus",
    "TAIL_EVENT_TYPES",
    "LINES_ADDED",
    "STATE_CHANGED",
    "ERROR_OCCURRED",
]
