"""Event data models and types for tail notifications."""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Protocol


@dataclass(frozen=True)
class Event:
    """
    Immutable notification published by a tail engine.

    Events are immutable so a batch handed to one subscriber cannot be
    altered on its way to the next.

    Attributes:
        event_type: One of TAIL_EVENT_TYPES (e.g., "tail.lines_added")
        timestamp: When the event was published
        source: Path of the tailed file
        data: Event-specific payload
    """

    event_type: str
    timestamp: datetime
    source: str
    data: dict[str, Any]


class EventHandler(Protocol):
    """
    Protocol defining the interface for event handlers.

    Example:
        def on_lines(event: Event) -> None:
            for line in event.data["lines"]:
                print(line.line_number, line.content)

        bus.subscribe(LINES_ADDED, on_lines)
    """

    def __call__(self, event: Event) -> None:
        """
        Process an event.

        Args:
            event: The event to process
        """
        ...


LINES_ADDED = "tail.lines_added"
STATE_CHANGED = "tail.state_changed"
ERROR_OCCURRED = "tail.error"

# Payloads: lines -> tuple[TailLine, ...]; old_state/new_state -> TailState;
# error -> TailError
TAIL_EVENT_TYPES: dict[str, str] = {
    LINES_ADDED: "A read cycle produced a batch of lines",
    STATE_CHANGED: "The engine moved to a new state",
    ERROR_OCCURRED: "A read, watcher or missing-file condition occurred",
}
