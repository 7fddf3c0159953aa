"""Data models for the file-tail engine.

This module defines the immutable values the engine hands to consumers
(lines, errors) and the enums describing engine state and error kinds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum


class TailState(str, Enum):
    """Lifecycle state of a tail engine.

    Attributes:
        IDLE: Not started, or stopped.
        RUNNING: Following the file and emitting new lines.
        PAUSED: Loop still armed but no reads are performed.
        ERROR: Engine could not start or cannot guarantee updates.
        FILE_MISSING: Target path does not exist; polling for its return.
    """

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    ERROR = "error"
    FILE_MISSING = "file_missing"


class TailErrorKind(str, Enum):
    """Category of a condition reported through an error notification."""

    FILE_NOT_FOUND = "file_not_found"
    TRUNCATED = "truncated"
    REPLACED = "replaced"
    IO_ERROR = "io_error"
    DECODE_ERROR = "decode_error"
    WATCHER_ERROR = "watcher_error"


@dataclass(frozen=True)
class TailLine:
    """A single complete line read from the tailed file.

    Attributes:
        content: Line text without its terminator.
        line_number: 1-based sequence number, strictly increasing per engine.
        observed_at: When the engine read the line.
    """

    content: str
    line_number: int
    observed_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, object]:
        return {
            "content": self.content,
            "line_number": self.line_number,
            "observed_at": self.observed_at.isoformat(),
        }


@dataclass(frozen=True)
class TailError:
    """Diagnostic carried by an error notification.

    Attributes:
        kind: Error category.
        message: Human-readable description.
        file_path: Path of the tailed file.
        occurred_at: When the condition was detected.
    """

    kind: TailErrorKind
    message: str
    file_path: str
    occurred_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict[str, object]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "file_path": self.file_path,
            "occurred_at": self.occurred_at.isoformat(),
        }


@dataclass(frozen=True)
class Position:
    """Snapshot of an engine's read cursor.

    Attributes:
        byte_offset: Offset just past the last fully consumed line.
        line_number: Number assigned to the last emitted line.
    """

    byte_offset: int
    line_number: int


@dataclass
class ReadResult:
    """Outcome of splitting a byte range into complete lines.

    Attributes:
        lines: Decoded line contents, terminators removed.
        consumed: Number of bytes covered by ``lines`` including terminators.
        decode_errors: Lines that needed replacement characters to decode.
    """

    lines: list[str]
    consumed: int
    decode_errors: int = 0
