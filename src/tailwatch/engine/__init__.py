"""File-tail engine for tailwatch.

This package follows growing text files: it emits a file's last lines on
start, then publishes newly appended lines as they are written, surviving
truncation, rotation, deletion and recreation.

Key Components:
    - models: TailLine, TailState, TailError and position snapshots
    - config: Configuration dataclass for an engine
    - position_tracker: Byte offset and line counter for one file
    - line_reader: Complete-line splitting and the initial tail-window scan
    - change_detector: watchdog-based change notifications for one file
    - tail_engine: State machine and background monitoring loop

Example:
    >>> from tailwatch.engine import TailConfig, TailEngine
    >>> engine = TailEngine("/var/log/syslog", TailConfig(initial_lines=20))
    >>> engine.on_lines_added(lambda lines: [print(l.content) for l in lines])
    >>> engine.start()
"""

from __future__ import annotations

from .change_detector import ChangeDetector, ChangeDetectorError
from .config import TailConfig
from .line_reader import LineReader, TailWindow, split_lines
from .models import Position, ReadResult, TailError, TailErrorKind, TailLine, TailState
from .position_tracker import PositionTracker
from .tail_engine import TailEngine

__all__ = [
    "TailConfig",
    "TailEngine",
    "TailLine",
    "TailState",
    "TailError",
    "TailErrorKind",
    "Position",
    "ReadResult",
    "PositionTracker",
    "LineReader",
    "TailWindow",
    "split_lines",
    "ChangeDetector",
    "ChangeDetectorError",
]
