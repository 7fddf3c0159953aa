"""Bounded retention of tailed lines for display."""

from __future__ import annotations

import threading
from collections import deque
from collections.abc import Iterable

from .engine import TailLine


class LineBuffer:
    """Keeps the most recent ``max_lines`` lines, dropping the oldest.

    The engine holds no lines itself; retention is the consumer's job and
    this is the consumer-side store. Safe to fill from an engine's loop
    thread while another thread reads snapshots.
    """

    def __init__(self, max_lines: int = 10000):
        if max_lines <= 0:
            raise ValueError(f"max_lines must be > 0, got {max_lines}")
        self.max_lines = max_lines
        self._lines: deque[TailLine] = deque(maxlen=max_lines)
        self._lock = threading.Lock()
        self.total_received = 0
        self.dropped = 0

    def extend(self, lines: Iterable[TailLine]) -> None:
        with self._lock:
            for line in lines:
                if len(self._lines) == self.max_lines:
                    self.dropped += 1
                self._lines.append(line)
                self.total_received += 1

    def snapshot(self, limit: int | None = None) -> list[TailLine]:
        """Return retained lines, oldest first; ``limit`` keeps only the newest."""
        with self._lock:
            lines = list(self._lines)
        if limit is not None:
            lines = lines[-limit:] if limit > 0 else []
        return lines

    def text(self) -> str:
        return "".join(f"{line.content}\n" for line in self.snapshot())

    def clear(self) -> None:
        with self._lock:
            self._lines.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._lines)
