"""Filesystem change notifications for a single tailed file.

Wraps a watchdog observer scheduled on the file's parent directory and
filtered to the file name. The detector only signals "the file may have
changed"; the engine decides what actually happened by looking at the file.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Callable
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class ChangeDetectorError(RuntimeError):
    """Raised when the filesystem watch cannot be established."""


class _FileEventHandler(FileSystemEventHandler):
    """Forwards events touching one file name to a callback."""

    def __init__(self, target: Path, on_change: Callable[[], None]):
        super().__init__()
        self._target = os.path.normcase(str(target))
        self._on_change = on_change

    def _matches(self, path: str | bytes | None) -> bool:
        if not path:
            return False
        if isinstance(path, bytes):
            path = os.fsdecode(path)
        return os.path.normcase(os.path.abspath(path)) == self._target

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        if event.event_type not in ("modified", "created", "deleted", "moved", "closed"):
            return
        if self._matches(event.src_path) or self._matches(getattr(event, "dest_path", None)):
            self._on_change()


class ChangeDetector:
    """Raises a coalescable signal when the watched file may have changed.

    Redundant signals are expected (one write can produce several OS events);
    callers must treat the signal as a hint, not as a count of changes.

    Attributes:
        file_path: Absolute path of the watched file.
    """

    def __init__(self, file_path: str | Path, on_change: Callable[[], None]):
        """Initialize change detector.

        Args:
            file_path: File to watch.
            on_change: Called from the observer thread on every relevant event.
        """
        self.file_path = Path(os.path.abspath(file_path))
        self._on_change = on_change
        self._observer: Observer | None = None

    @property
    def is_running(self) -> bool:
        return self._observer is not None and self._observer.is_alive()

    def start(self) -> None:
        """Arm the watch on the parent directory.

        Raises:
            ChangeDetectorError: If the directory cannot be watched.
        """
        if self._observer is not None:
            return

        directory = self.file_path.parent
        if not directory.is_dir():
            raise ChangeDetectorError(f"Cannot watch {self.file_path}: {directory} is not a directory")

        handler = _FileEventHandler(self.file_path, self._on_change)
        observer = Observer()
        observer.name = f"ChangeDetector-{self.file_path.name}"
        try:
            observer.schedule(handler, str(directory), recursive=False)
            observer.start()
        except (OSError, RuntimeError) as e:
            raise ChangeDetectorError(f"Failed to watch {self.file_path}: {e}") from e

        self._observer = observer
        logger.debug(f"Watching {directory} for changes to {self.file_path.name}")

    def stop(self, timeout: float = 1.0) -> None:
        """Disarm the watch. Safe to call repeatedly.

        Args:
            timeout: Maximum seconds to wait for the observer thread.
        """
        observer, self._observer = self._observer, None
        if observer is None:
            return
        try:
            observer.stop()
            observer.join(timeout=timeout)
        except RuntimeError as e:
            # join() before the thread started, or from the observer thread itself
            logger.warning(f"Error stopping watcher for {self.file_path}: {e}")
        if observer.is_alive():
            logger.warning(f"Watcher for {self.file_path} did not stop within {timeout}s")
        else:
            logger.debug(f"Stopped watching {self.file_path}")
