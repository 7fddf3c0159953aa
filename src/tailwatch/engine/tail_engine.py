"""Tail engine: follows one growing text file and publishes new lines.

The engine emits the file's last N lines on start, then runs a background
thread that wakes on filesystem notifications or a poll timeout and reads
whatever complete lines were appended since the last cycle. Truncation,
replacement, deletion and recreation are detected on every cycle.
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

from tailwatch.events import ERROR_OCCURRED, LINES_ADDED, STATE_CHANGED, Event, EventBus

from .change_detector import ChangeDetector, ChangeDetectorError
from .config import TailConfig
from .line_reader import LineReader
from .models import Position, TailError, TailErrorKind, TailLine, TailState
from .position_tracker import PositionTracker

logger = logging.getLogger(__name__)

_STARTABLE = frozenset({TailState.IDLE, TailState.ERROR, TailState.FILE_MISSING})
_READABLE = frozenset({TailState.RUNNING, TailState.FILE_MISSING})


def _file_id(st: os.stat_result) -> tuple[int, int]:
    return (st.st_dev, st.st_ino)


class TailEngine:
    """Follows a single file and publishes lines, state changes and errors.

    Notifications go through ``events`` (an EventBus) and are delivered on
    the thread that produced them: the caller's thread for ``start()`` and
    state changes requested by the caller, the engine's loop thread for
    everything discovered while polling. Line batches never overlap and
    arrive in file order.

    Handlers run while the engine holds its internal locks, so they may call
    back into the engine from the same thread but must not wait on another
    thread that does.

    Example:
        >>> engine = TailEngine("/var/log/app.log", TailConfig(initial_lines=50))
        >>> engine.on_lines_added(lambda lines: print(len(lines)))
        >>> engine.start()
        >>> engine.stop()
    """

    def __init__(
        self,
        file_path: str | Path,
        config: TailConfig | None = None,
        event_bus: EventBus | None = None,
    ):
        """Initialize tail engine.

        Args:
            file_path: File to follow.
            config: Engine configuration; defaults to TailConfig().
            event_bus: Bus to publish on; a private bus is created if omitted.
        """
        self._file_path = Path(os.path.abspath(file_path))
        self.config = config or TailConfig()
        self.events = event_bus or EventBus()
        self._reader = LineReader(self.config.encoding, self.config.read_chunk_size)

        self._state = TailState.IDLE
        self._state_lock = threading.RLock()
        # Serialises start(), read cycles and stop()
        self._cycle_lock = threading.RLock()
        self._wake = threading.Event()
        self._stop_requested = threading.Event()

        self._tracker: PositionTracker | None = None
        self._detector: ChangeDetector | None = None
        self._thread: threading.Thread | None = None
        self._total_lines_read = 0

    # ------------------------------------------------------------------
    # Read-only accessors
    # ------------------------------------------------------------------

    @property
    def file_path(self) -> str:
        return str(self._file_path)

    @property
    def state(self) -> TailState:
        with self._state_lock:
            return self._state

    @property
    def total_lines_read(self) -> int:
        """Highest line number assigned so far (0 before the first start)."""
        return self._total_lines_read

    @property
    def position(self) -> Position | None:
        tracker = self._tracker
        return tracker.snapshot() if tracker is not None else None

    @property
    def is_watching(self) -> bool:
        """Whether filesystem notifications are armed (False means polling only)."""
        detector = self._detector
        return detector is not None and detector.is_running

    # ------------------------------------------------------------------
    # Subscription helpers
    # ------------------------------------------------------------------

    def on_lines_added(self, handler: Callable[[tuple[TailLine, ...]], None]) -> str:
        return self.events.subscribe(LINES_ADDED, lambda event: handler(event.data["lines"]))

    def on_state_changed(self, handler: Callable[[TailState], None]) -> str:
        return self.events.subscribe(STATE_CHANGED, lambda event: handler(event.data["new_state"]))

    def on_error(self, handler: Callable[[TailError], None]) -> str:
        return self.events.subscribe(ERROR_OCCURRED, lambda event: handler(event.data["error"]))

    def unsubscribe(self, subscription_id: str) -> bool:
        return self.events.unsubscribe(subscription_id)

    # ------------------------------------------------------------------
    # Control operations
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Emit the file's tail and begin following it.

        Returns:
            True if the engine is now running; False if the call was a no-op
            (already started), the file could not be opened, or a handler
            stopped the engine while the initial batch was being published.
            Failures are reported through the error notification.
        """
        with self._cycle_lock:
            if self.state not in _STARTABLE or self._loop_alive():
                logger.debug(f"Start ignored for {self._file_path} in state {self.state.value}")
                return False

            if not self._file_path.exists():
                self._set_state(TailState.FILE_MISSING)
                self._publish_error(TailErrorKind.FILE_NOT_FOUND, f"File not found: {self._file_path}")
                return False

            try:
                with open(self._file_path, "rb") as handle:
                    st = os.fstat(handle.fileno())
                    window = self._reader.read_tail(handle, self.config.initial_lines)
            except OSError as e:
                self._set_state(TailState.ERROR)
                self._publish_error(TailErrorKind.IO_ERROR, f"Error reading initial lines: {e}")
                return False

            stop_event = threading.Event()
            wake = threading.Event()
            if not self._arm_detector(wake):
                return False
            # Fresh events per run: a loop left over from an earlier run keeps
            # its own (set) stop event and can never poll on behalf of this one
            self._stop_requested = stop_event
            self._wake = wake

            tracker = PositionTracker(window.consumed, window.total_lines, _file_id(st))
            self._tracker = tracker
            self._total_lines_read = window.total_lines

            observed_at = datetime.now()
            batch = tuple(
                TailLine(content, number, observed_at)
                for content, number in zip(
                    window.lines, range(window.first_line_number, window.total_lines + 1)
                )
            )

            self._set_state(TailState.RUNNING)
            if window.decode_errors and not self._cancelled(tracker, stop_event):
                self._publish_decode_error(window.decode_errors)
            if self._cancelled(tracker, stop_event):
                return False
            self._publish(LINES_ADDED, {"lines": batch})
            if self._cancelled(tracker, stop_event):
                return False

            self._thread = threading.Thread(
                target=self._run,
                args=(stop_event, wake),
                name=f"TailEngine-{self._file_path.name}",
                daemon=True,
            )
            self._thread.start()

            logger.info(
                f"Started tailing {self._file_path} "
                f"({len(batch)} of {window.total_lines} lines, offset {window.consumed}, "
                f"{'watching' if self.is_watching else 'polling only'})"
            )
            return True

    def pause(self) -> bool:
        """Stop emitting lines while keeping the loop and watcher armed."""
        return self._set_state(TailState.PAUSED, allowed_from={TailState.RUNNING})

    def resume(self) -> bool:
        """Resume emitting; the next cycle catches up on anything written meanwhile."""
        return self._set_state(TailState.RUNNING, allowed_from={TailState.PAUSED})

    def stop(self) -> None:
        """Cancel the loop, dispose the watcher and return to IDLE.

        Idempotent and safe from any thread, including an event handler
        running on the loop thread. Once this returns no further
        notifications are published until the next start().
        """
        # Interrupt the loop before waiting for an in-flight cycle
        self._stop_requested.set()
        self._wake.set()

        with self._cycle_lock:
            # Set again: a start() holding the lock above has installed a new run
            self._stop_requested.set()
            self._wake.set()
            detector, self._detector = self._detector, None
            if detector is not None:
                detector.stop()
            self._tracker = None
            if self._set_state(TailState.IDLE):
                logger.info(f"Stopped tailing {self._file_path}")

        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=self.config.poll_interval_seconds + 1.0)
            if thread.is_alive():
                logger.warning(f"Tail loop for {self._file_path} did not exit in time")

    def close(self) -> None:
        self.stop()

    def __enter__(self) -> TailEngine:
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def poll(self) -> int:
        """Run one read cycle now.

        This is the body of the monitoring loop; it is serialised with the
        loop so calling it from another thread never double-counts lines.

        Returns:
            Number of lines published by this cycle.
        """
        return self._poll(self._stop_requested)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _poll(self, stop_event: threading.Event) -> int:
        with self._cycle_lock:
            tracker = self._tracker
            if self._cancelled(tracker, stop_event):
                return 0
            state = self.state
            if state not in _READABLE:
                return 0
            try:
                return self._read_cycle(tracker, state, stop_event)
            except OSError as e:
                # Sharing violations, races with rotation: retried next interval
                logger.debug(f"Transient read failure on {self._file_path}: {e}")
                self._publish_error(TailErrorKind.IO_ERROR, f"Error reading new lines: {e}")
                return 0

    def _cancelled(self, tracker: PositionTracker | None, stop_event: threading.Event) -> bool:
        """Whether the run owning ``tracker`` was stopped, possibly by a handler."""
        return tracker is None or stop_event.is_set() or self._tracker is not tracker

    def _loop_alive(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _arm_detector(self, wake: threading.Event) -> bool:
        """Start the change detector if configured.

        Returns:
            False only when the watcher is required and could not be armed.
        """
        if not self.config.use_watcher:
            return True

        detector = ChangeDetector(self._file_path, wake.set)
        try:
            detector.start()
        except ChangeDetectorError as e:
            if self.config.require_watcher:
                self._set_state(TailState.ERROR)
                self._publish_error(TailErrorKind.WATCHER_ERROR, str(e))
                return False
            self._publish_error(TailErrorKind.WATCHER_ERROR, f"{e}; falling back to polling")
            return True

        self._detector = detector
        return True

    def _run(self, stop_event: threading.Event, wake: threading.Event) -> None:
        logger.debug(f"Tail loop started for {self._file_path}")
        while not stop_event.is_set():
            wake.wait(self.config.poll_interval_seconds)
            wake.clear()
            if stop_event.is_set():
                break
            try:
                self._poll(stop_event)
            except Exception as e:
                logger.exception(f"Unexpected error in tail loop for {self._file_path}")
                if not stop_event.is_set():
                    self._publish_error(TailErrorKind.IO_ERROR, f"Error in tail loop: {e}")
        logger.debug(f"Tail loop exited for {self._file_path}")

    def _read_cycle(
        self, tracker: PositionTracker, state: TailState, stop_event: threading.Event
    ) -> int:
        # Every notification below may run a handler that stops (or restarts)
        # the engine; after each one the cycle only continues if this run is
        # still current.
        if not self._file_path.exists():
            if (
                state != TailState.FILE_MISSING
                and self._set_state(TailState.FILE_MISSING, allowed_from={TailState.RUNNING})
                and not self._cancelled(tracker, stop_event)
            ):
                self._publish_error(TailErrorKind.FILE_NOT_FOUND, f"File not found: {self._file_path}")
            return 0

        if state == TailState.FILE_MISSING:
            # Recreated at the same path: read it from the start
            tracker.reset_offset()
            tracker.file_id = None
            if not self._set_state(TailState.RUNNING, allowed_from={TailState.FILE_MISSING}):
                return 0
            if self._cancelled(tracker, stop_event):
                return 0
            logger.info(f"{self._file_path} reappeared, resuming from offset 0")

        with open(self._file_path, "rb") as handle:
            st = os.fstat(handle.fileno())
            file_id = _file_id(st)

            if tracker.is_replaced(file_id):
                tracker.reset_offset()
                self._publish_error(
                    TailErrorKind.REPLACED, "File was replaced, restarting from beginning"
                )
            elif tracker.is_truncated(st.st_size):
                tracker.reset_offset()
                self._publish_error(
                    TailErrorKind.TRUNCATED, "File was truncated, restarting from beginning"
                )
            if self._cancelled(tracker, stop_event):
                return 0
            tracker.file_id = file_id

            if st.st_size == tracker.byte_offset:
                return 0

            result = self._reader.read_lines(handle, tracker.byte_offset)

        if result.decode_errors:
            self._publish_decode_error(result.decode_errors)
            if self._cancelled(tracker, stop_event):
                return 0
        if not result.lines:
            return 0

        observed_at = datetime.now()
        batch = tuple(
            TailLine(content, number, observed_at)
            for content, number in zip(result.lines, tracker.next_line_numbers(len(result.lines)))
        )
        tracker.advance(result.consumed, len(batch))
        self._total_lines_read = tracker.line_number
        self._publish(LINES_ADDED, {"lines": batch})
        return len(batch)

    def _set_state(self, new_state: TailState, allowed_from: set[TailState] | None = None) -> bool:
        """Transition to ``new_state`` and notify; no-op transitions are silent.

        Returns:
            True if the state actually changed.
        """
        with self._state_lock:
            old_state = self._state
            if old_state == new_state:
                return False
            if allowed_from is not None and old_state not in allowed_from:
                return False
            self._state = new_state
            logger.debug(f"{self._file_path}: {old_state.value} -> {new_state.value}")
            self._publish(STATE_CHANGED, {"old_state": old_state, "new_state": new_state})
            return True

    def _publish(self, event_type: str, data: dict[str, Any]) -> None:
        self.events.publish(
            Event(
                event_type=event_type,
                timestamp=datetime.now(),
                source=str(self._file_path),
                data=data,
            )
        )

    def _publish_error(self, kind: TailErrorKind, message: str) -> None:
        logger.warning(f"{self._file_path}: {message}")
        error = TailError(kind=kind, message=message, file_path=str(self._file_path))
        self._publish(ERROR_OCCURRED, {"error": error})

    def _publish_decode_error(self, count: int) -> None:
        self._publish_error(
            TailErrorKind.DECODE_ERROR,
            f"{count} line(s) contained invalid {self.config.encoding} bytes; "
            "replacement characters substituted",
        )
