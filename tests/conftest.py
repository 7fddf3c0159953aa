"""Shared fixtures for tailwatch tests."""

import threading
import time
from pathlib import Path

import pytest

from tailwatch.engine import TailConfig, TailEngine, TailError, TailLine, TailState


class EventRecorder:
    """Collects an engine's notifications in order, from any thread."""

    def __init__(self, engine: TailEngine):
        self.events: list[tuple[str, object]] = []
        self._cond = threading.Condition()
        engine.on_lines_added(lambda lines: self._record("lines", lines))
        engine.on_state_changed(lambda state: self._record("state", state))
        engine.on_error(lambda error: self._record("error", error))

    def _record(self, kind: str, payload: object) -> None:
        with self._cond:
            self.events.append((kind, payload))
            self._cond.notify_all()

    @property
    def batches(self) -> list[tuple[TailLine, ...]]:
        return [payload for kind, payload in self.events if kind == "lines"]

    @property
    def lines(self) -> list[TailLine]:
        return [line for batch in self.batches for line in batch]

    @property
    def contents(self) -> list[str]:
        return [line.content for line in self.lines]

    @property
    def numbers(self) -> list[int]:
        return [line.line_number for line in self.lines]

    @property
    def states(self) -> list[TailState]:
        return [payload for kind, payload in self.events if kind == "state"]

    @property
    def errors(self) -> list[TailError]:
        return [payload for kind, payload in self.events if kind == "error"]

    def wait_for(self, predicate, timeout: float = 5.0) -> bool:
        """Block until ``predicate(self)`` holds or ``timeout`` expires."""
        deadline = time.monotonic() + timeout
        with self._cond:
            while not predicate(self):
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return False
                self._cond.wait(remaining)
            return True


@pytest.fixture
def temp_log_file(tmp_path: Path) -> Path:
    """Create temporary log file with initial content."""
    log_file = tmp_path / "test.log"
    log_file.write_text("Line 1\nLine 2\nLine 3\n")
    return log_file


@pytest.fixture
def empty_log_file(tmp_path: Path) -> Path:
    """Create empty log file."""
    log_file = tmp_path / "empty.log"
    log_file.write_bytes(b"")
    return log_file


@pytest.fixture
def manual_config() -> TailConfig:
    """Config whose loop practically never fires, so tests drive poll() themselves."""
    return TailConfig(initial_lines=100, poll_interval_seconds=60.0, use_watcher=False)


@pytest.fixture
def fast_config() -> TailConfig:
    """Config for tests that rely on the background loop."""
    return TailConfig(initial_lines=100, poll_interval_seconds=0.05, use_watcher=False)


@pytest.fixture
def make_engine():
    """Build engines that are always stopped at teardown."""
    engines: list[TailEngine] = []

    def _make(path, config: TailConfig | None = None) -> tuple[TailEngine, EventRecorder]:
        engine = TailEngine(path, config)
        engines.append(engine)
        return engine, EventRecorder(engine)

    yield _make

    for engine in engines:
        engine.stop()


def append(path: Path, data: bytes | str) -> None:
    """Append to ``path`` the way a logging process would."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    with open(path, "ab") as f:
        f.write(data)
        f.flush()


@pytest.fixture(name="append")
def append_fixture():
    """The ``append`` helper, for tests that write to files."""
    return append
