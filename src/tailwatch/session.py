"""Tail sessions: one open file each, plus a manager for many.

A session pairs a TailEngine with a LineBuffer and keeps a user-facing status
derived from the engine's state and errors. The manager opens, de-duplicates
and closes sessions; engines themselves are fully independent.
"""

from __future__ import annotations

import logging
import os
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any

from .buffer import LineBuffer
from .engine import TailConfig, TailEngine, TailError, TailLine, TailState
from .logging_manager import SessionLoggerAdapter
from .settings import AppSettings, SettingsService

logger = logging.getLogger(__name__)


class SessionNotFoundError(KeyError):
    """Raised when a session id is not known to the manager."""


@dataclass
class StatusInfo:
    """Banner shown for a session.

    Attributes:
        severity: "info", "warning" or "error".
        title: Short heading.
        message: Longer explanation.
    """

    severity: str
    title: str
    message: str

    def to_dict(self) -> dict[str, str]:
        return {"severity": self.severity, "title": self.title, "message": self.message}


_STATE_STATUS = {
    TailState.PAUSED: StatusInfo(
        "warning", "Paused", "File tailing is paused. New content will not be displayed."
    ),
    TailState.ERROR: StatusInfo("error", "Error", "An error occurred while tailing the file."),
    TailState.FILE_MISSING: StatusInfo(
        "error", "File Missing", "The file is no longer available or has been deleted."
    ),
}


class TailSession:
    """A single followed file with its retained lines and status."""

    def __init__(
        self,
        file_path: str | Path,
        config: TailConfig | None = None,
        max_lines: int = 10000,
        session_id: str | None = None,
        session_logger: logging.Logger | logging.LoggerAdapter | None = None,
    ):
        self.session_id = session_id or str(uuid.uuid4())
        self.engine = TailEngine(file_path, config)
        self.buffer = LineBuffer(max_lines)
        self.created_at = datetime.now()
        self.status: StatusInfo | None = None
        self.last_error: TailError | None = None
        self._logger = session_logger or SessionLoggerAdapter(
            logger, {"session_id": self.session_id, "file_path": self.engine.file_path}
        )

        self._subscriptions = [
            self.engine.on_lines_added(self._on_lines_added),
            self.engine.on_state_changed(self._on_state_changed),
            self.engine.on_error(self._on_error),
        ]

    @property
    def file_path(self) -> str:
        return self.engine.file_path

    @property
    def file_name(self) -> str:
        return os.path.basename(self.engine.file_path)

    @property
    def state(self) -> TailState:
        return self.engine.state

    @property
    def is_following(self) -> bool:
        return self.engine.state == TailState.RUNNING

    def start(self) -> bool:
        return self.engine.start()

    def pause(self) -> bool:
        return self.engine.pause()

    def resume(self) -> bool:
        return self.engine.resume()

    def toggle_follow(self) -> bool:
        """Pause when running, resume when paused.

        Returns:
            Whether the session is following after the call.
        """
        if self.engine.state == TailState.RUNNING:
            self.engine.pause()
        elif self.engine.state == TailState.PAUSED:
            self.engine.resume()
        return self.is_following

    def stop(self) -> None:
        self.engine.stop()

    def clear(self) -> None:
        """Drop retained lines; line numbering is unaffected."""
        self.buffer.clear()

    def close(self) -> None:
        self.engine.stop()
        for subscription_id in self._subscriptions:
            self.engine.unsubscribe(subscription_id)
        self._subscriptions.clear()
        self.buffer.clear()
        self._logger.info("Session closed")

    def to_dict(self) -> dict[str, Any]:
        return {
            "session_id": self.session_id,
            "file_path": self.file_path,
            "file_name": self.file_name,
            "state": self.state.value,
            "total_lines": self.engine.total_lines_read,
            "retained_lines": len(self.buffer),
            "created_at": self.created_at.isoformat(),
            "status": self.status.to_dict() if self.status else None,
            "last_error": self.last_error.to_dict() if self.last_error else None,
        }

    def _on_lines_added(self, lines: tuple[TailLine, ...]) -> None:
        self.buffer.extend(lines)

    def _on_state_changed(self, state: TailState) -> None:
        self.status = _STATE_STATUS.get(state)
        self._logger.info(f"State changed to {state.value}")

    def _on_error(self, error: TailError) -> None:
        self.last_error = error
        self.status = StatusInfo("error", "Error", error.message)
        self._logger.warning(f"{error.kind.value}: {error.message}")


class SessionManager:
    """Opens and tracks tail sessions, one per distinct file."""

    def __init__(
        self,
        settings: AppSettings | None = None,
        settings_service: SettingsService | None = None,
        logging_manager: Any | None = None,
    ):
        """Initialize session manager.

        Args:
            settings: Settings applied to new sessions.
            settings_service: If given, recent files are persisted through it.
            logging_manager: If given, supplies per-session loggers.
        """
        self.settings = settings or AppSettings()
        self.settings_service = settings_service
        self.logging_manager = logging_manager
        self._sessions: dict[str, TailSession] = {}
        self._lock = threading.Lock()
        # Held across lookup, creation and start so one path gets one session
        self._open_lock = threading.Lock()

    @staticmethod
    def _key(file_path: str | Path) -> str:
        return os.path.normcase(str(Path(file_path).resolve()))

    def find(self, file_path: str | Path) -> TailSession | None:
        key = self._key(file_path)
        with self._lock:
            for session in self._sessions.values():
                if self._key(session.file_path) == key:
                    return session
        return None

    def open(self, file_path: str | Path) -> TailSession:
        """Open ``file_path``, or return its session if already open.

        A new session is started immediately; if the file is missing the
        session stays in FILE_MISSING and can be restarted later. Concurrent
        calls for the same file all return the same session.
        """
        with self._open_lock:
            existing = self.find(file_path)
            if existing is not None:
                logger.debug(f"{file_path} already open in session {existing.session_id}")
                return existing

            session_id = str(uuid.uuid4())
            resolved = str(Path(file_path).resolve())
            session_logger = None
            if self.logging_manager is not None:
                session_logger = self.logging_manager.get_session_logger(session_id, resolved)

            session = TailSession(
                resolved,
                config=self.settings.to_tail_config(),
                max_lines=self.settings.max_lines_per_file,
                session_id=session_id,
                session_logger=session_logger,
            )
            with self._lock:
                self._sessions[session_id] = session

            session.start()
            self._remember(resolved)
        logger.info(f"Opened session {session_id} for {resolved}")
        return session

    def get(self, session_id: str) -> TailSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def list(self) -> list[TailSession]:
        with self._lock:
            return list(self._sessions.values())

    def close(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise SessionNotFoundError(session_id)
        session.close()
        if self.logging_manager is not None:
            self.logging_manager.release_session_logger(session_id)
        logger.info(f"Closed session {session_id}")

    def close_all(self) -> None:
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def _remember(self, file_path: str) -> None:
        self.settings.add_recent_file(file_path)
        if self.settings_service is None:
            return
        try:
            self.settings_service.save(self.settings)
        except OSError as e:
            logger.error(f"Failed to save recent files: {e}")
