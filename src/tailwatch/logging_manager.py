"""Structured logging manager for tailwatch.

Configures the ``tailwatch`` logger hierarchy with a human-readable console
handler and a rotating JSON Lines file, and hands out per-session logger
adapters that tag records with the session id and file path.
"""

import json
import logging
import logging.handlers
from datetime import datetime
from pathlib import Path
from typing import Any

# Attributes every LogRecord has; anything else came in through ``extra``
_STANDARD_ATTRS = frozenset(
    [
        "name",
        "msg",
        "args",
        "created",
        "filename",
        "funcName",
        "levelname",
        "levelno",
        "lineno",
        "module",
        "msecs",
        "message",
        "pathname",
        "process",
        "processName",
        "relativeCreated",
        "thread",
        "threadName",
        "exc_info",
        "exc_text",
        "stack_info",
        "asctime",
        "taskName",
    ]
)


def _record_extras(record: logging.LogRecord) -> dict[str, Any]:
    """Collect ``extra=`` fields, stringifying anything JSON cannot encode."""
    extras: dict[str, Any] = {}
    for key in record.__dict__.keys() - _STANDARD_ATTRS:
        value = record.__dict__[key]
        try:
            json.dumps(value)
        except (TypeError, ValueError):
            value = str(value)
        extras[key] = value
    return extras


class JsonLineFormatter(logging.Formatter):
    """Formats each record as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            "location": f"{record.module}.{record.funcName}:{record.lineno}",
        }
        payload.update(_record_extras(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


class SessionLoggerAdapter(logging.LoggerAdapter):
    """Tags every record with the session id and followed file."""

    def process(self, msg, kwargs):
        kwargs["extra"] = {**kwargs.get("extra", {}), **self.extra}
        return msg, kwargs


class LoggingManager:
    """Owns the handlers of the ``tailwatch`` logger hierarchy.

    Console output is human readable and filtered by ``log_level``; the
    rotating file always receives DEBUG records as JSON Lines so a session
    can be reconstructed after the fact.
    """

    def __init__(
        self,
        log_dir: str | Path = "/tmp/tailwatch_logs",
        log_level: str = "INFO",
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
    ):
        """Initialize logging manager.

        Args:
            log_dir: Directory for tailwatch.log and its rotations
            log_level: Level name for the console handler
            max_bytes: Size at which tailwatch.log is rotated
            backup_count: Rotated files to keep
        """
        self.log_dir = Path(log_dir)
        self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_file = self.log_dir / "tailwatch.log"
        self.log_level = logging.getLevelName(log_level.upper())
        if not isinstance(self.log_level, int):
            raise ValueError(f"Unknown log level: {log_level}")

        self._session_loggers: dict[str, SessionLoggerAdapter] = {}
        self.logger = logging.getLogger("tailwatch")
        self._install_handlers(max_bytes, backup_count)

    def _install_handlers(self, max_bytes: int, backup_count: int) -> None:
        self.logger.setLevel(logging.DEBUG)
        self.logger.propagate = False
        # A second manager in the same process replaces the first one's handlers
        for handler in list(self.logger.handlers):
            self.logger.removeHandler(handler)
            handler.close()

        console = logging.StreamHandler()
        console.setLevel(self.log_level)
        console.setFormatter(
            logging.Formatter(
                "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )

        rotating = logging.handlers.RotatingFileHandler(
            self.log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        rotating.setLevel(logging.DEBUG)
        rotating.setFormatter(JsonLineFormatter())

        self.logger.addHandler(console)
        self.logger.addHandler(rotating)

    def get_session_logger(self, session_id: str, file_path: str | None = None) -> SessionLoggerAdapter:
        """Return the adapter for ``session_id``, creating it on first use."""
        adapter = self._session_loggers.get(session_id)
        if adapter is None:
            adapter = SessionLoggerAdapter(
                self.logger.getChild(f"session.{session_id}"),
                {"session_id": session_id, "file_path": file_path},
            )
            self._session_loggers[session_id] = adapter
        return adapter

    def release_session_logger(self, session_id: str) -> None:
        self._session_loggers.pop(session_id, None)

    def shutdown(self) -> None:
        """Flush and detach the handlers installed by this manager."""
        for handler in list(self.logger.handlers):
            handler.flush()
            handler.close()
            self.logger.removeHandler(handler)
        self._session_loggers.clear()
