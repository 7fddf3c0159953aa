"""Application settings for tailwatch.

Settings are stored as YAML. A missing or unreadable settings file never
prevents startup: defaults are used instead.
"""

from __future__ import annotations

import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any

import yaml

from .engine import TailConfig

logger = logging.getLogger(__name__)

MAX_RECENT_FILES = 10
DEFAULT_SETTINGS_PATH = Path.home() / ".config" / "tailwatch" / "settings.yaml"


@dataclass
class AppSettings:
    """User-level settings shared by all tail sessions.

    Attributes:
        initial_lines: Lines shown from the end of a file when it is opened (default: 100).
        poll_interval_seconds: Engine poll fallback interval (default: 0.5).
        max_lines_per_file: Lines a session retains before dropping the oldest (default: 10000).
        encoding: Encoding used to decode tailed files (default: utf-8).
        use_watcher: Use filesystem notifications in addition to polling (default: True).
        log_dir: Directory for tailwatch's own logs (default: /tmp/tailwatch_logs).
        log_level: Level for tailwatch's own logs (default: INFO).
        server_host: Bind address for the HTTP API (default: localhost).
        server_port: Port for the HTTP API (default: 8765).
        recent_files: Recently opened files, most recent first.
    """

    initial_lines: int = 100
    poll_interval_seconds: float = 0.5
    max_lines_per_file: int = 10000
    encoding: str = "utf-8"
    use_watcher: bool = True
    log_dir: str = "/tmp/tailwatch_logs"
    log_level: str = "INFO"
    server_host: str = "localhost"
    server_port: int = 8765
    recent_files: list[str] = field(default_factory=list)

    def to_tail_config(self) -> TailConfig:
        return TailConfig(
            initial_lines=self.initial_lines,
            poll_interval_seconds=self.poll_interval_seconds,
            encoding=self.encoding,
            use_watcher=self.use_watcher,
        )

    def add_recent_file(self, file_path: str) -> None:
        """Move ``file_path`` to the front of the recent files list."""
        if file_path in self.recent_files:
            self.recent_files.remove(file_path)
        self.recent_files.insert(0, file_path)
        del self.recent_files[MAX_RECENT_FILES:]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AppSettings:
        """Build settings from a mapping, ignoring unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            logger.warning(f"Ignoring unknown settings: {', '.join(sorted(unknown))}")
        return cls(**{k: v for k, v in data.items() if k in known})

    def validate(self) -> None:
        """Check types and ranges of every field.

        Raises:
            TypeError: If a field has the wrong type
            ValueError: If a field is out of range
        """
        for name in ("initial_lines", "max_lines_per_file", "server_port"):
            value = getattr(self, name)
            # bool is an int subclass
            if not isinstance(value, int) or isinstance(value, bool):
                raise TypeError(f"{name} must be an integer, got {value!r}")
        if not isinstance(self.poll_interval_seconds, (int, float)) or isinstance(
            self.poll_interval_seconds, bool
        ):
            raise TypeError(
                f"poll_interval_seconds must be a number, got {self.poll_interval_seconds!r}"
            )
        if not isinstance(self.use_watcher, bool):
            raise TypeError(f"use_watcher must be true or false, got {self.use_watcher!r}")
        for name in ("encoding", "log_dir", "log_level", "server_host"):
            if not isinstance(getattr(self, name), str):
                raise TypeError(f"{name} must be a string, got {getattr(self, name)!r}")
        if not isinstance(self.recent_files, list) or not all(
            isinstance(path, str) for path in self.recent_files
        ):
            raise TypeError("recent_files must be a list of paths")

        if self.max_lines_per_file <= 0:
            raise ValueError(f"max_lines_per_file must be > 0, got {self.max_lines_per_file}")
        if not 0 < self.server_port < 65536:
            raise ValueError(f"server_port must be 1-65535, got {self.server_port}")
        if not isinstance(logging.getLevelName(self.log_level.upper()), int):
            raise ValueError(f"Unknown log level: {self.log_level}")
        self.to_tail_config()


class SettingsService:
    """Loads and saves AppSettings as a YAML document."""

    def __init__(self, settings_path: str | Path = DEFAULT_SETTINGS_PATH):
        """Initialize settings service.

        Args:
            settings_path: Location of the YAML settings file.
        """
        self.settings_path = Path(settings_path)

    def load(self) -> AppSettings:
        """Load settings from disk, or return defaults if unavailable."""
        if not self.settings_path.exists():
            logger.info(f"Settings file {self.settings_path} does not exist, using defaults")
            return AppSettings()

        try:
            with open(self.settings_path) as f:
                data = yaml.safe_load(f) or {}
            if not isinstance(data, dict):
                raise ValueError("settings document must be a mapping")
            settings = AppSettings.from_dict(data)
            settings.validate()
            logger.debug(f"Loaded settings from {self.settings_path}")
            return settings
        except (OSError, yaml.YAMLError, ValueError, TypeError) as e:
            logger.error(f"Failed to load settings from {self.settings_path}: {e}, using defaults")
            return AppSettings()

    def save(self, settings: AppSettings) -> None:
        """Write settings atomically (temporary file then rename).

        Raises:
            OSError: If the settings directory or file cannot be written.
        """
        self.settings_path.parent.mkdir(parents=True, exist_ok=True)
        temp_file = self.settings_path.with_suffix(".tmp")
        with open(temp_file, "w") as f:
            yaml.safe_dump(settings.to_dict(), f, sort_keys=False)
        temp_file.replace(self.settings_path)
        logger.debug(f"Saved settings to {self.settings_path}")


def settings_from_env(base: AppSettings | None = None) -> AppSettings:
    """Overlay TAILWATCH_* environment variables on ``base``.

    Recognised variables: TAILWATCH_INITIAL_LINES, TAILWATCH_POLL_INTERVAL,
    TAILWATCH_MAX_LINES, TAILWATCH_ENCODING, TAILWATCH_USE_WATCHER,
    TAILWATCH_LOG_DIR, TAILWATCH_LOG_LEVEL, TAILWATCH_HOST, TAILWATCH_PORT.
    """
    settings = base or AppSettings()
    return AppSettings(
        initial_lines=int(os.getenv("TAILWATCH_INITIAL_LINES", str(settings.initial_lines))),
        poll_interval_seconds=float(
            os.getenv("TAILWATCH_POLL_INTERVAL", str(settings.poll_interval_seconds))
        ),
        max_lines_per_file=int(os.getenv("TAILWATCH_MAX_LINES", str(settings.max_lines_per_file))),
        encoding=os.getenv("TAILWATCH_ENCODING", settings.encoding),
        use_watcher=os.getenv("TAILWATCH_USE_WATCHER", str(settings.use_watcher)).lower() == "true",
        log_dir=os.getenv("TAILWATCH_LOG_DIR", settings.log_dir),
        log_level=os.getenv("TAILWATCH_LOG_LEVEL", settings.log_level),
        server_host=os.getenv("TAILWATCH_HOST", settings.server_host),
        server_port=int(os.getenv("TAILWATCH_PORT", str(settings.server_port))),
        recent_files=list(settings.recent_files),
    )
