"""tailwatch: follow growing text files and publish new lines as events."""

__version__ = "0.1.0"

from .buffer import LineBuffer  # noqa: E402
from .engine import (  # noqa: E402
    TailConfig,
    TailEngine,
    TailError,
    TailErrorKind,
    TailLine,
    TailState,
)
from .session import SessionManager, SessionNotFoundError, TailSession  # noqa: E402
from .settings import AppSettings, SettingsService  # noqa: E402

__all__ = [
    "__version__",
    "TailConfig",
    "TailEngine",
    "TailError",
    "TailErrorKind",
    "TailLine",
    "TailState",
    "LineBuffer",
    "TailSession",
    "SessionManager",
    "SessionNotFoundError",
    "AppSettings",
    "SettingsService",
]
