"""Configuration for the file-tail engine.

This module defines the configuration dataclass that controls engine
behavior: the size of the initial tail window, the poll fallback interval and
how change notifications are used.
"""

from __future__ import annotations

import codecs
from dataclasses import dataclass


@dataclass
class TailConfig:
    """Configuration for a tail engine.

    Attributes:
        initial_lines: Lines emitted from the end of the file on start (default: 100).
        poll_interval_seconds: Fallback wait between read cycles (default: 0.5).
        encoding: Text encoding of the file; must be ASCII-compatible (default: utf-8).
        use_watcher: Arm a filesystem watcher in addition to polling (default: True).
        require_watcher: Treat watcher setup failure as fatal (default: False).
        read_chunk_size: Bytes per read during the initial scan (default: 65536).
    """

    initial_lines: int = 100
    poll_interval_seconds: float = 0.5
    encoding: str = "utf-8"
    use_watcher: bool = True
    require_watcher: bool = False
    read_chunk_size: int = 65536

    def __post_init__(self) -> None:
        if self.initial_lines < 0:
            raise ValueError(f"initial_lines must be >= 0, got {self.initial_lines}")
        if self.poll_interval_seconds <= 0:
            raise ValueError(
                f"poll_interval_seconds must be > 0, got {self.poll_interval_seconds}"
            )
        if self.read_chunk_size <= 0:
            raise ValueError(f"read_chunk_size must be > 0, got {self.read_chunk_size}")
        try:
            codecs.lookup(self.encoding)
        except LookupError as e:
            raise ValueError(f"Unknown encoding: {self.encoding}") from e
        # Lines are split on raw bytes, so a newline must be the single byte 0x0A
        try:
            newline = "\n".encode(self.encoding)
        except (LookupError, UnicodeError) as e:
            raise ValueError(f"Encoding {self.encoding} cannot encode text lines") from e
        if newline != b"\n":
            raise ValueError(f"Encoding {self.encoding} is not ASCII-compatible")
