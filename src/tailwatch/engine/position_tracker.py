"""Read-position tracking for one tailed file.

The tracker holds the byte offset just past the last consumed line, the last
assigned line number and the identity of the file those bytes came from. It
performs no I/O; the engine feeds it the results of each read.
"""

from __future__ import annotations

import logging

from .models import Position

logger = logging.getLogger(__name__)


class PositionTracker:
    """Holds the read cursor and line counter for a single engine.

    Line numbering is monotonic for the tracker's lifetime: resetting the
    byte offset after truncation or replacement does not reset numbering.

    Attributes:
        byte_offset: Offset just past the last fully consumed line.
        line_number: Number assigned to the last emitted line.
        file_id: (st_dev, st_ino) of the file last read, if known.
    """

    def __init__(
        self,
        byte_offset: int = 0,
        line_number: int = 0,
        file_id: tuple[int, int] | None = None,
    ):
        """Initialize position tracker.

        Args:
            byte_offset: Starting offset in bytes.
            line_number: Number of the last line already accounted for.
            file_id: Identity of the file the offset refers to.
        """
        if byte_offset < 0 or line_number < 0:
            raise ValueError("byte_offset and line_number must be non-negative")
        self.byte_offset = byte_offset
        self.line_number = line_number
        self.file_id = file_id

    def snapshot(self) -> Position:
        """Return an immutable copy of the current position."""
        return Position(byte_offset=self.byte_offset, line_number=self.line_number)

    def next_line_numbers(self, count: int) -> range:
        """Return the numbers the next ``count`` lines will receive."""
        return range(self.line_number + 1, self.line_number + count + 1)

    def advance(self, consumed_bytes: int, line_count: int) -> None:
        """Move the cursor past a successfully emitted batch.

        Args:
            consumed_bytes: Bytes covered by the batch, terminators included.
            line_count: Number of lines in the batch.
        """
        if consumed_bytes < 0 or line_count < 0:
            raise ValueError("consumed_bytes and line_count must be non-negative")
        self.byte_offset += consumed_bytes
        self.line_number += line_count

    def reset_offset(self) -> None:
        """Rewind the read cursor to the start of the file.

        Used after truncation or replacement; line numbering continues.
        """
        logger.debug(
            f"Resetting read offset from {self.byte_offset} to 0 (line {self.line_number})"
        )
        self.byte_offset = 0

    def is_truncated(self, file_length: int) -> bool:
        return file_length < self.byte_offset

    def is_replaced(self, file_id: tuple[int, int] | None) -> bool:
        """Check whether ``file_id`` names a different file than the last read.

        Unknown identities (None, or a zero inode as reported on some
        platforms) never count as a replacement.
        """
        if self.file_id is None or file_id is None:
            return False
        if self.file_id[1] == 0 or file_id[1] == 0:
            return False
        return file_id != self.file_id
