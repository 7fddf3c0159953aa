"""Incremental line reading from byte offsets.

Lines are split on ``\\n``, ``\\r\\n`` or a bare ``\\r`` at the byte level and
decoded afterwards, so the encoding must be ASCII-compatible (UTF-8, Latin-1,
cp125x...). A trailing fragment without terminator is never returned: the
reported ``consumed`` count stops before it so the next read picks it up
again once it is complete.
"""

from __future__ import annotations

import codecs
import logging
import re
from collections import deque
from dataclasses import dataclass
from typing import BinaryIO

from .models import ReadResult

logger = logging.getLogger(__name__)

_TERMINATOR = re.compile(rb"\r\n|\r|\n")
_UTF8_NAMES = {"utf-8", "utf8", "utf-8-sig", "utf_8", "utf_8_sig"}


def _decode(raw: bytes, encoding: str) -> tuple[str, bool]:
    """Decode one line, substituting U+FFFD for invalid sequences.

    Returns:
        Tuple of (text, had_errors).
    """
    try:
        return raw.decode(encoding), False
    except UnicodeDecodeError:
        return raw.decode(encoding, errors="replace"), True


def split_lines(data: bytes, encoding: str = "utf-8", at_file_start: bool = False) -> ReadResult:
    """Split a byte buffer into complete decoded lines.

    Args:
        data: Bytes starting at a line boundary.
        encoding: Encoding used to decode each line.
        at_file_start: Whether ``data`` begins at offset 0, in which case a
            UTF-8 byte order mark is skipped.

    Returns:
        ReadResult with the complete lines and the bytes they cover. A bare
        ``\\r`` at the very end is held back since the next byte may turn
        it into ``\\r\\n``.
    """
    pos = 0
    if at_file_start and encoding.lower() in _UTF8_NAMES and data.startswith(codecs.BOM_UTF8):
        pos = len(codecs.BOM_UTF8)

    lines: list[str] = []
    consumed = 0
    decode_errors = 0
    end = len(data)

    for match in _TERMINATOR.finditer(data, pos):
        if match.group() == b"\r" and match.end() == end:
            break
        text, had_errors = _decode(data[pos : match.start()], encoding)
        if had_errors:
            decode_errors += 1
        lines.append(text)
        pos = match.end()
        consumed = pos

    return ReadResult(lines=lines, consumed=consumed, decode_errors=decode_errors)


@dataclass
class TailWindow:
    """Result of the one-off scan performed when an engine starts.

    Attributes:
        lines: The last N complete lines of the file.
        total_lines: Number of complete lines in the whole file.
        consumed: Offset just past the last complete line.
        decode_errors: Lines that needed replacement characters during the scan.
    """

    lines: list[str]
    total_lines: int
    consumed: int
    decode_errors: int = 0

    @property
    def first_line_number(self) -> int:
        return self.total_lines - len(self.lines) + 1


class LineReader:
    """Reads complete lines from an open binary file handle.

    The reader holds no position of its own; callers pass the offset to read
    from and advance their own cursor by the returned ``consumed`` count.

    Attributes:
        encoding: Text encoding of the file.
        chunk_size: Bytes per read during the tail-window scan.
    """

    def __init__(self, encoding: str = "utf-8", chunk_size: int = 65536):
        """Initialize line reader.

        Args:
            encoding: Text encoding of the file.
            chunk_size: Bytes per read during the tail-window scan.
        """
        self.encoding = encoding
        self.chunk_size = chunk_size

    def read_lines(self, handle: BinaryIO, offset: int) -> ReadResult:
        """Read every complete line from ``offset`` to end of stream.

        Args:
            handle: File opened in binary mode.
            offset: Byte offset of a line boundary.

        Returns:
            ReadResult; ``consumed`` is relative to ``offset``.
        """
        handle.seek(offset)
        data = handle.read()
        result = split_lines(data, self.encoding, at_file_start=offset == 0)
        if result.lines:
            logger.debug(
                f"Read {len(result.lines)} lines (offset {offset} -> {offset + result.consumed})"
            )
        return result

    def read_tail(self, handle: BinaryIO, max_lines: int) -> TailWindow:
        """Scan the whole file keeping only the last ``max_lines`` lines.

        This is a single O(file size) pass performed in fixed-size chunks so
        memory stays bounded by the window, one chunk and the longest line.

        Args:
            handle: File opened in binary mode.
            max_lines: Size of the tail window; 0 keeps no lines.

        Returns:
            TailWindow describing the retained lines and the end offset.
        """
        handle.seek(0)
        window: deque[str] = deque(maxlen=max_lines)
        total = 0
        consumed = 0
        decode_errors = 0
        # Bytes after the last complete line; they hold no terminator except
        # possibly a trailing \r
        pending: list[bytes] = []

        while True:
            chunk = handle.read(self.chunk_size)
            if not chunk:
                break
            pending.append(chunk)
            follows_cr = len(pending) > 1 and pending[-2].endswith(b"\r")
            if not follows_cr and _TERMINATOR.search(chunk) is None:
                continue
            buffer = b"".join(pending)
            result = split_lines(buffer, self.encoding, at_file_start=consumed == 0)
            window.extend(result.lines)
            total += len(result.lines)
            decode_errors += result.decode_errors
            consumed += result.consumed
            carry = buffer[result.consumed :]
            pending = [carry] if carry else []

        logger.debug(f"Initial scan found {total} lines, keeping {len(window)}")
        return TailWindow(
            lines=list(window),
            total_lines=total,
            consumed=consumed,
            decode_errors=decode_errors,
        )
