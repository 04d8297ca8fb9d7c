"""Newline framing for the assistant's NDJSON output stream."""

from __future__ import annotations

from typing import NamedTuple


class FrameResult(NamedTuple):
    """Complete records split from a stream, plus the unterminated tail."""

    records: list[str]
    remainder: str


def frame(buffer: str, chunk: str) -> FrameResult:
    """Append *chunk* to *buffer* and split off every complete line.

    Pure function: the caller owns the carry-over buffer. Blank lines are
    dropped from ``records``; the final unterminated segment is returned
    as ``remainder`` untouched.
    """
    parts = (buffer + chunk).split("\n")
    remainder = parts.pop()
    records = [part for part in parts if part.strip()]
    return FrameResult(records, remainder)


class LineFramer:
    """Stateful wrapper around :func:`frame` for a single stream."""

    def __init__(self) -> None:
        self._buffer = ""

    @property
    def buffer(self) -> str:
        """Bytes received since the last newline."""
        return self._buffer

    def feed(self, chunk: str) -> list[str]:
        """Consume *chunk* and return the records it completed."""
        records, self._buffer = frame(self._buffer, chunk)
        return records

    def flush(self) -> str | None:
        """Return the trailing partial record at end of stream, if any."""
        tail, self._buffer = self._buffer, ""
        return tail if tail.strip() else None
