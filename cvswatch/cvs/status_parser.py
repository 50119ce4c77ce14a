"""Resumable parser for line-oriented ``cvs`` status output.

The client reports one file per line as ``<code> <path>``, for example::

    M src/main.c
    ? notes.txt

Output arrives in arbitrary chunks, so :meth:`CvsStatusParser.update` keeps
the trailing partial line until its newline shows up. Lines that do not have
the ``<code> <path>`` shape (progress chatter, banners) are skipped.
"""

from __future__ import annotations

import re

import msgspec

_STATUS_LINE = re.compile(r"^(?P<code>\S) (?P<path>\S.*?)\s*$")


class FileStatusEntry(msgspec.Struct, frozen=True):
    """One file reported by the status command."""

    path: str
    status_code: str


class StatusResult(msgspec.Struct, frozen=True):
    """Parsed status listing, possibly truncated at the caller's limit."""

    status: tuple[FileStatusEntry, ...]
    did_hit_limit: bool = False


class CvsStatusParser:
    """Accumulate :class:`FileStatusEntry` values from streamed output."""

    def __init__(self) -> None:
        """Create a parser with no buffered input."""
        self._pending = ""
        self.status: list[FileStatusEntry] = []

    def update(self, raw: str) -> None:
        """Consume a chunk of output, parsing every completed line."""
        self._pending += raw
        *lines, self._pending = self._pending.split("\n")
        for line in lines:
            self._parse_line(line)

    def finish(self) -> None:
        """Parse a final line that was not terminated by a newline."""
        pending, self._pending = self._pending, ""
        if pending:
            self._parse_line(pending)

    def _parse_line(self, line: str) -> None:
        match = _STATUS_LINE.match(line.rstrip("\r"))
        if match is None:
            return
        self.status.append(
            FileStatusEntry(path=match["path"], status_code=match["code"])
        )


__all__ = ["CvsStatusParser", "FileStatusEntry", "StatusResult"]
