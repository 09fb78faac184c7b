"""Indentation from delimiter structure: where the next line should start."""

from __future__ import annotations

from dataclasses import dataclass

from xtm.scanner import Scanner
from xtm.syntax import EXTEMPORE, Dialect, is_prefix

BODY_INDENT = 1

# Callers only pass this many lines before the edit point
LOOKBACK_LINES = 1000


@dataclass(slots=True)
class DelimiterFrame:
    """An open ``(`` and what has been read directly inside it so far."""

    offset: int
    column: int
    line: int
    head: str | None = None  # None until read, or when the head is a form
    head_column: int | None = None
    arg_column: int | None = None  # second child, only if on the ( line
    children: int = 0

    def add_child(self, column: int, line: int) -> None:
        self.children += 1
        if self.children == 1:
            self.head_column = column
        elif self.children == 2 and line == self.line:
            self.arg_column = column

    def indent(self, body_indent: int = BODY_INDENT) -> int:
        if self.arg_column is not None:
            return self.arg_column
        return self.column + body_indent


class FrameWalker:
    """Track the open delimiter frames of text fed to it line by line."""

    def __init__(self, dialect: Dialect = EXTEMPORE) -> None:
        self._scanner = Scanner("", dialect)
        self._frames: list[DelimiterFrame] = []
        self._line = 0
        self._line_start = 0
        self._token: list[str] | None = None
        self._head_frame: DelimiterFrame | None = None

    @property
    def frames(self) -> list[DelimiterFrame]:
        return list(self._frames)

    @property
    def in_string(self) -> bool:
        return self._scanner.in_string

    def feed(self, text: str) -> None:
        for cell in self._scanner.feed(text):
            column = cell.offset - self._line_start

            if cell.is_open:
                attached = self._token is not None and is_prefix("".join(self._token))
                if self._frames and not attached:
                    self._frames[-1].add_child(column, self._line)
                elif attached and self._head_frame is not None:
                    # A prefixed form in head position is a form head
                    self._head_frame.head = None
                self._end_token()
                self._frames.append(DelimiterFrame(cell.offset, column, self._line))
            elif cell.is_close or cell.is_blank:
                self._end_token()
                if cell.is_close and self._frames:
                    self._frames.pop()
            else:
                if self._token is None:
                    self._start_token(column)
                self._token.append(cell.char)
                if self._head_frame is not None:
                    self._head_frame.head = "".join(self._token)

            if cell.char == "\n":
                self._line += 1
                self._line_start = cell.offset + 1

    def indent(self, body_indent: int = BODY_INDENT) -> int:
        """Column for a line starting after everything fed so far."""
        if self._scanner.in_string or not self._frames:
            return 0
        return self._frames[-1].indent(body_indent)

    def _start_token(self, column: int) -> None:
        self._token = []
        if self._frames:
            frame = self._frames[-1]
            frame.add_child(column, self._line)
            if frame.children == 1:
                self._head_frame = frame

    def _end_token(self) -> None:
        self._token = None
        self._head_frame = None


def open_frames(preceding: str, dialect: Dialect = EXTEMPORE) -> list[DelimiterFrame]:
    """Return the frames still open at the end of preceding, outermost first."""
    walker = FrameWalker(dialect)
    walker.feed(preceding)
    return walker.frames


def compute_indent(
    preceding: str,
    body_indent: int = BODY_INDENT,
    dialect: Dialect = EXTEMPORE,
) -> int:
    """Return the column at which the line after preceding should begin.

    Top level is column 0. Inside a form whose ``(`` line already holds a
    second token, the line aligns with that token. Otherwise it is indented
    ``body_indent`` past the ``(``. Text ending inside a string gives 0.
    """
    walker = FrameWalker(dialect)
    walker.feed(preceding)
    return walker.indent(body_indent)


def indent_lines(
    preceding: str,
    lines: list[str],
    body_indent: int = BODY_INDENT,
    dialect: Dialect = EXTEMPORE,
) -> list[str]:
    """Re-indent lines that follow preceding, each from all text before it.

    Lines that begin inside a string literal are kept verbatim, and blank
    lines come back empty.
    """
    walker = FrameWalker(dialect)
    if preceding:
        walker.feed(preceding if preceding.endswith("\n") else preceding + "\n")

    result: list[str] = []
    for line in lines:
        if walker.in_string:
            text = line
        else:
            stripped = line.strip()
            text = " " * walker.indent(body_indent) + stripped if stripped else ""
        result.append(text)
        walker.feed(text + "\n")
    return result


def reindent(source: str, body_indent: int = BODY_INDENT, dialect: Dialect = EXTEMPORE) -> str:
    """Re-indent a whole document."""
    return "\n".join(indent_lines("", source.split("\n"), body_indent, dialect))
