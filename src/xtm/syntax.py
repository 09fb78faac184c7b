"""Character classes, spans, scanned cells, and position helpers."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, auto


class CharClass(Enum):
    CODE = auto()
    STRING = auto()  # includes both quote characters
    LINE_COMMENT = auto()  # ; up to (not including) the newline
    BLOCK_COMMENT = auto()  # includes the #| and |# delimiters
    ESCAPED = auto()  # character after \ in a string, or after #\ in code


@dataclass(frozen=True, slots=True)
class Dialect:
    """Lexical conventions the scanner needs to know about."""

    line_comment: str = ";"
    block_open: str | None = "#|"
    block_close: str | None = "|#"
    nested_block_comments: bool = True
    char_prefix: str | None = "#\\"


EXTEMPORE = Dialect()


@dataclass(frozen=True, slots=True)
class Span:
    """Half-open character range [start, end) into some text."""

    start: int
    end: int

    def __post_init__(self) -> None:
        if self.start < 0 or self.end < self.start:
            raise ValueError(f"invalid span [{self.start}, {self.end})")

    def __len__(self) -> int:
        return self.end - self.start

    @property
    def last(self) -> int:
        """Offset of the final character (the closing delimiter of a form)."""
        return self.end - 1

    def contains(self, offset: int) -> bool:
        return self.start <= offset < self.end

    def shift(self, delta: int) -> Span:
        return Span(self.start + delta, self.end + delta)

    def of(self, source: str) -> str:
        return source[self.start : self.end]


@dataclass(frozen=True, slots=True)
class Cell:
    """One scanned character with its context.

    ``depth`` counts the unmatched ``(`` strictly before this character, so a
    top-level opener has depth 0 and its matching closer has depth 1.
    """

    offset: int
    char: str
    kind: CharClass
    depth: int

    @property
    def is_code(self) -> bool:
        return self.kind is CharClass.CODE

    @property
    def is_open(self) -> bool:
        return self.char == "(" and self.kind is CharClass.CODE

    @property
    def is_close(self) -> bool:
        return self.char == ")" and self.kind is CharClass.CODE

    @property
    def is_blank(self) -> bool:
        """Whitespace or comment: separates tokens, never part of one."""
        if self.kind in (CharClass.LINE_COMMENT, CharClass.BLOCK_COMMENT):
            return True
        return self.kind is CharClass.CODE and self.char.isspace()


@dataclass(frozen=True, slots=True)
class Position:
    """Editor position, 0-based line and column."""

    line: int
    column: int


# Reader prefixes that attach to the form that immediately follows them
PREFIX_CHARS = frozenset("'`,@#")


def is_prefix(text: str) -> bool:
    """Return True if text is non-empty and made only of reader prefix chars."""
    return bool(text) and all(ch in PREFIX_CHARS for ch in text)


def position_at(source: str, offset: int) -> Position:
    """Convert a character offset to a 0-based (line, column) position."""
    offset = max(0, min(offset, len(source)))
    line = source.count("\n", 0, offset)
    line_start = source.rfind("\n", 0, offset) + 1
    return Position(line, offset - line_start)


def offset_at(source: str, line: int, column: int) -> int:
    """Convert a 0-based (line, column) position to a character offset.

    Lines past the end map to ``len(source)``; columns are clamped to the
    length of their line.
    """
    start = 0
    for _ in range(line):
        nl = source.find("\n", start)
        if nl == -1:
            return len(source)
        start = nl + 1
    end = source.find("\n", start)
    if end == -1:
        end = len(source)
    return start + max(0, min(column, end - start))
