"""Locate the top-level form around an offset in a (possibly malformed) buffer."""

from __future__ import annotations

from xtm.errors import check_offset
from xtm.scanner import Scanner
from xtm.syntax import EXTEMPORE, Dialect, Span


def get_block(source: str, offset: int, dialect: Dialect = EXTEMPORE) -> Span:
    """Return the span of the top-level form containing or preceding offset.

    The form starts at the last top-level ``(`` at or before ``offset`` and
    ends one past its matching ``)``. A form left open runs to the end of the
    text. When no top-level form starts at or before ``offset`` the result is
    the empty span at ``offset`` (nothing to evaluate).

    Raises OffsetError unless ``0 <= offset <= len(source)``.
    """
    check_offset(source, offset)

    start: int | None = None
    end: int | None = None
    for cell in Scanner(source, dialect):
        if cell.offset > offset and (start is None or end is not None):
            break
        if cell.is_open and cell.depth == 0:
            if cell.offset > offset:
                break
            start, end = cell.offset, None
        elif cell.is_close and cell.depth == 1 and start is not None:
            end = cell.offset + 1

    if start is None:
        return Span(offset, offset)
    return Span(start, len(source) if end is None else end)
