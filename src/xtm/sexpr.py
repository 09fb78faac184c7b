"""Pick the top-level expression of a block that an offset points at."""

from __future__ import annotations

from collections.abc import Iterator

from xtm.errors import check_offset
from xtm.scanner import Scanner
from xtm.syntax import EXTEMPORE, Dialect, Span, is_prefix


def iter_units(block: str, dialect: Dialect = EXTEMPORE) -> Iterator[Span]:
    """Yield the spans of the atoms and forms directly under the top level.

    Reader prefixes written directly before a form (``'(a)``, ```(a)``,
    ``#(a)``) are part of that form. A form left open runs to the end of
    the block. Comments and whitespace separate units and belong to none.
    """
    start: int | None = None
    in_form = False
    for cell in Scanner(block, dialect):
        if in_form:
            if cell.is_close and cell.depth == 1:
                yield Span(start, cell.offset + 1)
                start, in_form = None, False
            continue

        if cell.is_open:
            if start is not None and not is_prefix(block[start : cell.offset]):
                yield Span(start, cell.offset)
                start = None
            if start is None:
                start = cell.offset
            in_form = True
        elif cell.is_blank or cell.is_close:
            if start is not None:
                yield Span(start, cell.offset)
                start = None
        elif start is None:
            start = cell.offset

    if start is not None:
        yield Span(start, len(block))


def top_level_sexpr(block: str, offset: int, dialect: Dialect = EXTEMPORE) -> Span:
    """Return the span of the top-level unit of block selected by offset.

    A unit strictly containing ``offset`` wins. Otherwise the nearest unit
    before ``offset`` is chosen, which covers both the cursor sitting just
    after a closing delimiter and trailing whitespace after the last form.
    With nothing before ``offset`` the first unit after it is chosen, and a
    blank block gives the empty span at ``offset``.

    The returned span is half-open; ``span.last`` is the offset of the
    closing delimiter of a form.
    """
    check_offset(block, offset)

    preceding: Span | None = None
    for unit in iter_units(block, dialect):
        if unit.contains(offset):
            return unit
        if unit.start > offset:
            return preceding or unit
        preceding = unit
    return preceding or Span(offset, offset)
