"""From a cursor in a whole document to the exact text to evaluate."""

from __future__ import annotations

from xtm.block import get_block
from xtm.errors import check_offset
from xtm.sexpr import top_level_sexpr
from xtm.syntax import EXTEMPORE, Dialect, Span


def adjust_eval_offset(source: str, offset: int) -> int:
    """Step back onto a closing paren the cursor sits just after.

    ``(foo)|`` evaluates ``(foo)``; ``(foo)|)`` is left alone because the
    cursor is then still inside an enclosing form.
    """
    check_offset(source, offset)
    if offset > 0 and source[offset - 1] == ")" and source[offset : offset + 1] != ")":
        return offset - 1
    return offset


def select_expression(source: str, offset: int, dialect: Dialect = EXTEMPORE) -> Span:
    """Return the document span of the top-level expression at offset.

    The offset is used as given; apply ``adjust_eval_offset`` first for a
    cursor position.
    """
    block = get_block(source, offset, dialect)
    # The block may end before offset when it is the form preceding it
    relative = min(offset, block.end) - block.start
    expr = top_level_sexpr(block.of(source), relative, dialect)
    return expr.shift(block.start)
