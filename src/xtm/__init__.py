"""Extempore s-expression engine: block selection and indentation."""

from __future__ import annotations

__version__ = "0.1.0"


def evaluation_text(source: str, offset: int) -> str:
    """Return the text to send to Extempore for a cursor at offset.

    An empty string means there is nothing to evaluate there.
    """
    from xtm.selection import adjust_eval_offset, select_expression

    span = select_expression(source, adjust_eval_offset(source, offset))
    text = span.of(source)
    return text if text.strip() else ""
