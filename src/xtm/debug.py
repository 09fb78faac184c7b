"""--debug character classification dump to stderr."""

from __future__ import annotations

import sys
from typing import TextIO

from xtm.scanner import Scanner
from xtm.syntax import Cell, CharClass

_MARKS = {
    CharClass.CODE: ".",
    CharClass.STRING: "s",
    CharClass.LINE_COMMENT: ";",
    CharClass.BLOCK_COMMENT: "#",
    CharClass.ESCAPED: "e",
}


def dump_classes(source: str, *, file: TextIO | None = None) -> None:
    """Print every line of *source* with its class map and paren depths below."""
    file = file if file is not None else sys.stderr
    line: list[Cell] = []
    number = 1
    for cell in Scanner(source):
        if cell.char == "\n":
            _dump_line(line, number, file)
            line = []
            number += 1
        else:
            line.append(cell)
    _dump_line(line, number, file)


def _mark(cell: Cell) -> str:
    if cell.kind is CharClass.CODE and cell.char.isspace():
        return " "
    return _MARKS[cell.kind]


def _depth(cell: Cell) -> str:
    if cell.is_open:
        return str(cell.depth % 10)
    if cell.is_close:
        return str(max(cell.depth - 1, 0) % 10)
    return " "


def _dump_line(cells: list[Cell], number: int, f: TextIO) -> None:
    text = "".join(c.char for c in cells)
    f.write(f"{number:>4} | {text}\n")
    f.write(f"     | {''.join(_mark(c) for c in cells)}\n")
    depths = "".join(_depth(c) for c in cells).rstrip()
    if depths:
        f.write(f"     | {depths}\n")
