"""Find ``(sys:load "...")`` paths so editors can link to the loaded files."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path

from xtm.scanner import classify
from xtm.syntax import CharClass, Span

_LOAD_PREFIX = '(sys:load "'
_LOAD_RE = re.compile(r'(?<=\(sys:load ")[^"\n]+?\.[^"\n]+?(?=")')

# /abs, \abs, ~/home, or a drive / scheme prefix such as C:\ or C:/
_ABSOLUTE_RE = re.compile(r"^([\\/~]|.+:[\\/])")


@dataclass(frozen=True, slots=True)
class LoadLink:
    """A loaded path as written in the source and the file it refers to."""

    span: Span
    path: str
    target: Path


def is_absolute(path: str) -> bool:
    return _ABSOLUTE_RE.match(path) is not None


def find_load_links(source: str, sharedir: Path | None = None) -> list[LoadLink]:
    """Return a link for every ``sys:load`` in code (not in comments or strings).

    Relative paths resolve against ``sharedir``, the Extempore installation
    directory; without one they are skipped.
    """
    kinds: list[CharClass] | None = None
    links: list[LoadLink] = []
    for match in _LOAD_RE.finditer(source):
        if kinds is None:
            kinds = classify(source)
        if kinds[match.start() - len(_LOAD_PREFIX)] is not CharClass.CODE:
            continue

        path = match.group()
        if is_absolute(path):
            target = Path(path).expanduser()
        elif sharedir is not None:
            target = Path(sharedir) / path
        else:
            continue
        links.append(LoadLink(Span(match.start(), match.end()), path, target))
    return links
