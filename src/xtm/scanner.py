"""Context classifier: tags every character as code, string, comment or escaped."""

from __future__ import annotations

from collections.abc import Iterator
from enum import Enum, auto

from xtm.syntax import EXTEMPORE, Cell, CharClass, Dialect


class _State(Enum):
    CODE = auto()
    STRING = auto()
    LINE_COMMENT = auto()
    BLOCK_COMMENT = auto()


class _Trigger(Enum):
    OPEN = auto()
    CLOSE = auto()
    QUOTE = auto()
    BACKSLASH = auto()
    LINE_COMMENT = auto()
    NEWLINE = auto()
    BLOCK_OPEN = auto()
    BLOCK_CLOSE = auto()
    CHAR_PREFIX = auto()
    OTHER = auto()


_STATE_KIND = {
    _State.CODE: CharClass.CODE,
    _State.STRING: CharClass.STRING,
    _State.LINE_COMMENT: CharClass.LINE_COMMENT,
    _State.BLOCK_COMMENT: CharClass.BLOCK_COMMENT,
}

# Triggers each state reacts to, tried in order (longest lexemes first)
_WATCHED = {
    _State.CODE: (
        _Trigger.CHAR_PREFIX,
        _Trigger.BLOCK_OPEN,
        _Trigger.LINE_COMMENT,
        _Trigger.QUOTE,
        _Trigger.OPEN,
        _Trigger.CLOSE,
    ),
    _State.STRING: (_Trigger.BACKSLASH, _Trigger.QUOTE),
    _State.LINE_COMMENT: (_Trigger.NEWLINE,),
    _State.BLOCK_COMMENT: (_Trigger.BLOCK_CLOSE, _Trigger.BLOCK_OPEN),
}

# (state, trigger) -> (next state, class of the trigger's characters).
# Pairs not listed keep the current state and its class.
_TRANSITIONS = {
    (_State.CODE, _Trigger.QUOTE): (_State.STRING, CharClass.STRING),
    (_State.CODE, _Trigger.LINE_COMMENT): (_State.LINE_COMMENT, CharClass.LINE_COMMENT),
    (_State.CODE, _Trigger.BLOCK_OPEN): (_State.BLOCK_COMMENT, CharClass.BLOCK_COMMENT),
    (_State.STRING, _Trigger.QUOTE): (_State.CODE, CharClass.STRING),
    (_State.LINE_COMMENT, _Trigger.NEWLINE): (_State.CODE, CharClass.CODE),
    (_State.BLOCK_COMMENT, _Trigger.BLOCK_CLOSE): (_State.CODE, CharClass.BLOCK_COMMENT),
}


class Scanner:
    """Single left-to-right pass over source text yielding one Cell per character.

    Iterating again resumes where the previous iteration stopped, so text
    appended with ``feed`` is scanned in the context of what came before.
    After iteration, ``state`` and ``depth`` describe where the text ended:
    an unterminated string or comment is left open rather than reported.
    """

    def __init__(self, source: str, dialect: Dialect = EXTEMPORE) -> None:
        self._source = source
        self._pos = 0
        self._state = _State.CODE
        self._depth = 0
        self._comment_depth = 0
        self._nested_comments = dialect.nested_block_comments
        self._lexemes = {
            _Trigger.OPEN: "(",
            _Trigger.CLOSE: ")",
            _Trigger.QUOTE: '"',
            _Trigger.BACKSLASH: "\\",
            _Trigger.NEWLINE: "\n",
            _Trigger.LINE_COMMENT: dialect.line_comment,
            _Trigger.BLOCK_OPEN: dialect.block_open,
            _Trigger.BLOCK_CLOSE: dialect.block_close,
            _Trigger.CHAR_PREFIX: dialect.char_prefix,
        }

    @property
    def state(self) -> CharClass:
        """Class of the context the scan is currently in."""
        return _STATE_KIND[self._state]

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def in_string(self) -> bool:
        return self._state is _State.STRING

    def feed(self, text: str) -> Iterator[Cell]:
        """Append text and scan it.

        Multi-character lexemes (``#|``, ``#\\``) are not matched across the
        boundary, so callers feed whole lines.
        """
        self._source += text
        return iter(self)

    def __iter__(self) -> Iterator[Cell]:
        source = self._source
        while self._pos < len(source):
            state = self._state
            trigger, lexeme = self._match()
            next_state, kind = _TRANSITIONS.get(
                (state, trigger), (state, _STATE_KIND[state])
            )

            if state is _State.BLOCK_COMMENT:
                next_state = self._comment_step(trigger)
            elif next_state is _State.BLOCK_COMMENT:
                self._comment_depth = 1

            depth = self._depth
            for ch in lexeme:
                yield Cell(self._pos, ch, kind, depth)
                self._pos += 1

            if trigger is _Trigger.OPEN:
                self._depth += 1
            elif trigger is _Trigger.CLOSE:
                # Stray closers are absorbed
                self._depth = max(0, self._depth - 1)
            elif trigger in (_Trigger.BACKSLASH, _Trigger.CHAR_PREFIX):
                if self._pos < len(source):
                    yield Cell(self._pos, source[self._pos], CharClass.ESCAPED, self._depth)
                    self._pos += 1

            self._state = next_state

    def _match(self) -> tuple[_Trigger, str]:
        for trigger in _WATCHED[self._state]:
            lexeme = self._lexemes[trigger]
            if lexeme and self._source.startswith(lexeme, self._pos):
                return trigger, lexeme
        return _Trigger.OTHER, self._source[self._pos]

    def _comment_step(self, trigger: _Trigger) -> _State:
        if trigger is _Trigger.BLOCK_OPEN and self._nested_comments:
            self._comment_depth += 1
        elif trigger is _Trigger.BLOCK_CLOSE:
            self._comment_depth -= 1
            if self._comment_depth == 0:
                return _State.CODE
        return _State.BLOCK_COMMENT


def scan(source: str, dialect: Dialect = EXTEMPORE) -> list[Cell]:
    """Convenience function: scan source text and return every cell."""
    return list(Scanner(source, dialect))


def classify(source: str, dialect: Dialect = EXTEMPORE) -> list[CharClass]:
    """Return the character class of each position in source."""
    return [cell.kind for cell in Scanner(source, dialect)]
