"""Error types with formatted source context."""

from __future__ import annotations

from xtm.syntax import position_at


class OffsetError(ValueError):
    """Raised when a caller passes an offset outside the text it scans."""

    def __init__(self, message: str, offset: int, source: str) -> None:
        self.message = message
        self.offset = offset
        self.source = source
        super().__init__(self.format())

    def format(self, filename: str = "<buffer>") -> str:
        # Point at the nearest valid position: start of text or end of text
        pos = position_at(self.source, self.offset)
        lines = self.source.splitlines(keepends=True)

        if 0 <= pos.line < len(lines):
            source_line = lines[pos.line].rstrip("\n").rstrip("\r")
        else:
            source_line = ""

        pad = " " * min(pos.column, len(source_line))
        line_num = str(pos.line + 1)
        gutter_width = len(line_num) + 1

        blank_gutter = " " * gutter_width + "|"
        line_gutter = f"{line_num:>{gutter_width - 1}} |"

        return (
            f"error: {self.message}\n"
            f"{' ' * gutter_width}--> {filename}:{pos.line + 1}:{pos.column + 1}\n"
            f"{blank_gutter}\n"
            f"{line_gutter} {source_line}\n"
            f"{blank_gutter} {pad}^"
        )


class ReplError(Exception):
    """Raised when talking to the Extempore process fails."""

    def __init__(self, message: str, hostname: str = "", port: int = 0) -> None:
        self.message = message
        self.hostname = hostname
        self.port = port
        super().__init__(self.format())

    def format(self) -> str:
        if self.hostname:
            return f"error: {self.message} ({self.hostname}:{self.port})"
        return f"error: {self.message}"


def check_offset(source: str, offset: int) -> None:
    """Raise OffsetError unless 0 <= offset <= len(source)."""
    if not 0 <= offset <= len(source):
        raise OffsetError(
            f"offset {offset} out of range for text of length {len(source)}",
            offset,
            source,
        )
