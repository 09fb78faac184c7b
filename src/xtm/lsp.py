"""Language server for Extempore: indentation, sys:load links, evaluation."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from lsprotocol.types import (
    INITIALIZE,
    TEXT_DOCUMENT_DOCUMENT_LINK,
    TEXT_DOCUMENT_ON_TYPE_FORMATTING,
    TEXT_DOCUMENT_RANGE_FORMATTING,
    DocumentLink,
    DocumentLinkParams,
    DocumentOnTypeFormattingOptions,
    DocumentOnTypeFormattingParams,
    DocumentRangeFormattingParams,
    InitializeParams,
    MessageType,
    Position,
    Range,
    ShowMessageParams,
    TextDocumentSyncKind,
    TextEdit,
)
from pygls.lsp.server import LanguageServer
from pygls.uris import to_fs_path

from xtm import __version__
from xtm.client import ReplClient
from xtm.config import Settings, load_config, resolve_settings
from xtm.errors import ReplError
from xtm.indent import FrameWalker, indent_lines
from xtm.links import find_load_links
from xtm.selection import adjust_eval_offset, select_expression
from xtm.syntax import Span, offset_at, position_at

logger = logging.getLogger(__name__)

CONNECT_COMMAND = "extempore.connect"
DISCONNECT_COMMAND = "extempore.disconnect"
EVAL_COMMAND = "extempore.eval"


class ExtemporeLanguageServer(LanguageServer):
    """LanguageServer carrying resolved settings and the REPL connection."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.settings = Settings()
        self.repl: ReplClient | None = None


server = ExtemporeLanguageServer(
    "xtm-lsp", __version__, text_document_sync_kind=TextDocumentSyncKind.Full
)


def _show(ls: ExtemporeLanguageServer, kind: MessageType, message: str) -> None:
    ls.window_show_message(ShowMessageParams(type=kind, message=message))


def _lsp_range(source: str, span: Span) -> Range:
    start = position_at(source, span.start)
    end = position_at(source, span.end)
    return Range(
        start=Position(line=start.line, character=start.column),
        end=Position(line=end.line, character=end.column),
    )


def _leading_width(line: str) -> int:
    return len(line) - len(line.lstrip(" \t"))


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


def configure(ls: ExtemporeLanguageServer, params: InitializeParams) -> None:
    """Resolve settings from xtm.toml in the workspace and initializationOptions."""
    root = to_fs_path(params.root_uri) if params.root_uri else None
    root_path = Path(root) if root else None

    config: dict[str, Any] = load_config(None, root_path) if root_path else {}
    options = params.initialization_options
    if isinstance(options, dict):
        for section, values in options.items():
            if isinstance(values, dict) and isinstance(config.get(section), dict):
                config[section] = {**config[section], **values}
            else:
                config[section] = values

    ls.settings = resolve_settings(config, os.environ, root_path)
    logger.info("settings: %s", ls.settings)


# ---------------------------------------------------------------------------
# Formatting
# ---------------------------------------------------------------------------


def format_on_type(
    ls: ExtemporeLanguageServer, params: DocumentOnTypeFormattingParams
) -> list[TextEdit]:
    """Replace the leading whitespace of the new line with its computed indent."""
    doc = ls.workspace.get_text_document(params.text_document.uri)
    lines = doc.lines
    line = params.position.line

    first = max(0, line - ls.settings.lookback_lines)
    walker = FrameWalker()
    walker.feed("".join(lines[first:line]))
    # Leading whitespace of a string continuation is part of the literal
    if walker.in_string:
        return []
    indent = walker.indent(ls.settings.body_indent)

    current = lines[line].rstrip("\r\n") if line < len(lines) else ""
    width = _leading_width(current)
    if current[:width] == " " * indent:
        return []
    return [
        TextEdit(
            range=Range(
                start=Position(line=line, character=0),
                end=Position(line=line, character=width),
            ),
            new_text=" " * indent,
        )
    ]


def format_range(
    ls: ExtemporeLanguageServer, params: DocumentRangeFormattingParams
) -> list[TextEdit]:
    """Re-indent every line touched by the range."""
    doc = ls.workspace.get_text_document(params.text_document.uri)
    lines = doc.lines
    start = params.range.start.line
    end = params.range.end.line

    # A range ending at column 0 stops before that line
    if end > start and params.range.end.character == 0:
        end -= 1
    if start >= len(lines):
        return []
    end = min(end, len(lines) - 1)

    first = max(0, start - ls.settings.lookback_lines)
    preceding = "".join(lines[first:start])
    originals = [text.rstrip("\r\n") for text in lines[start : end + 1]]
    updated = indent_lines(preceding, originals, ls.settings.body_indent)
    if updated == originals:
        return []

    eol = "\r\n" if lines[start].endswith("\r\n") else "\n"
    return [
        TextEdit(
            range=Range(
                start=Position(line=start, character=0),
                end=Position(line=end, character=len(originals[-1])),
            ),
            new_text=eol.join(updated),
        )
    ]


# ---------------------------------------------------------------------------
# Links
# ---------------------------------------------------------------------------


def document_links(ls: ExtemporeLanguageServer, params: DocumentLinkParams) -> list[DocumentLink]:
    doc = ls.workspace.get_text_document(params.text_document.uri)
    source = doc.source
    return [
        DocumentLink(range=_lsp_range(source, link.span), target=link.target.absolute().as_uri())
        for link in find_load_links(source, ls.settings.sharedir)
    ]


# ---------------------------------------------------------------------------
# REPL connection and evaluation
# ---------------------------------------------------------------------------


def connect(
    ls: ExtemporeLanguageServer, hostname: str | None = None, port: int | None = None
) -> bool:
    """(Re)connect to Extempore, reporting the outcome to the user."""
    if ls.repl is not None:
        ls.repl.close()
        ls.repl = None

    client = ReplClient(
        hostname or ls.settings.hostname,
        port or ls.settings.port,
        ls.settings.timeout,
    )
    try:
        client.connect()
    except ReplError as exc:
        logger.warning("%s", exc)
        _show(ls, MessageType.Error, f"Extempore: socket connection error \"{exc.message}\"")
        return False

    ls.repl = client
    _show(ls, MessageType.Info, f"Extempore: connected to port {client.port}")
    return True


def disconnect(ls: ExtemporeLanguageServer) -> None:
    if ls.repl is not None:
        ls.repl.close()
        ls.repl = None
        _show(ls, MessageType.Info, "Extempore: connection closed")


def evaluate_at(
    ls: ExtemporeLanguageServer,
    uri: str,
    line: int,
    character: int,
    end_line: int | None = None,
    end_character: int | None = None,
) -> Range | None:
    """Send code to Extempore and report its reply; return the range sent.

    A non-empty range (an editor selection) is sent as it is. Otherwise the
    top-level expression at the cursor position is sent.
    """
    if ls.repl is None or not ls.repl.connected:
        _show(ls, MessageType.Error, "Extempore: not connected, run extempore.connect first")
        return None

    source = ls.workspace.get_text_document(uri).source
    start = offset_at(source, line, character)
    end = start
    if end_line is not None and end_character is not None:
        end = offset_at(source, end_line, end_character)
    if start != end:
        span = Span(min(start, end), max(start, end))
    else:
        span = select_expression(source, adjust_eval_offset(source, start))
    code = span.of(source)
    if not code.strip():
        _show(ls, MessageType.Info, "Extempore: nothing to evaluate here")
        return None

    try:
        ls.repl.send(code)
    except ReplError as exc:
        logger.warning("%s", exc)
        ls.repl = None
        _show(ls, MessageType.Error, "Extempore: error sending code to process, do you need to connect?")
        return None
    logger.debug("evaluated %r", code)

    try:
        reply = ls.repl.read_reply()
    except ReplError as exc:
        logger.warning("%s", exc)
        if ls.repl.connected:
            _show(ls, MessageType.Warning, f"Extempore: {exc.message}")
        else:
            ls.repl = None
            _show(ls, MessageType.Error, f"Extempore: {exc.message}")
    else:
        logger.debug("reply %r", reply)
        _show(ls, MessageType.Info, f"Extempore: {reply}")
    return _lsp_range(source, span)


def _arguments(args: tuple[Any, ...]) -> list[Any]:
    # Arguments may arrive unpacked or as a single list
    if len(args) == 1 and isinstance(args[0], list):
        return args[0]
    return list(args)


def run_connect(ls: ExtemporeLanguageServer, arguments: list[Any]) -> bool:
    """extempore.connect [hostname [port]]"""
    hostname = arguments[0] if len(arguments) > 0 else None
    port = arguments[1] if len(arguments) > 1 else None
    if hostname is not None and not isinstance(hostname, str):
        _show(ls, MessageType.Error, f"Extempore: invalid hostname {hostname!r}")
        return False
    if port is not None:
        try:
            port = int(port)
        except (TypeError, ValueError):
            _show(ls, MessageType.Error, f"Extempore: invalid port {port!r}")
            return False
    return connect(ls, hostname, port)


def run_eval(ls: ExtemporeLanguageServer, arguments: list[Any]) -> Range | None:
    """extempore.eval uri line character [end_line end_character]"""
    usage = (
        f"Extempore: {EVAL_COMMAND} expects uri, line, character"
        " and an optional end line and character"
    )
    if len(arguments) not in (3, 5) or not isinstance(arguments[0], str):
        _show(ls, MessageType.Error, usage)
        return None
    try:
        position = [int(value) for value in arguments[1:]]
    except (TypeError, ValueError):
        _show(ls, MessageType.Error, usage)
        return None
    return evaluate_at(ls, arguments[0], *position)


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


@server.feature(INITIALIZE)
def initialize(ls: ExtemporeLanguageServer, params: InitializeParams) -> None:
    configure(ls, params)


@server.feature(
    TEXT_DOCUMENT_ON_TYPE_FORMATTING,
    DocumentOnTypeFormattingOptions(first_trigger_character="\n"),
)
def on_type_formatting(
    ls: ExtemporeLanguageServer, params: DocumentOnTypeFormattingParams
) -> list[TextEdit]:
    return format_on_type(ls, params)


@server.feature(TEXT_DOCUMENT_RANGE_FORMATTING)
def range_formatting(
    ls: ExtemporeLanguageServer, params: DocumentRangeFormattingParams
) -> list[TextEdit]:
    return format_range(ls, params)


@server.feature(TEXT_DOCUMENT_DOCUMENT_LINK)
def document_link(ls: ExtemporeLanguageServer, params: DocumentLinkParams) -> list[DocumentLink]:
    return document_links(ls, params)


@server.command(CONNECT_COMMAND)
def connect_command(ls: ExtemporeLanguageServer, *args: Any) -> bool:
    return run_connect(ls, _arguments(args))


@server.command(DISCONNECT_COMMAND)
def disconnect_command(ls: ExtemporeLanguageServer, *args: Any) -> None:
    disconnect(ls)


@server.command(EVAL_COMMAND)
def eval_command(ls: ExtemporeLanguageServer, *args: Any) -> Range | None:
    return run_eval(ls, _arguments(args))


def main() -> None:
    server.start_io()
