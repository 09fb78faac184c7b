"""Tests for the language server: formatting, links and evaluation."""

from __future__ import annotations

from pathlib import Path

import pytest
from lsprotocol.types import (
    ClientCapabilities,
    DocumentLinkParams,
    DocumentOnTypeFormattingParams,
    DocumentRangeFormattingParams,
    FormattingOptions,
    InitializeParams,
    MessageType,
    Position,
    Range,
    TextDocumentIdentifier,
    TextDocumentItem,
    TextDocumentSyncKind,
)
from pygls.workspace import Workspace

from xtm.config import Settings
from xtm.errors import ReplError
from xtm.lsp import (
    ExtemporeLanguageServer,
    _arguments,
    configure,
    connect,
    disconnect,
    document_links,
    evaluate_at,
    format_on_type,
    format_range,
    run_connect,
    run_eval,
)

URI = "file:///test.xtm"
OPTIONS = FormattingOptions(tab_size=2, insert_spaces=True)


@pytest.fixture
def lsp_env():
    """Create a server with an initialized workspace and captured messages."""
    ls = ExtemporeLanguageServer("test", "v0", text_document_sync_kind=TextDocumentSyncKind.Full)
    ws = Workspace(None)
    ls.protocol._workspace = ws

    shown = []
    ls.window_show_message = lambda params: shown.append(params)

    def put(source: str, uri: str = URI) -> None:
        ws.put_text_document(
            TextDocumentItem(uri=uri, language_id="extempore", version=0, text=source)
        )

    return ls, shown, put


class FakeRepl:
    """Stands in for ReplClient; records what would be sent."""

    def __init__(self, fail: bool = False, reply: str = "ok") -> None:
        self.connected = True
        self.sent: list[str] = []
        self.fail = fail
        self.reply = reply

    def send(self, code: str) -> None:
        if self.fail:
            raise ReplError("send failed: broken pipe", "localhost", 7099)
        self.sent.append(code)

    def read_reply(self) -> str:
        return self.reply

    def close(self) -> None:
        self.connected = False


def _on_type(line: int, character: int = 0) -> DocumentOnTypeFormattingParams:
    return DocumentOnTypeFormattingParams(
        text_document=TextDocumentIdentifier(uri=URI),
        position=Position(line=line, character=character),
        ch="\n",
        options=OPTIONS,
    )


def _range(start: int, end: int, end_character: int = 0) -> DocumentRangeFormattingParams:
    return DocumentRangeFormattingParams(
        text_document=TextDocumentIdentifier(uri=URI),
        range=Range(
            start=Position(line=start, character=0),
            end=Position(line=end, character=end_character),
        ),
        options=OPTIONS,
    )


# ---------------------------------------------------------------------------
# On-type formatting
# ---------------------------------------------------------------------------


class TestOnTypeFormatting:
    def test_new_line_aligned_with_argument(self, lsp_env) -> None:
        ls, _, put = lsp_env
        put("(foo bar\n")
        (edit,) = format_on_type(ls, _on_type(1))
        assert edit.new_text == " " * 5
        assert edit.range.start == Position(line=1, character=0)
        assert edit.range.end == Position(line=1, character=0)

    def test_replaces_existing_whitespace(self, lsp_env) -> None:
        ls, _, put = lsp_env
        put("(foo\n        bar)")
        (edit,) = format_on_type(ls, _on_type(1, 8))
        assert edit.new_text == " "
        assert edit.range.end == Position(line=1, character=8)

    def test_no_edit_when_already_indented(self, lsp_env) -> None:
        ls, _, put = lsp_env
        put("(foo\n bar)")
        assert format_on_type(ls, _on_type(1, 1)) == []

    def test_body_indent_setting(self, lsp_env) -> None:
        ls, _, put = lsp_env
        ls.settings = Settings(body_indent=2)
        put("(foo\n")
        (edit,) = format_on_type(ls, _on_type(1))
        assert edit.new_text == "  "

    def test_lookback_window(self, lsp_env) -> None:
        ls, _, put = lsp_env
        ls.settings = Settings(lookback_lines=1)
        put("(foo\n(bar\n")
        (edit,) = format_on_type(ls, _on_type(2))
        # only "(bar" is visible
        assert edit.new_text == " "

    def test_string_continuation_left_alone(self, lsp_env) -> None:
        ls, _, put = lsp_env
        put('(print "abc\n   def")')
        assert format_on_type(ls, _on_type(1, 3)) == []


# ---------------------------------------------------------------------------
# Range formatting
# ---------------------------------------------------------------------------


class TestRangeFormatting:
    def test_reindents_whole_lines(self, lsp_env) -> None:
        ls, _, put = lsp_env
        put("(define (f x)\n(g x)\n(h x))\n(k)\n")
        (edit,) = format_range(ls, _range(1, 3))
        assert edit.range.start == Position(line=1, character=0)
        assert edit.range.end == Position(line=2, character=6)
        assert edit.new_text == "        (g x)\n        (h x))"

    def test_partial_last_line_included(self, lsp_env) -> None:
        ls, _, put = lsp_env
        put("(foo\nbar\nbaz)")
        (edit,) = format_range(ls, _range(1, 2, 2))
        assert edit.new_text == " bar\n baz)"

    def test_no_edit_when_unchanged(self, lsp_env) -> None:
        ls, _, put = lsp_env
        put("(foo\n bar)\n")
        assert format_range(ls, _range(0, 1, 5)) == []

    def test_range_past_end(self, lsp_env) -> None:
        ls, _, put = lsp_env
        put("(a)\n")
        assert format_range(ls, _range(5, 6)) == []


# ---------------------------------------------------------------------------
# Document links
# ---------------------------------------------------------------------------


class TestDocumentLinks:
    def test_sys_load_link(self, lsp_env, sample, tmp_path: Path) -> None:
        ls, _, put = lsp_env
        ls.settings = Settings(sharedir=tmp_path)
        put(sample)
        (link,) = document_links(ls, DocumentLinkParams(text_document=TextDocumentIdentifier(uri=URI)))
        assert link.target == (tmp_path / "libs/core/instruments.xtm").as_uri()
        assert link.range.start == Position(line=1, character=11)
        assert link.range.end == Position(line=1, character=36)

    def test_no_sharedir(self, lsp_env, sample) -> None:
        ls, _, put = lsp_env
        put(sample)
        assert document_links(ls, DocumentLinkParams(text_document=TextDocumentIdentifier(uri=URI))) == []


# ---------------------------------------------------------------------------
# Evaluation
# ---------------------------------------------------------------------------


class TestEvaluate:
    def test_not_connected(self, lsp_env) -> None:
        ls, shown, put = lsp_env
        put("(a)")
        assert evaluate_at(ls, URI, 0, 1) is None
        assert shown[0].type == MessageType.Error
        assert "not connected" in shown[0].message

    def test_sends_top_level_form(self, lsp_env) -> None:
        ls, _, put = lsp_env
        ls.repl = FakeRepl()
        put("(a)\n(b (c d))")
        result = evaluate_at(ls, URI, 1, 5)
        assert ls.repl.sent == ["(b (c d))"]
        assert result == Range(start=Position(line=1, character=0), end=Position(line=1, character=9))

    def test_cursor_after_closing_paren(self, lsp_env) -> None:
        ls, _, put = lsp_env
        ls.repl = FakeRepl()
        put("(a)\n(b)")
        evaluate_at(ls, URI, 0, 3)
        assert ls.repl.sent == ["(a)"]

    def test_nothing_to_evaluate(self, lsp_env) -> None:
        ls, shown, put = lsp_env
        ls.repl = FakeRepl()
        put("; just a comment")
        assert evaluate_at(ls, URI, 0, 4) is None
        assert ls.repl.sent == []
        assert shown[0].type == MessageType.Info

    def test_send_failure_drops_connection(self, lsp_env) -> None:
        ls, shown, put = lsp_env
        ls.repl = FakeRepl(fail=True)
        put("(a)")
        assert evaluate_at(ls, URI, 0, 1) is None
        assert ls.repl is None
        assert shown[0].type == MessageType.Error

    def test_reply_is_shown(self, lsp_env) -> None:
        ls, shown, put = lsp_env
        ls.repl = FakeRepl(reply="(a . 1)")
        put("(define a 1)")
        evaluate_at(ls, URI, 0, 1)
        assert shown[-1].type == MessageType.Info
        assert shown[-1].message == "Extempore: (a . 1)"

    def test_selection_sent_as_is(self, lsp_env) -> None:
        ls, _, put = lsp_env
        ls.repl = FakeRepl()
        put("(a b c)")
        result = evaluate_at(ls, URI, 0, 3, 0, 6)
        assert ls.repl.sent == ["b c"]
        assert result == Range(start=Position(line=0, character=3), end=Position(line=0, character=6))

    def test_backwards_selection(self, lsp_env) -> None:
        ls, _, put = lsp_env
        ls.repl = FakeRepl()
        put("(a)\n(b)")
        evaluate_at(ls, URI, 1, 3, 0, 0)
        assert ls.repl.sent == ["(a)\n(b)"]

    def test_empty_selection_uses_cursor(self, lsp_env) -> None:
        ls, _, put = lsp_env
        ls.repl = FakeRepl()
        put("(a b c)")
        evaluate_at(ls, URI, 0, 3, 0, 3)
        assert ls.repl.sent == ["(a b c)"]


class TestEvaluateWithExtempore:
    def test_reply_from_process(self, lsp_env, repl_server) -> None:
        ls, shown, put = lsp_env
        port, received = repl_server(b"(b . 1)\r\n")
        assert connect(ls, "127.0.0.1", port)
        put("(define b\n  1)")
        evaluate_at(ls, URI, 1, 3)
        disconnect(ls)
        assert received == [b"(define b\n  1)\r\n"]
        assert "Extempore: (b . 1)" in [params.message for params in shown]

    def test_no_reply_keeps_connection(self, lsp_env, repl_server) -> None:
        ls, shown, put = lsp_env
        ls.settings = Settings(timeout=0.2)
        port, _ = repl_server(b"")
        assert connect(ls, "127.0.0.1", port)
        put("(a)")
        assert evaluate_at(ls, URI, 0, 1) is not None
        assert ls.repl is not None
        assert shown[-1].type == MessageType.Warning
        assert "no reply" in shown[-1].message
        disconnect(ls)

    def test_process_gone_drops_connection(self, lsp_env, repl_server) -> None:
        ls, shown, put = lsp_env
        port, _ = repl_server(close_immediately=True)
        assert connect(ls, "127.0.0.1", port)
        put("(a)")
        evaluate_at(ls, URI, 0, 1)
        assert ls.repl is None
        assert shown[-1].type == MessageType.Error


# ---------------------------------------------------------------------------
# Command arguments
# ---------------------------------------------------------------------------


class TestCommands:
    def test_arguments_unpacked_or_listed(self) -> None:
        assert _arguments(([URI, 1, 2],)) == [URI, 1, 2]
        assert _arguments((URI, 1, 2)) == [URI, 1, 2]

    def test_eval_with_selection(self, lsp_env) -> None:
        ls, _, put = lsp_env
        ls.repl = FakeRepl()
        put("(a b c)")
        run_eval(ls, [URI, 0, 3, 0, 6])
        assert ls.repl.sent == ["b c"]

    def test_eval_numeric_strings(self, lsp_env) -> None:
        ls, _, put = lsp_env
        ls.repl = FakeRepl()
        put("(a)")
        run_eval(ls, [URI, "0", "1"])
        assert ls.repl.sent == ["(a)"]

    def test_eval_too_few_arguments(self, lsp_env) -> None:
        ls, shown, _ = lsp_env
        assert run_eval(ls, [URI]) is None
        assert shown[0].type == MessageType.Error
        assert "expects" in shown[0].message

    def test_eval_non_numeric_position(self, lsp_env) -> None:
        ls, shown, _ = lsp_env
        assert run_eval(ls, [URI, "x", 1]) is None
        assert shown[0].type == MessageType.Error

    def test_connect_invalid_port(self, lsp_env) -> None:
        ls, shown, _ = lsp_env
        assert run_connect(ls, ["localhost", "seventy"]) is False
        assert ls.repl is None
        assert "invalid port" in shown[0].message

    def test_connect_invalid_hostname(self, lsp_env) -> None:
        ls, shown, _ = lsp_env
        assert run_connect(ls, [7099]) is False
        assert "invalid hostname" in shown[0].message

    def test_connect_defaults_from_settings(self, lsp_env, repl_server) -> None:
        ls, _, _ = lsp_env
        port, _ = repl_server(b"")
        ls.settings = Settings(hostname="127.0.0.1", port=port)
        assert run_connect(ls, []) is True
        disconnect(ls)


# ---------------------------------------------------------------------------
# Connection
# ---------------------------------------------------------------------------


class TestConnection:
    def test_connect_failure_reported(self, lsp_env, free_port) -> None:
        ls, shown, _ = lsp_env
        ls.settings = Settings(hostname="127.0.0.1", port=free_port, timeout=1.0)
        assert connect(ls) is False
        assert ls.repl is None
        assert "socket connection error" in shown[0].message

    def test_connect_and_disconnect(self, lsp_env, repl_server) -> None:
        ls, shown, _ = lsp_env
        port, _ = repl_server(b"")
        assert connect(ls, "127.0.0.1", port) is True
        assert ls.repl is not None and ls.repl.connected
        assert f"port {port}" in shown[0].message
        disconnect(ls)
        assert ls.repl is None


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestConfigure:
    def test_workspace_config_and_options(self, lsp_env, tmp_path: Path, monkeypatch) -> None:
        monkeypatch.delenv("EXTEMPORE_PATH", raising=False)
        (tmp_path / "xtm.toml").write_text(
            "[connection]\nport = 7098\n[format]\nlookback_lines = 10\n"
        )
        ls, _, _ = lsp_env
        params = InitializeParams(
            process_id=None,
            capabilities=ClientCapabilities(),
            root_uri=tmp_path.as_uri(),
            initialization_options={"format": {"body_indent": 2}},
        )
        configure(ls, params)
        assert ls.settings.port == 7098
        assert ls.settings.lookback_lines == 10
        assert ls.settings.body_indent == 2
        assert ls.settings.sharedir == tmp_path

    def test_no_workspace(self, lsp_env, monkeypatch) -> None:
        monkeypatch.delenv("EXTEMPORE_PATH", raising=False)
        ls, _, _ = lsp_env
        configure(ls, InitializeParams(process_id=None, capabilities=ClientCapabilities()))
        assert ls.settings == Settings()
