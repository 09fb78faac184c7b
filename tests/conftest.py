"""Shared test fixtures and helpers."""

from __future__ import annotations

import socket
import threading

import pytest

from xtm.scanner import Scanner
from xtm.syntax import Cell, CharClass

SAMPLE = """\
;; audio setup
(sys:load "libs/core/instruments.xtm")

(define-instrument synth synth_note_c synth_fx)

(define loop
  (lambda (beat dur)
    (play synth (random '(60 62 64)) 80 dur)
    (callback (*metro* (+ beat (* .5 dur))) 'loop (+ beat dur) dur)))

(loop (*metro* 'get-beat 4) 1/4)
"""


@pytest.fixture
def sample() -> str:
    """A small but realistic Extempore buffer."""
    return SAMPLE


@pytest.fixture
def at():
    """Return a helper that splits ``"(foo |bar)"`` into text and caret offset."""

    def _at(marked: str) -> tuple[str, int]:
        offset = marked.index("|")
        return marked[:offset] + marked[offset + 1 :], offset

    return _at


@pytest.fixture
def cells():
    """Return a helper that scans source and returns every cell."""

    def _cells(source: str) -> list[Cell]:
        return list(Scanner(source))

    return _cells


@pytest.fixture
def balance():
    """Return a helper counting code ``(`` minus code ``)`` in text."""

    def _balance(text: str) -> int:
        total = 0
        for cell in Scanner(text):
            if cell.kind is CharClass.CODE and cell.char == "(":
                total += 1
            elif cell.kind is CharClass.CODE and cell.char == ")":
                total -= 1
        return total

    return _balance


@pytest.fixture
def repl_server():
    """Start a one-connection loopback server standing in for Extempore.

    The returned helper takes the bytes to answer each complete message
    with and returns ``(port, received)``; ``received`` collects every
    message the server read.
    """
    servers: list[tuple[socket.socket, threading.Thread]] = []

    def _start(reply: bytes = b"", close_immediately: bool = False) -> tuple[int, list[bytes]]:
        srv = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        srv.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        srv.bind(("127.0.0.1", 0))
        srv.listen(1)
        received: list[bytes] = []

        def serve() -> None:
            conn, _ = srv.accept()
            with conn:
                if close_immediately:
                    return
                buf = b""
                while True:
                    data = conn.recv(4096)
                    if not data:
                        break
                    buf += data
                    while b"\r\n" in buf:
                        message, buf = buf.split(b"\r\n", 1)
                        received.append(message + b"\r\n")
                        conn.sendall(reply)

        thread = threading.Thread(target=serve, daemon=True)
        thread.start()
        servers.append((srv, thread))
        return srv.getsockname()[1], received

    yield _start

    for srv, thread in servers:
        srv.close()
        thread.join(timeout=2)


@pytest.fixture
def free_port() -> int:
    """A loopback port nothing is listening on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
