"""TCP client for a running Extempore process (CRLF-terminated messages)."""

from __future__ import annotations

import logging
import re
import socket
from types import TracebackType

from xtm.errors import ReplError

logger = logging.getLogger(__name__)

DEFAULT_HOSTNAME = "localhost"
DEFAULT_PORT = 7099
TERMINATOR = b"\r\n"

_LINE_BREAK_RE = re.compile(r"\r\n|\n|\r")


def frame_message(code: str) -> bytes:
    """Encode code as one Extempore message: LF line breaks, CRLF terminator."""
    return _LINE_BREAK_RE.sub("\n", code).encode("utf-8") + TERMINATOR


class ReplClient:
    """A connection to the Extempore compiler/REPL server."""

    def __init__(
        self,
        hostname: str = DEFAULT_HOSTNAME,
        port: int = DEFAULT_PORT,
        timeout: float = 5.0,
    ) -> None:
        self.hostname = hostname
        self.port = port
        self.timeout = timeout
        self._sock: socket.socket | None = None
        self._buffer = b""

    @property
    def connected(self) -> bool:
        return self._sock is not None

    def connect(self) -> None:
        if self._sock is not None:
            return
        try:
            sock = socket.create_connection((self.hostname, self.port), timeout=self.timeout)
        except OSError as exc:
            raise ReplError(f"cannot connect: {exc}", self.hostname, self.port) from exc
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        self._sock = sock
        logger.info("connected to Extempore at %s:%d", self.hostname, self.port)

    def close(self) -> None:
        if self._sock is None:
            return
        self._sock.close()
        self._sock = None
        self._buffer = b""
        logger.info("connection to %s:%d closed", self.hostname, self.port)

    def send(self, code: str) -> None:
        sock = self._require()
        payload = frame_message(code)
        logger.debug("sending %d bytes", len(payload))
        try:
            sock.sendall(payload)
        except OSError as exc:
            self.close()
            raise ReplError(f"send failed: {exc}", self.hostname, self.port) from exc

    def read_reply(self) -> str:
        """Block until one complete reply has arrived and return it."""
        sock = self._require()
        while TERMINATOR not in self._buffer:
            try:
                data = sock.recv(4096)
            except TimeoutError:
                raise ReplError(
                    f"no reply within {self.timeout}s", self.hostname, self.port
                ) from None
            except OSError as exc:
                self.close()
                raise ReplError(f"receive failed: {exc}", self.hostname, self.port) from exc
            if not data:
                self.close()
                raise ReplError("connection closed by Extempore", self.hostname, self.port)
            self._buffer += data
        reply, _, self._buffer = self._buffer.partition(TERMINATOR)
        return reply.decode("utf-8", errors="replace")

    def evaluate(self, code: str) -> str:
        """Send code and wait for its reply."""
        self.send(code)
        return self.read_reply()

    def _require(self) -> socket.socket:
        if self._sock is None:
            raise ReplError("not connected", self.hostname, self.port)
        return self._sock

    def __enter__(self) -> ReplClient:
        self.connect()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()
