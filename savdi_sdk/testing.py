"""Scripted transport that replays recorded SSSP conversations.

A conversation script records the expected exchange between client and
daemon, one message per line, each prefixed by its direction::

    <...   daemon-to-client line; a trailing " ~" keeps the space before the ~
    >...   client-to-daemon line the client must send
    &nnn   client-to-daemon payload of exactly nnn bytes

Any divergence from the script raises :class:`ScriptMismatchError`, which is
an assertion failure rather than a protocol error so the client under test
never mistakes it for daemon misbehaviour.
"""

from __future__ import annotations

import errno
from collections import deque
from pathlib import Path
from typing import BinaryIO, Iterable, Union

from savdi_sdk.exceptions import SAVDIConnectionError
from savdi_sdk.transport import Transport


class ScriptMismatchError(AssertionError):
    """Raised when the client's traffic departs from the conversation script."""


class ScriptedTransport(Transport):
    """Transport that plays back a conversation script instead of a socket.

    Args:
        script: Script text, or an iterable of script lines.
        open_failures: Number of :meth:`open` calls that fail with a
            simulated ``ENETDOWN`` before one succeeds.
        eof_at_end: Report end of stream once the script runs out instead of
            raising :class:`ScriptMismatchError`.

    Example::

        transport = ScriptedTransport.from_file("tests/fixtures/scanfile-clean.txt")
        client = SAVDIClient(transport)
        client.connect("unix", "/unused")
    """

    def __init__(
        self,
        script: Union[str, Iterable[str]],
        open_failures: int = 0,
        eof_at_end: bool = False,
    ) -> None:
        lines = script.splitlines() if isinstance(script, str) else list(script)
        self._script = [line.rstrip("\r\n") for line in lines if line.strip() != ""]
        self._pending: deque[str] = deque()
        self.open_failures = open_failures
        self.eof_at_end = eof_at_end
        self.open_calls = 0
        self.sent: list[str] = []
        self.sent_bytes: list[int] = []
        self._open = False

    @classmethod
    def from_file(cls, path: Union[str, Path], **kwargs: object) -> ScriptedTransport:
        """Load a conversation script from *path*."""
        text = Path(path).read_text(encoding="utf-8")
        return cls(text, **kwargs)  # type: ignore[arg-type]

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def remaining(self) -> list[str]:
        """Script lines not yet consumed."""
        return list(self._pending)

    def assert_consumed(self) -> None:
        if self._pending:
            raise ScriptMismatchError(f"script not fully consumed, next line: {self._pending[0]!r}")

    def open(self, conn_type: str, address: str) -> None:
        self.open_calls += 1
        if self.open_failures > 0:
            self.open_failures -= 1
            raise SAVDIConnectionError(
                f"Connecting to {conn_type} socket {address} failed: Network is down ({errno.ENETDOWN})",
                errno=errno.ENETDOWN,
            )
        self._pending = deque(self._script)
        self._open = True

    def read_line(self) -> str | None:
        if not self._open:
            return None
        if not self._pending and self.eof_at_end:
            return None
        line = self._next("<", "input")
        if line.endswith(" ~"):
            line = line[:-1]
        return line

    def write_line(self, text: str) -> None:
        if not self._open:
            raise OSError("transport is not open")
        expected = self._next(">", "output")
        self.sent.append(text)
        if text != expected:
            raise ScriptMismatchError(f"message does not match the script: expected {expected!r}, got {text!r}")

    def write_bytes(self, data: bytes) -> int:
        if not self._open:
            return 0
        self._expect_count(len(data))
        return len(data)

    def write_stream(self, stream: BinaryIO, length: int) -> int:
        if not self._open:
            return 0
        self._expect_count(length)
        return len(stream.read(length))

    def close(self) -> None:
        self._open = False

    def _expect_count(self, count: int) -> None:
        line = self._next("&", "a byte count")
        try:
            expected = int(line)
        except ValueError:
            raise ScriptMismatchError(f"malformed byte count in script: {line!r}") from None
        self.sent_bytes.append(count)
        if count != expected:
            raise ScriptMismatchError(f"byte count does not match the script: expected {expected}, got {count}")

    def _next(self, prefix: str, what: str) -> str:
        if not self._pending:
            raise ScriptMismatchError(f"unexpected end of script, expected {what}")
        line = self._pending.popleft()
        if not line.startswith(prefix):
            raise ScriptMismatchError(f"expected {what} from script, got: {line!r}")
        return line[len(prefix) :]
