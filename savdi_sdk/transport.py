"""Byte-stream transports for talking SSSP to a SAVDI daemon.

The :class:`Transport` interface only moves lines and
raw bytes and knows nothing about the protocol. :class:`SAVDIClient` builds
the SSSP conversation on top of it, and a scripted implementation in
:mod:`savdi_sdk.testing` replays recorded conversations in tests.
"""

from __future__ import annotations

import abc
import logging
import socket
import time
from typing import BinaryIO

from savdi_sdk.exceptions import SAVDIConnectionError

logger = logging.getLogger(__name__)

CONN_TCP = "tcp"
CONN_UNIX = "unix"

DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_WRITE_TIMEOUT = 60.0
_CHUNK_SIZE = 65536
_STALL_PAUSE = 0.01


class Transport(abc.ABC):
    """Duplex line and byte channel to a SAVDI daemon."""

    @abc.abstractmethod
    def open(self, conn_type: str, address: str) -> None:
        """Open the channel.

        Args:
            conn_type: ``"tcp"`` or ``"unix"``.
            address: ``host:port`` for TCP, a socket path for UNIX.

        Raises:
            SAVDIConnectionError: If the channel cannot be opened.
        """

    @abc.abstractmethod
    def read_line(self) -> str | None:
        """Read one line without its CR/LF terminator.

        Returns:
            The line (possibly ``""``), or *None* on end of stream or error.
        """

    @abc.abstractmethod
    def write_line(self, text: str) -> None:
        """Send *text* followed by CRLF."""

    @abc.abstractmethod
    def write_bytes(self, data: bytes) -> int:
        """Send raw bytes, returning how many were actually sent."""

    @abc.abstractmethod
    def write_stream(self, stream: BinaryIO, length: int) -> int:
        """Send up to *length* bytes read from *stream*, returning the count sent."""

    @abc.abstractmethod
    def close(self) -> None:
        """Close the channel. Safe to call more than once."""

    @property
    @abc.abstractmethod
    def is_open(self) -> bool:
        """Whether the channel is currently open."""


def parse_tcp_address(address: str) -> tuple[str, int]:
    """Split ``host:port`` (or ``[v6addr]:port``) into a socket address."""
    host, sep, port = address.strip().rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ValueError(f"invalid TCP address {address!r}, expected host:port")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]
    return host, int(port)


class SocketTransport(Transport):
    """Transport over a TCP or UNIX domain stream socket.

    Args:
        connect_timeout: Seconds allowed for establishing the connection.
        write_timeout: Seconds a bulk transfer may go without progress before
            it is abandoned. Defaults to the interpreter's default socket
            timeout, or 60 seconds when none is set.
        read_timeout: Optional deadline for each line read. *None* blocks until
            data or end of stream arrives.
    """

    def __init__(
        self,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        write_timeout: float | None = None,
        read_timeout: float | None = None,
    ) -> None:
        if write_timeout is None:
            write_timeout = socket.getdefaulttimeout() or DEFAULT_WRITE_TIMEOUT
        self._connect_timeout = connect_timeout
        self._write_timeout = write_timeout
        self._read_timeout = read_timeout
        self._sock: socket.socket | None = None
        self._reader: BinaryIO | None = None

    @property
    def is_open(self) -> bool:
        return self._sock is not None

    def open(self, conn_type: str, address: str) -> None:
        self.close()
        try:
            if conn_type == CONN_TCP:
                sock = socket.create_connection(parse_tcp_address(address), timeout=self._connect_timeout)
            elif conn_type == CONN_UNIX:
                sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
                try:
                    sock.settimeout(self._connect_timeout)
                    sock.connect(address)
                except OSError:
                    sock.close()
                    raise
            else:
                raise SAVDIConnectionError(f"unsupported connection type {conn_type!r}")
        except ValueError as exc:
            raise SAVDIConnectionError(str(exc)) from exc
        except OSError as exc:
            reason = exc.strerror or str(exc)
            raise SAVDIConnectionError(
                f"Connecting to {conn_type} socket {address} failed: {reason} ({exc.errno})",
                errno=exc.errno,
            ) from exc

        sock.settimeout(self._read_timeout)
        self._sock = sock
        self._reader = sock.makefile("rb")

    def read_line(self) -> str | None:
        if self._reader is None:
            return None
        try:
            raw = self._reader.readline()
        except OSError as exc:
            logger.debug("Read from SAVDI socket failed: %s", exc)
            return None
        if not raw:
            return None
        return raw.decode("utf-8", "replace").rstrip("\r\n")

    def write_line(self, text: str) -> None:
        if self._sock is None:
            raise OSError("transport is not open")
        self._sock.sendall(f"{text}\r\n".encode("utf-8"))

    def write_bytes(self, data: bytes) -> int:
        if self._sock is None:
            return 0
        view = memoryview(data)
        sent = 0
        stalled_since: float | None = None
        self._sock.settimeout(self._write_timeout)
        try:
            while sent < len(view):
                try:
                    n = self._sock.send(view[sent : sent + _CHUNK_SIZE])
                except socket.timeout:
                    logger.debug("Write to SAVDI socket timed out after %d of %d bytes", sent, len(view))
                    break
                except BlockingIOError:
                    n = 0
                except OSError as exc:
                    logger.debug("Write to SAVDI socket failed after %d bytes: %s", sent, exc)
                    break
                if n > 0:
                    sent += n
                    stalled_since = None
                    continue
                now = time.monotonic()
                if stalled_since is None:
                    stalled_since = now
                elif now - stalled_since > self._write_timeout:
                    logger.debug("Write to SAVDI socket stalled after %d of %d bytes", sent, len(view))
                    break
                time.sleep(_STALL_PAUSE)
        finally:
            if self._sock is not None:
                self._sock.settimeout(self._read_timeout)
        return sent

    def write_stream(self, stream: BinaryIO, length: int) -> int:
        sent = 0
        while sent < length:
            chunk = stream.read(min(_CHUNK_SIZE, length - sent))
            if not chunk:
                break
            written = self.write_bytes(chunk)
            sent += written
            if written < len(chunk):
                break
        return sent

    def close(self) -> None:
        if self._reader is not None:
            try:
                self._reader.close()
            except OSError:
                pass
            self._reader = None
        if self._sock is not None:
            try:
                self._sock.close()
            except OSError:
                pass
            self._sock = None
