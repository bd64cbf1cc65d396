"""Synchronous SSSP client for the Sophos SAVDI daemon."""

from __future__ import annotations

import logging
import os
import time
from typing import BinaryIO, Callable, Optional, Union

from savdi_sdk import protocol
from savdi_sdk.exceptions import SAVDIConnectionError, SAVDIProtocolError
from savdi_sdk.models import (
    SAVI_ERROR_VIRUSPRESENT,
    SAVI_OK,
    SSSP_VERSION,
    ScannerCapabilities,
    ScanResult,
    ScanResultCode,
)
from savdi_sdk.protocol import PathLike
from savdi_sdk.transport import DEFAULT_CONNECT_TIMEOUT, SocketTransport, Transport

logger = logging.getLogger(__name__)

GREETING = f"OK {SSSP_VERSION}"


class SAVDIClient:
    """Synchronous client for the SAVDI daemon's SSSP interface.

    One client holds one connection. Calls block until the daemon has
    answered; a client must not be used from several threads at once.

    Args:
        transport: Channel to the daemon. Defaults to a :class:`SocketTransport`.
        connect_timeout: Connection timeout used for the default transport.
        retry_delay: Seconds to wait between :meth:`connect` attempts.
        debug_protocol: Log every line exchanged with the daemon at DEBUG level.

    Example::

        with SAVDIClient() as client:
            client.connect("unix", "/var/run/savdi.sock")
            result = client.scan_file("/tmp/upload.bin")
            print(result.code.name, result.viruses)
    """

    def __init__(
        self,
        transport: Transport | None = None,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        retry_delay: float = 0.0,
        debug_protocol: bool = False,
    ) -> None:
        self._transport = transport or SocketTransport(connect_timeout=connect_timeout)
        self._retry_delay = retry_delay
        self.debug_protocol = debug_protocol
        self._connected = False
        self._capabilities: ScannerCapabilities | None = None
        self._last_result: ScanResult | None = None

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def capabilities(self) -> ScannerCapabilities | None:
        """Capabilities negotiated at connect time, or *None* when disconnected."""
        return self._capabilities

    @property
    def last_result(self) -> ScanResult | None:
        """The result of the most recent scan call on this client."""
        return self._last_result

    # ------------------------------------------------------------------
    # Connection lifecycle
    # ------------------------------------------------------------------

    def connect(self, conn_type: str, address: str, retries: int = 0) -> ScannerCapabilities:
        """Connect, handshake and query the daemon's capabilities.

        Args:
            conn_type: ``"tcp"`` or ``"unix"``.
            address: ``host:port`` or UNIX socket path.
            retries: Extra attempts to make after a failed one.

        Returns:
            The :class:`ScannerCapabilities` the daemon advertised.

        Raises:
            SAVDIConnectionError: If the socket cannot be opened.
            SAVDIProtocolError: If the handshake or capability query fails.
        """
        self.disconnect()

        attempt = 0
        while True:
            try:
                self._open_session(conn_type, address)
                self._connected = True
                return self._capabilities  # type: ignore[return-value]
            except (SAVDIConnectionError, SAVDIProtocolError) as exc:
                self._drop()
                if attempt >= retries:
                    raise
                attempt += 1
                logger.warning("SAVDI connect attempt %d failed, retrying: %s", attempt, exc)
                if self._retry_delay:
                    time.sleep(self._retry_delay)

    def disconnect(self) -> None:
        """Sign off with ``BYE`` and close the connection. Safe to repeat."""
        if not self._connected:
            return
        try:
            self._send("BYE")
            reply = self._recv()
            if reply != "BYE":
                logger.warning("SAVDI protocol warning: did not receive expected signoff")
        except OSError as exc:
            logger.warning("SAVDI protocol warning: signoff failed: %s", exc)
        finally:
            self._drop()

    close = disconnect

    def __enter__(self) -> SAVDIClient:
        return self

    def __exit__(self, *args: object) -> None:
        self.disconnect()

    # ------------------------------------------------------------------
    # Scanning
    # ------------------------------------------------------------------

    def scan_file(self, path: PathLike) -> ScanResult:
        """Ask the daemon to scan a file on its own filesystem.

        Args:
            path: Path of the file as seen by the daemon.

        Returns:
            A :class:`ScanResult`; ``ERROR_NOTSUPPORTED`` if the daemon does
            not offer ``SCANFILE``.
        """
        caps = self._capabilities
        if caps is not None and not caps.scan_file:
            return self._finish(_not_supported("SCANFILE"))
        return self._scan(protocol.scan_path_request(path))

    def scan_dir(self, path: PathLike, recursive: bool = False) -> ScanResult:
        """Ask the daemon to scan a directory, optionally descending into subdirectories.

        Returns:
            A :class:`ScanResult` holding every infected file found.
        """
        caps = self._capabilities
        if recursive and caps is not None and not caps.scan_dir_recursive:
            return self._finish(_not_supported("SCANDIRR"))
        if not recursive and caps is not None and not caps.scan_dir:
            return self._finish(_not_supported("SCANDIR"))
        return self._scan(protocol.scan_path_request(path, directory=True, recursive=recursive))

    def scan_data(self, data: Union[bytes, str]) -> ScanResult:
        """Send an in-memory buffer to the daemon with ``SCANDATA``.

        Args:
            data: Raw bytes; text is encoded as UTF-8.

        Returns:
            A :class:`ScanResult`. ``ERROR_NOTSUPPORTED`` or ``ERROR_TOOLARGE``
            are decided locally without contacting the daemon.
        """
        if isinstance(data, str):
            data = data.encode("utf-8")
        refused = self._check_data_scan(len(data))
        if refused is not None:
            return self._finish(refused)
        payload = data
        return self._scan(
            protocol.scan_data_request(len(payload)),
            lambda: self._transport.write_bytes(payload),
            len(payload),
        )

    def scan_data_stream(self, stream: BinaryIO, length: int | None = None) -> ScanResult:
        """Send bytes read from a binary stream with ``SCANDATA``.

        Args:
            stream: Readable binary stream, positioned at the data to scan.
            length: Number of bytes to send. When omitted the stream must be
                seekable and everything up to its end is sent.

        Returns:
            A :class:`ScanResult`, as for :meth:`scan_data`.
        """
        if length is None:
            pos = stream.tell()
            stream.seek(0, os.SEEK_END)
            length = stream.tell() - pos
            stream.seek(pos)
        refused = self._check_data_scan(length)
        if refused is not None:
            return self._finish(refused)
        size = length
        return self._scan(
            protocol.scan_data_request(size),
            lambda: self._transport.write_stream(stream, size),
            size,
        )

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _open_session(self, conn_type: str, address: str) -> None:
        self._transport.open(conn_type, address)
        try:
            if self._recv() != GREETING:
                raise SAVDIProtocolError("bad greeting")
            self._send(SSSP_VERSION)
            reply = self._recv()
            if reply is None or not reply.startswith("ACC "):
                raise SAVDIProtocolError("bad version handshake")
            self._capabilities = self._query_capabilities()
        except OSError as exc:
            raise SAVDIConnectionError(f"Connection to SAVDI daemon lost: {exc}", errno=exc.errno) from exc

    def _query_capabilities(self) -> ScannerCapabilities:
        caps = ScannerCapabilities()
        self._send("QUERY SERVER")
        while True:
            line = self._recv()
            if line is None:
                raise SAVDIProtocolError("connection closed during capability query")
            if line == "":
                return caps
            resp = protocol.parse_response_line(line)
            if resp.verb == "REJ":
                code = protocol.parse_reject_code(resp.argument)
                raise SAVDIProtocolError(
                    f"capability query rejected: {protocol.reject_reason(code)}", reject_code=code
                )
            parsed = protocol.parse_capability_line(line)
            if parsed is None:
                if self.debug_protocol:
                    logger.debug("SAVDI protocol: ignoring capability line %r", line)
                continue
            caps = protocol.apply_capability(caps, *parsed)

    def _check_data_scan(self, length: int) -> ScanResult | None:
        caps = self._capabilities
        if caps is None:
            return None
        if not caps.scan_data:
            return _not_supported("SCANDATA")
        if caps.max_scan_data and length > caps.max_scan_data:
            return ScanResult(
                code=ScanResultCode.ERROR_TOOLARGE,
                message=f"data size {length} exceeds scanner limit of {caps.max_scan_data} bytes",
            )
        return None

    def _scan(
        self,
        request: str,
        send_payload: Optional[Callable[[], int]] = None,
        size: int = 0,
    ) -> ScanResult:
        if not self._connected:
            return self._finish(ScanResult(code=ScanResultCode.ERROR, message="not connected"))

        try:
            self._send(request)
            if send_payload is not None:
                sent = send_payload()
                if sent != size:
                    logger.warning("SAVDI data transfer sent %d of %d bytes", sent, size)
                    self._drop()
                    return self._finish(
                        ScanResult(code=ScanResultCode.ERROR, message="data sent was shorter than expected")
                    )
        except OSError as exc:
            self._drop()
            return self._finish(ScanResult(code=ScanResultCode.ERROR, message=f"failed to send request: {exc}"))

        return self._finish(self._read_scan_response())

    def _read_scan_response(self) -> ScanResult:
        code = ScanResultCode.ERROR
        viruses: dict[str, str] = {}
        savi_code: str | None = None
        message = ""
        expect_blank = False
        closed = False

        while True:
            line = self._recv()
            if line is None:
                closed = True
                break
            if line == "":
                if expect_blank:
                    break
                continue

            resp = protocol.parse_response_line(line)
            if resp.verb in protocol.ADVISORY_VERBS:
                continue
            if resp.verb == "REJ":
                message = protocol.reject_reason(protocol.parse_reject_code(resp.argument))
                logger.warning("SAVDI rejected the request: %s", message)
                break
            if resp.verb == "VIRUS":
                virus, filename = protocol.parse_virus(resp.argument)
                viruses[filename] = virus
                logger.info("SAVDI found virus %s in %r", virus, filename)
            elif resp.verb == "DONE":
                done = protocol.parse_done(resp.argument)
                if done.ok:
                    if done.code == SAVI_OK:
                        code = ScanResultCode.OK
                    elif done.code == SAVI_ERROR_VIRUSPRESENT:
                        code = ScanResultCode.VIRUS
                    else:
                        logger.warning("SAVDI scanner said: OK - %s (%s)", done.message, done.code)
                else:
                    logger.warning("SAVDI scanner said: FAIL - %s (%s)", done.message, done.code)
                savi_code = done.code
                message = done.message
                expect_blank = True
            elif self.debug_protocol:
                logger.debug("SAVDI protocol: wasn't expecting %r", line)

        if closed:
            # The stream is gone; a later connect() must start a new session.
            logger.warning("SAVDI daemon closed the connection during a scan")
            self._drop()
            if savi_code is None:
                message = "connection closed by SAVDI daemon"

        return ScanResult(code=code, viruses=viruses, savi_code=savi_code, message=message)

    def _finish(self, result: ScanResult) -> ScanResult:
        self._last_result = result
        return result

    def _recv(self) -> str | None:
        line = self._transport.read_line()
        if self.debug_protocol:
            logger.debug("SAVDI > %s", "(EOF)" if line is None else line)
        return line

    def _send(self, line: str) -> None:
        if self.debug_protocol:
            logger.debug("SAVDI < %s", line)
        self._transport.write_line(line)

    def _drop(self) -> None:
        self._transport.close()
        self._connected = False
        self._capabilities = None


def _not_supported(method: str) -> ScanResult:
    return ScanResult(
        code=ScanResultCode.ERROR_NOTSUPPORTED,
        message=f"scanner does not support {method}",
    )
