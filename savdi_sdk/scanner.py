"""Upload-gating scanner built on :class:`SAVDIClient`.

Turns scan results into a three-way verdict and applies the configured
daemon-error policy, reporting problems to an administrator notifier.
"""

from __future__ import annotations

import enum
import logging
import os
import stat
from pathlib import Path
from typing import Callable, Optional, Union

from savdi_sdk.client import SAVDIClient
from savdi_sdk.config import OnDaemonError, SAVDISettings
from savdi_sdk.exceptions import SAVDIError
from savdi_sdk.models import ScanResult, ScanResultCode

logger = logging.getLogger(__name__)

Notifier = Callable[[str], None]


class ScanVerdict(str, enum.Enum):
    """Verdict handed back to the host application."""

    OK = "ok"
    FOUND = "found"
    ERROR = "error"

    @property
    def blocks(self) -> bool:
        """Whether the scanned content should be refused."""
        return self is ScanVerdict.FOUND


def _log_notifier(message: str) -> None:
    logger.error("SAVDI: %s", message)


class SAVDIScanner:
    """Policy layer between a host application and the SAVDI daemon.

    Args:
        settings: Connection and policy settings. Defaults to
            :meth:`SAVDISettings.from_env`.
        client_factory: Builds an unconnected :class:`SAVDIClient`. Override
            to inject a custom transport.
        notifier: Called with a message whenever the daemon could not give a
            verdict. Defaults to logging at ERROR level.
    """

    def __init__(
        self,
        settings: SAVDISettings | None = None,
        client_factory: Optional[Callable[[], SAVDIClient]] = None,
        notifier: Notifier | None = None,
    ) -> None:
        self.settings = settings or SAVDISettings.from_env()
        self._client_factory = client_factory or self._default_client
        self._notify = notifier or _log_notifier
        self._client: SAVDIClient | None = None

    def is_configured(self) -> bool:
        return self.settings.is_configured()

    @property
    def error_verdict(self) -> ScanVerdict:
        """Verdict returned when the daemon fails to give an answer."""
        if self.settings.on_daemon_error is OnDaemonError.ACT_LIKE_VIRUS:
            return ScanVerdict.FOUND
        return ScanVerdict.ERROR

    def get_client(self) -> SAVDIClient:
        """Return a connected client, connecting on first use.

        Raises:
            SAVDIConnectionError: If the daemon cannot be reached.
            SAVDIProtocolError: If the daemon refuses the handshake.
        """
        if self._client is None or not self._client.connected:
            client = self._client_factory()
            client.connect(self.settings.conn_type, self.settings.address, retries=self.settings.connect_retries)
            self._client = client
        return self._client

    def scan_file(self, path: Union[str, Path]) -> ScanVerdict:
        """Scan a file on disk.

        Local daemons are asked to read the file themselves; a remote daemon
        cannot see the local filesystem, so the contents are streamed instead.
        """
        try:
            client = self.get_client()
        except SAVDIError as exc:
            self._notify(str(exc))
            return self.error_verdict

        if self.settings.scanner_is_remote:
            try:
                with open(path, "rb") as fh:
                    result = client.scan_data_stream(fh)
            except OSError as exc:
                self._notify(f"Could not read {path} for scanning: {exc}")
                return self.error_verdict
        else:
            result = self._scan_local_file(client, path)
        return self._verdict(result)

    def scan_data(self, data: Union[bytes, str]) -> ScanVerdict:
        """Scan an in-memory buffer."""
        try:
            client = self.get_client()
        except SAVDIError as exc:
            self._notify(str(exc))
            return self.error_verdict
        return self._verdict(client.scan_data(data))

    def close(self) -> None:
        if self._client is not None:
            self._client.disconnect()
            self._client = None

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _default_client(self) -> SAVDIClient:
        return SAVDIClient(
            connect_timeout=self.settings.connect_timeout,
            debug_protocol=self.settings.debug_protocol,
        )

    def _scan_local_file(self, client: SAVDIClient, path: Union[str, Path]) -> ScanResult:
        # The daemon runs as its own user and must be able to read the file.
        orig_mode: int | None = None
        if self.settings.chmod_scan_file:
            try:
                orig_mode = stat.S_IMODE(os.stat(path).st_mode)
                os.chmod(path, 0o644)
            except OSError as exc:
                logger.warning("Could not make %s readable for scanning: %s", path, exc)
                orig_mode = None
        try:
            return client.scan_file(os.path.abspath(path))
        finally:
            if orig_mode is not None:
                try:
                    os.chmod(path, orig_mode)
                except OSError as exc:
                    logger.warning("Could not restore permissions on %s: %s", path, exc)

    def _verdict(self, result: ScanResult) -> ScanVerdict:
        if result.code == ScanResultCode.VIRUS:
            return ScanVerdict.FOUND
        if result.is_error:
            if result.savi_code is not None:
                self._notify(f"SAVDI scanner said: {result.savi_code} {result.message}")
            else:
                self._notify(f"SAVDI scan failed: {result.message}")
            return self.error_verdict
        return ScanVerdict.OK
