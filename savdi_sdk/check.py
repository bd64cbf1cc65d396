"""Connectivity self-test for a configured SAVDI scanner."""

from __future__ import annotations

import enum
import logging
import os
import tempfile
from dataclasses import dataclass

from savdi_sdk.client import SAVDIClient
from savdi_sdk.config import OnDaemonError
from savdi_sdk.exceptions import SAVDIError
from savdi_sdk.models import ScanResult, ScanResultCode
from savdi_sdk.scanner import SAVDIScanner

logger = logging.getLogger(__name__)

TEST_DATA_SIZE = 1024
_TEST_PATTERN = b"savdi_sdk "


class CheckStatus(str, enum.Enum):
    NA = "na"
    OK = "ok"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class CheckResult:
    """Outcome of :func:`check_connectivity`.

    Attributes:
        status: Severity of the outcome.
        summary: Human-readable explanation.
    """

    status: CheckStatus
    summary: str


class _CheckFailed(Exception):
    pass


def check_connectivity(scanner: SAVDIScanner) -> CheckResult:
    """Verify that the scanner can reach the daemon and scan clean content.

    Connects, scans 1 KiB of harmless data with ``SCANDATA`` and then, if a
    temporary file can be written, the same data with ``SCANFILE``. How
    severely a failure is reported depends on the daemon-error policy: a
    fail-open policy downgrades failures to warnings.
    """
    if not scanner.is_configured():
        return CheckResult(CheckStatus.NA, "The SAVDI connection is not configured.")

    if scanner.settings.on_daemon_error is OnDaemonError.DO_NOTHING:
        error_status = CheckStatus.WARNING
    else:
        error_status = CheckStatus.ERROR

    try:
        client = scanner.get_client()
    except SAVDIError as exc:
        return CheckResult(error_status, str(exc))

    testdata = (_TEST_PATTERN * (TEST_DATA_SIZE // len(_TEST_PATTERN) + 1))[:TEST_DATA_SIZE]

    try:
        scandata_code = _classify(client.scan_data(testdata), "SCANDATA")
        scanfile_code = _scan_temp_file(client, testdata, scanner.settings.temp_dir)
    except _CheckFailed as exc:
        return CheckResult(error_status, str(exc))

    if scandata_code == ScanResultCode.ERROR_NOTSUPPORTED and scanfile_code == ScanResultCode.ERROR_NOTSUPPORTED:
        return CheckResult(error_status, "The SAVDI daemon supports neither SCANDATA nor SCANFILE.")
    if scanfile_code is None:
        return CheckResult(
            CheckStatus.INFO,
            "SCANDATA works, but SCANFILE was not tested because a temporary file could not be written.",
        )
    return CheckResult(CheckStatus.OK, "The SAVDI daemon is reachable and scanning correctly.")


def _scan_temp_file(client: SAVDIClient, testdata: bytes, temp_dir: str | None) -> ScanResultCode | None:
    try:
        fd, path = tempfile.mkstemp(prefix="savdi_sdk", dir=temp_dir)
    except OSError as exc:
        logger.debug("Temporary test file could not be created: %s", exc)
        return None
    try:
        with os.fdopen(fd, "wb") as fh:
            fh.write(testdata)
    except OSError as exc:
        logger.debug("Temporary test file %s could not be written: %s", path, exc)
        os.unlink(path)
        return None

    try:
        return _classify(client.scan_file(path), "SCANFILE")
    finally:
        os.unlink(path)


def _classify(result: ScanResult, method: str) -> ScanResultCode:
    if result.code in (ScanResultCode.OK, ScanResultCode.ERROR_NOTSUPPORTED):
        return result.code
    if result.code == ScanResultCode.VIRUS:
        raise _CheckFailed(f"The SAVDI daemon reported clean {method} test data as infected.")
    detail = f"{result.savi_code} {result.message}" if result.savi_code else result.message
    raise _CheckFailed(f"{method} test failed: {detail}")
