"""Data models for SAVDI SDK results."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field

SSSP_VERSION = "SSSP/1.0"

SAVI_OK = "0000"
SAVI_ERROR_VIRUSPRESENT = "0203"

REJECT_REASONS = {
    1: "not recognised",
    2: "bad version",
    3: "error in OPTIONS",
    4: "too much data",
    5: "not permitted",
}


class ScanResultCode(enum.IntEnum):
    """Outcome of a single scan request.

    Codes at or above :attr:`ERROR` are errors.
    """

    OK = 0
    VIRUS = 1
    ERROR = 2
    ERROR_NOTSUPPORTED = 3
    ERROR_TOOLARGE = 4


def is_error_result(code: int) -> bool:
    """Return ``True`` if *code* is one of the error outcomes."""
    return code >= ScanResultCode.ERROR


@dataclass(frozen=True, slots=True)
class ScanResult:
    """Result of a file, directory or data scan.

    Attributes:
        code: Scan outcome.
        viruses: Mapping of scanned filename to virus name, in the order the
            daemon reported them. Data scans report an empty filename.
        savi_code: Four-digit daemon result code from the ``DONE`` line, or
            *None* when the outcome was decided locally.
        message: Daemon result message, reject reason, or local error text.
    """

    code: ScanResultCode
    viruses: dict[str, str] = field(default_factory=dict)
    savi_code: str | None = None
    message: str = ""

    @property
    def is_error(self) -> bool:
        return is_error_result(self.code)

    @property
    def is_clean(self) -> bool:
        return self.code == ScanResultCode.OK

    @property
    def is_infected(self) -> bool:
        return self.code == ScanResultCode.VIRUS


@dataclass(frozen=True, slots=True)
class ScannerCapabilities:
    """Features advertised by the daemon in reply to ``QUERY SERVER``.

    Attributes:
        version: Daemon version string.
        scan_file: ``SCANFILE`` is available.
        scan_dir: ``SCANDIR`` is available.
        scan_dir_recursive: ``SCANDIRR`` is available.
        scan_data: ``SCANDATA`` is available.
        max_scan_data: Largest ``SCANDATA`` payload in bytes; ``0`` is unlimited.
    """

    version: str = ""
    scan_file: bool = False
    scan_dir: bool = False
    scan_dir_recursive: bool = False
    scan_data: bool = False
    max_scan_data: int = 0
