"""SAVDI SDK: Python client for the Sophos SAVDI daemon's SSSP protocol."""

from savdi_sdk.check import CheckResult, CheckStatus, check_connectivity
from savdi_sdk.client import SAVDIClient
from savdi_sdk.config import OnDaemonError, SAVDISettings
from savdi_sdk.exceptions import SAVDIConnectionError, SAVDIError, SAVDIProtocolError
from savdi_sdk.models import (
    SAVI_ERROR_VIRUSPRESENT,
    SAVI_OK,
    ScannerCapabilities,
    ScanResult,
    ScanResultCode,
    is_error_result,
)
from savdi_sdk.scanner import SAVDIScanner, ScanVerdict
from savdi_sdk.transport import SocketTransport, Transport

__all__ = [
    "SAVDIClient",
    "SAVDIScanner",
    "SAVDISettings",
    "OnDaemonError",
    "ScanVerdict",
    "check_connectivity",
    "CheckResult",
    "CheckStatus",
    "Transport",
    "SocketTransport",
    "ScriptedTransport",
    "ScanResult",
    "ScanResultCode",
    "ScannerCapabilities",
    "is_error_result",
    "SAVI_OK",
    "SAVI_ERROR_VIRUSPRESENT",
    "SAVDIError",
    "SAVDIConnectionError",
    "SAVDIProtocolError",
]


def __getattr__(name: str) -> object:
    """Lazy-import the scripted test transport so production imports stay lean."""
    if name == "ScriptedTransport":
        from savdi_sdk.testing import ScriptedTransport

        return ScriptedTransport
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
