"""Connection and policy settings for the SAVDI scanner integration."""

from __future__ import annotations

import enum
import os
from dataclasses import dataclass
from typing import Optional

from savdi_sdk.transport import CONN_TCP, CONN_UNIX, DEFAULT_CONNECT_TIMEOUT

DEFAULT_TCP_ADDRESS = "localhost:4010"
DEFAULT_UNIX_PATH = "/var/run/savdi.sock"


class OnDaemonError(str, enum.Enum):
    """What to assume about a file when the daemon cannot give a verdict."""

    DO_NOTHING = "donothing"
    ACT_LIKE_VIRUS = "actlikevirus"


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class SAVDISettings:
    conn_type: str = CONN_UNIX
    conn_tcp: str = DEFAULT_TCP_ADDRESS
    conn_unix: str = DEFAULT_UNIX_PATH
    scanner_is_remote: bool = False
    chmod_scan_file: bool = True
    on_daemon_error: OnDaemonError = OnDaemonError.DO_NOTHING
    connect_retries: int = 0
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    debug_protocol: bool = False
    temp_dir: Optional[str] = None

    @property
    def address(self) -> str:
        """The address for the selected connection type, or ``""``."""
        if self.conn_type == CONN_TCP:
            return self.conn_tcp
        if self.conn_type == CONN_UNIX:
            return self.conn_unix
        return ""

    def is_configured(self) -> bool:
        return self.conn_type in (CONN_TCP, CONN_UNIX) and bool(self.address.strip())

    @staticmethod
    def from_env() -> SAVDISettings:
        conn_type = os.getenv("SAVDI_CONN_TYPE", CONN_UNIX).strip().lower()
        conn_tcp = os.getenv("SAVDI_CONN_TCP", DEFAULT_TCP_ADDRESS).strip()
        conn_unix = os.getenv("SAVDI_CONN_UNIX", DEFAULT_UNIX_PATH).strip()

        on_error_raw = os.getenv("SAVDI_ON_DAEMON_ERROR", OnDaemonError.DO_NOTHING.value).strip().lower()
        try:
            on_daemon_error = OnDaemonError(on_error_raw)
        except ValueError:
            raise ValueError(
                f"SAVDI_ON_DAEMON_ERROR must be one of "
                f"{', '.join(e.value for e in OnDaemonError)}, got {on_error_raw!r}"
            ) from None

        return SAVDISettings(
            conn_type=conn_type,
            conn_tcp=conn_tcp,
            conn_unix=conn_unix,
            scanner_is_remote=_env_bool("SAVDI_SCANNER_IS_REMOTE", False),
            chmod_scan_file=_env_bool("SAVDI_CHMOD_SCAN_FILE", True),
            on_daemon_error=on_daemon_error,
            connect_retries=int(os.getenv("SAVDI_CONNECT_RETRIES", "0")),
            connect_timeout=float(os.getenv("SAVDI_CONNECT_TIMEOUT", str(DEFAULT_CONNECT_TIMEOUT))),
            debug_protocol=_env_bool("SAVDI_DEBUG_PROTOCOL", False),
            temp_dir=os.getenv("SAVDI_TEMP_DIR") or None,
        )
