"""Exception hierarchy for the SAVDI SDK."""

from __future__ import annotations


class SAVDIError(Exception):
    """Base exception for all SAVDI SDK errors."""


class SAVDIConnectionError(SAVDIError):
    """Raised when the SDK cannot open a connection to the SAVDI daemon.

    Attributes:
        errno: The OS error number reported by the socket layer, if any.
    """

    def __init__(self, message: str, errno: int | None = None) -> None:
        super().__init__(message)
        self.errno = errno


class SAVDIProtocolError(SAVDIError):
    """Raised when the daemon violates the SSSP handshake or query grammar.

    Also raised when the daemon answers the capability query with ``REJ``.

    Attributes:
        reject_code: The numeric code from a ``REJ`` line, or *None*.
    """

    def __init__(self, message: str, reject_code: int | None = None) -> None:
        super().__init__(message)
        self.reject_code = reject_code
