"""Shared test fixtures."""

from __future__ import annotations

from pathlib import Path
from typing import Callable

import pytest

from savdi_sdk.client import SAVDIClient
from savdi_sdk.testing import ScriptedTransport

FIXTURES = Path(__file__).resolve().parent / "fixtures"


@pytest.fixture()
def script() -> Callable[..., ScriptedTransport]:
    """Factory loading a conversation script from ``tests/fixtures``."""

    def load(name: str, **kwargs: object) -> ScriptedTransport:
        return ScriptedTransport.from_file(FIXTURES / name, **kwargs)

    return load


@pytest.fixture()
def connected(script) -> Callable[..., tuple[SAVDIClient, ScriptedTransport]]:
    """Factory returning a client already connected through a fixture script."""

    def connect(name: str, **kwargs: object) -> tuple[SAVDIClient, ScriptedTransport]:
        transport = script(name, **kwargs)
        client = SAVDIClient(transport)
        client.connect("unix", "/var/run/savdi.sock")
        return client, transport

    return connect


@pytest.fixture()
def sample_bytes() -> bytes:
    return b"Hello, SAVDI!"


@pytest.fixture()
def eicar_bytes() -> bytes:
    """EICAR anti-malware test string (safe; every AV recognises it)."""
    return b"X5O!P%@AP[4\\PZX54(P^)7CC)7}$EICAR-STANDARD-ANTIVIRUS-TEST-FILE!$H+H*"
