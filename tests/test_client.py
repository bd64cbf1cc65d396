"""Tests for the SSSP client (SAVDIClient) driven by recorded conversations."""

from __future__ import annotations

import io

import pytest

from savdi_sdk.client import SAVDIClient
from savdi_sdk.exceptions import SAVDIConnectionError, SAVDIProtocolError
from savdi_sdk.models import (
    SAVI_ERROR_VIRUSPRESENT,
    SAVI_OK,
    ScannerCapabilities,
    ScanResultCode,
)

# ------------------------------------------------------------------ #
# connect / disconnect
# ------------------------------------------------------------------ #


class TestConnect:
    def test_connect_disconnect(self, script):
        transport = script("connect-disconnect.txt")
        client = SAVDIClient(transport)
        caps = client.connect("unix", "/var/run/savdi.sock")
        assert client.connected is True
        assert caps == ScannerCapabilities()
        client.disconnect()
        assert client.connected is False
        assert client.capabilities is None
        transport.assert_consumed()

    def test_disconnect_twice_sends_one_bye(self, script):
        transport = script("connect-disconnect.txt")
        client = SAVDIClient(transport)
        client.connect("unix", "/var/run/savdi.sock")
        client.disconnect()
        client.disconnect()
        assert transport.sent.count("BYE") == 1

    def test_disconnect_without_connect(self, script):
        transport = script("connect-disconnect.txt")
        client = SAVDIClient(transport)
        client.disconnect()
        assert transport.sent == []

    def test_capabilities(self, connected):
        client, transport = connected("capabilities.txt")
        assert client.capabilities == ScannerCapabilities(
            version="SAVDI/2.6.0",
            scan_file=True,
            scan_dir=True,
            scan_dir_recursive=True,
            scan_data=True,
            max_scan_data=0,
        )
        client.disconnect()
        transport.assert_consumed()

    def test_context_manager_disconnects(self, script):
        transport = script("connect-disconnect.txt")
        with SAVDIClient(transport) as client:
            client.connect("tcp", "localhost:4010")
        assert transport.sent[-1] == "BYE"
        assert transport.is_open is False

    def test_bad_greeting(self, script):
        client = SAVDIClient(script("bad-greeting.txt"))
        with pytest.raises(SAVDIProtocolError, match="bad greeting"):
            client.connect("unix", "/var/run/savdi.sock")
        assert client.connected is False

    def test_bad_version_handshake(self, script):
        client = SAVDIClient(script("bad-version.txt"))
        with pytest.raises(SAVDIProtocolError, match="bad version handshake"):
            client.connect("unix", "/var/run/savdi.sock")

    def test_capability_query_rejected(self, script):
        client = SAVDIClient(script("query-rejected.txt"))
        with pytest.raises(SAVDIProtocolError, match="not permitted") as exc_info:
            client.connect("unix", "/var/run/savdi.sock")
        assert exc_info.value.reject_code == 5
        assert client.capabilities is None


class TestConnectRetries:
    def test_retries_sufficient(self, script):
        transport = script("connect-disconnect.txt", open_failures=1)
        client = SAVDIClient(transport)
        client.connect("unix", "/var/run/savdi.sock", retries=1)
        assert client.connected is True
        assert transport.open_calls == 2

    def test_retries_exceeded(self, script):
        transport = script("connect-disconnect.txt", open_failures=2)
        client = SAVDIClient(transport)
        with pytest.raises(SAVDIConnectionError, match="Network is down"):
            client.connect("unix", "/var/run/savdi.sock", retries=1)
        assert transport.open_calls == 2
        assert client.connected is False

    def test_no_retries_by_default(self, script):
        transport = script("connect-disconnect.txt", open_failures=1)
        client = SAVDIClient(transport)
        with pytest.raises(SAVDIConnectionError) as exc_info:
            client.connect("unix", "/var/run/savdi.sock")
        assert exc_info.value.errno is not None
        assert transport.open_calls == 1

    def test_protocol_error_is_retried(self, script):
        transport = script("bad-greeting.txt")
        client = SAVDIClient(transport)
        with pytest.raises(SAVDIProtocolError):
            client.connect("unix", "/var/run/savdi.sock", retries=2)
        assert transport.open_calls == 3


# ------------------------------------------------------------------ #
# scan_data
# ------------------------------------------------------------------ #


class TestScanData:
    def test_without_support(self, connected):
        client, transport = connected("scandata-without-support.txt")
        result = client.scan_data("data")
        assert result.code == ScanResultCode.ERROR_NOTSUPPORTED
        assert result.savi_code is None
        assert not any(line.startswith("SCAN") for line in transport.sent)
        transport.assert_consumed()

    def test_too_large(self, connected):
        client, transport = connected("scandata-too-large.txt")
        result = client.scan_data("data")
        assert result.code == ScanResultCode.ERROR_TOOLARGE
        assert transport.sent_bytes == []
        transport.assert_consumed()

    def test_clean(self, connected):
        client, transport = connected("scandata-clean.txt")
        result = client.scan_data("data")
        assert result.code == ScanResultCode.OK
        assert result.viruses == {}
        assert result.savi_code == SAVI_OK
        assert result.message == "The function call succeeded"
        transport.assert_consumed()

    def test_infected(self, connected):
        client, transport = connected("scandata-infected.txt")
        result = client.scan_data(b"data")
        assert result.code == ScanResultCode.VIRUS
        assert result.viruses == {"": "EICAR-AV-Test"}
        assert result.savi_code == SAVI_ERROR_VIRUSPRESENT
        transport.assert_consumed()

    def test_timeout(self, connected):
        client, transport = connected("scandata-timeout.txt")
        result = client.scan_data("data")
        assert result.code == ScanResultCode.ERROR
        assert result.savi_code == "0212"
        assert result.message == "Scan timed out"

    def test_rejected(self, connected):
        client, transport = connected("scandata-rejected.txt")
        result = client.scan_data("data")
        assert result.code == ScanResultCode.ERROR
        assert result.message == "too much data"
        assert result.savi_code is None
        transport.assert_consumed()


class TestScanDataStream:
    def test_clean_known_length(self, connected):
        client, transport = connected("scandata-clean.txt")
        stream = io.BytesIO(b"data")
        result = client.scan_data_stream(stream, 4)
        assert result.code == ScanResultCode.OK
        assert stream.tell() == 4

    def test_length_measured_from_position(self, connected):
        client, transport = connected("scandata-infected.txt")
        stream = io.BytesIO(b"headerdata")
        stream.seek(6)
        result = client.scan_data_stream(stream)
        assert result.code == ScanResultCode.VIRUS
        assert transport.sent[-1] == "SCANDATA 4"

    def test_too_large(self, connected):
        client, transport = connected("scandata-too-large.txt")
        result = client.scan_data_stream(io.BytesIO(b"data"))
        assert result.code == ScanResultCode.ERROR_TOOLARGE

    def test_without_support(self, connected):
        client, transport = connected("scandata-without-support.txt")
        result = client.scan_data_stream(io.BytesIO(b"data"))
        assert result.code == ScanResultCode.ERROR_NOTSUPPORTED


# ------------------------------------------------------------------ #
# scan_file / scan_dir
# ------------------------------------------------------------------ #


class TestScanFile:
    def test_without_support(self, connected):
        client, transport = connected("scanfile-without-support.txt")
        result = client.scan_file("/path")
        assert result.code == ScanResultCode.ERROR_NOTSUPPORTED
        transport.assert_consumed()

    def test_clean(self, connected):
        client, transport = connected("scanfile-clean.txt")
        result = client.scan_file("/path")
        assert result.code == ScanResultCode.OK
        assert result.viruses == {}
        assert result.savi_code == SAVI_OK
        assert result.message == "Virus Free"
        transport.assert_consumed()

    def test_infected(self, connected):
        client, transport = connected("scanfile-infected.txt")
        result = client.scan_file("/path")
        assert result.code == ScanResultCode.VIRUS
        assert result.viruses == {"/path": "EICAR-AV-Test"}
        assert result.savi_code == SAVI_ERROR_VIRUSPRESENT

    def test_timeout(self, connected):
        client, transport = connected("scanfile-timeout.txt")
        result = client.scan_file("/path")
        assert result.code == ScanResultCode.ERROR
        assert result.savi_code == "0212"
        assert result.is_error is True

    def test_last_result_tracks_latest_scan(self, connected):
        client, transport = connected("scanfile-clean.txt")
        assert client.last_result is None
        result = client.scan_file("/path")
        assert client.last_result is result


class TestScanDir:
    def test_recursive_infected(self, connected):
        client, transport = connected("scandirr-infected.txt")
        result = client.scan_dir("/srv/uploads", recursive=True)
        assert result.code == ScanResultCode.VIRUS
        assert result.viruses == {
            "/srv/uploads/a.com": "EICAR-AV-Test",
            "/srv/uploads/sub dir/b.exe": "Troj/Agent-X",
        }
        assert list(result.viruses) == ["/srv/uploads/a.com", "/srv/uploads/sub dir/b.exe"]
        transport.assert_consumed()

    def test_non_recursive_without_support(self, connected):
        client, transport = connected("scanfile-clean.txt")
        result = client.scan_dir("/srv/uploads")
        assert result.code == ScanResultCode.ERROR_NOTSUPPORTED
        assert "SCANDIR" in result.message

    def test_recursive_without_support(self, connected):
        client, transport = connected("scanfile-clean.txt")
        result = client.scan_dir("/srv/uploads", recursive=True)
        assert result.code == ScanResultCode.ERROR_NOTSUPPORTED
        assert "SCANDIRR" in result.message
