"""
Unit tests for transport helpers: SNMP value decoding and CLI command sets.
"""
import asyncio

import asyncssh
import pytest

from oltpoller.core.exceptions import ConnectionFailedError, PollTimeoutError, UnsupportedProtocolError
from oltpoller.polling.transports import TransportFactory, default_factory
from oltpoller.polling.transports.commands import get_commands
from oltpoller.polling.transports.snmp import (
    GENERIC_OIDS,
    VENDOR_OIDS,
    build_readings,
    parse_online_status,
    parse_signal_value,
    resolve_oids,
    split_index,
)
from oltpoller.polling.transports.ssh import SshCliTransport
from tests.conftest import make_device


class TestSnmpValues:

    @pytest.mark.parametrize("raw,expected", [
        ("-2150", -21.5),
        ("INTEGER: -1834", -18.34),
        ("230", 2.3),
        ("-25", -0.25),
        ("", None),
        ("no value", None),
        ("-900000", None),
    ])
    def test_parse_signal_value(self, raw, expected):
        assert parse_signal_value(raw) == expected

    @pytest.mark.parametrize("raw,expected", [
        ("1", True),
        ("2", False),
        ("3", False),
        ("online", True),
        ("offline", False),
    ])
    def test_parse_online_status(self, raw, expected):
        assert parse_online_status(raw) is expected

    def test_split_index_uses_last_two_components(self):
        base = "1.3.6.1.4.1.2011.6.128.1.1.2.46.1.15"
        assert split_index(f"{base}.4194320384.7", base) == ("4194320384", 7)
        assert split_index(f".{base}.1.2.3", base) == ("2", 3)

    def test_split_index_rejects_other_subtrees(self):
        assert split_index("1.3.6.1.2.1.1.1.0", "1.3.6.1.4.1.2011") is None
        assert split_index("1.3.6.1.4.1.2011.5", "1.3.6.1.4.1.2011") is None

    def test_resolve_oids_by_brand(self):
        assert resolve_oids("huawei") == VENDOR_OIDS["HUAWEI"]
        assert resolve_oids("ZTE") == VENDOR_OIDS["ZTE"]
        assert resolve_oids("CDATA") == GENERIC_OIDS

    def test_build_readings_joins_status_and_power(self):
        readings = build_readings(
            "ZTE",
            status_rows={("268501248", 1): "1", ("268501248", 2): "2"},
            rx_rows={("268501248", 1): "-2210", ("268501248", 9): "-1900"},
        )
        onus = {r.key: r for r in readings}

        assert onus["268501248:1"].status == "online"
        assert onus["268501248:1"].rx_power == -22.1
        assert onus["268501248:2"].status == "offline"
        assert onus["268501248:2"].rx_power is None
        assert onus["268501248:9"].status == "online"
        assert onus["268501248:1"].serial_number == "ZTE-268501248:1"


class TestBrandCommands:

    def test_zte_commands(self):
        assert get_commands("ZTE") == [
            "terminal length 0",
            "show gpon onu state",
            "show gpon onu detail-info",
            "show gpon onu optical-info",
        ]

    def test_huawei_commands(self):
        assert get_commands("Huawei") == [
            "screen-length 0 temporary",
            "display ont info summary all",
            "display ont optical-info all",
        ]

    def test_fiberhome_commands(self):
        assert get_commands("Fiberhome") == ["show gpon onu state", "show gpon onu list"]

    def test_bdcom_commands(self):
        assert get_commands("BDCOM") == [
            "terminal length 0",
            "show epon onu-info",
            "show epon active onu",
            "show epon optical-transceiver-diagnosis interface",
        ]

    @pytest.mark.parametrize("brand", ["VSOL", "CDATA", "DBC", "ECOM"])
    def test_telnet_brands_disable_paging_first(self, brand):
        commands = get_commands(brand)
        assert commands[0] == "terminal length 0"
        assert len(commands) > 1

    def test_other_brands_use_default(self):
        assert get_commands("Nokia") == ["show onu status"]
        assert get_commands(None) == ["show onu status"]


class TestTransportFactory:

    def test_resolves_by_protocol(self):
        factory = default_factory()

        assert factory.protocols == ["snmp", "ssh", "telnet"]
        assert factory.for_device(make_device(protocol="SNMP")).protocol == "snmp"
        assert factory.for_device(make_device()).protocol == "ssh"
        assert factory.for_device(make_device(protocol="Telnet")).protocol == "telnet"

    def test_unknown_protocol(self):
        factory = TransportFactory([])

        with pytest.raises(UnsupportedProtocolError):
            factory.for_device(make_device(protocol="telnet"))


class TestSshConnectionCheck:

    async def test_rejected_credentials(self, monkeypatch):
        transport = SshCliTransport()

        async def deny(device):
            raise asyncssh.PermissionDenied("bad password")

        monkeypatch.setattr(transport, "connect", deny)

        with pytest.raises(ConnectionFailedError, match="Authentication failed"):
            await transport.check_reachable(make_device(), 1.0)

    async def test_slow_handshake(self, monkeypatch):
        transport = SshCliTransport()

        async def hang(device):
            await asyncio.sleep(10)

        monkeypatch.setattr(transport, "connect", hang)

        with pytest.raises(PollTimeoutError):
            await transport.check_reachable(make_device(), 0.05)
