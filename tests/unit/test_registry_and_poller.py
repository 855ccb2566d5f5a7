"""
Unit tests for the device registry and single-device polls.
"""
import asyncio

import pytest

from oltpoller.core.exceptions import ConnectionFailedError, PollTimeoutError
from oltpoller.polling.poller import poll_device
from oltpoller.polling.registry import DeviceRegistry
from oltpoller.polling.transports import TransportFactory
from tests.conftest import make_device, make_onu


class TestRegistry:

    def test_replace_all_reports_diff(self):
        registry = DeviceRegistry([make_device(1), make_device(2)])

        diff = registry.replace_all([make_device(2, name="renamed"), make_device(3)])

        assert diff.added == {3}
        assert diff.removed == {1}
        assert diff.changed == {2}
        assert len(registry) == 2
        assert 1 not in registry
        assert registry.get(2).name == "renamed"

    def test_identical_replace_is_empty(self):
        registry = DeviceRegistry([make_device(1)])

        assert registry.replace_all([make_device(1)]).is_empty

    def test_readers_keep_their_snapshot(self):
        registry = DeviceRegistry([make_device(1), make_device(2)])
        before = registry.all()

        registry.replace_all([])

        assert [d.id for d in before] == [1, 2]
        assert registry.all() == []
        assert registry.get(1) is None

    def test_passwords_are_not_in_repr(self):
        assert "secret" not in repr(make_device(1, password="secret"))


class TestPollDevice:

    async def test_success(self, transports, fake_transport):
        fake_transport.readings[1] = [make_onu(onu_index=1), make_onu(onu_index=2, status="offline")]

        sample = await poll_device(make_device(1), transports)

        assert sample.success
        assert sample.error is None
        assert sample.duration_ms >= 0
        metrics = sample.metrics()
        assert metrics.onu_count == 2
        assert metrics.online_count == 1
        assert metrics.offline_count == 1

    @pytest.mark.parametrize("error", [
        ConnectionFailedError("Authentication failed"),
        PollTimeoutError("SSH connection timeout after 60s"),
    ])
    async def test_transport_errors_become_failed_samples(self, transports, fake_transport, error):
        fake_transport.errors[1] = error

        sample = await poll_device(make_device(1), transports)

        assert not sample.success
        assert sample.error == str(error)
        assert sample.onus == []

    async def test_unexpected_errors_become_failed_samples(self, transports, fake_transport):
        fake_transport.errors[1] = KeyError("boom")

        sample = await poll_device(make_device(1), transports)

        assert not sample.success
        assert sample.error.startswith("KeyError")

    async def test_unsupported_protocol_is_a_failed_sample(self):
        sample = await poll_device(make_device(1, protocol="telnet"), TransportFactory([]))

        assert not sample.success
        assert "telnet" in sample.error

    async def test_cancellation_propagates(self, transports, fake_transport):
        fake_transport.gate = asyncio.Event()
        task = asyncio.create_task(poll_device(make_device(1), transports))
        await asyncio.sleep(0)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task


class TestSampleMetrics:

    async def test_power_statistics_ignore_missing_values(self, transports, fake_transport):
        fake_transport.readings[1] = [
            make_onu(onu_index=1, rx_power=-20.0),
            make_onu(onu_index=2, rx_power=-24.0),
            make_onu(onu_index=3, rx_power=None),
        ]

        metrics = (await poll_device(make_device(1), transports)).metrics()

        assert metrics.avg_rx_power == -22.0
        assert metrics.min_rx_power == -24.0

    async def test_no_power_readings(self, transports):
        metrics = (await poll_device(make_device(1), transports)).metrics()

        assert metrics.onu_count == 0
        assert metrics.avg_rx_power is None
        assert metrics.min_rx_power is None
