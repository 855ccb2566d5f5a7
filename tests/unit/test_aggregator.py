"""
Unit tests for the state aggregator: device and ONU transitions.
"""
import pytest

from oltpoller.schemas import DeviceStatus, EventType, Severity
from oltpoller.services.aggregator import StateAggregator
from tests.conftest import make_device, make_onu, make_sample


@pytest.fixture
def aggregator() -> StateAggregator:
    return StateAggregator(offline_after_failures=1, low_rx_power_dbm=-28.0)


@pytest.fixture
def device():
    return make_device(7, name="Core-OLT", host="192.0.2.7")


def types(events):
    return [e.type for e in events]


class TestDeviceTransitions:

    def test_first_success_brings_device_online(self, aggregator, device):
        events = aggregator.apply(device, make_sample(7, [make_onu()]))

        assert types(events) == [EventType.DEVICE_ONLINE, EventType.ONU_DISCOVERED]
        state = aggregator.snapshot(7)
        assert state.status == DeviceStatus.ONLINE
        assert state.last_seen == state.last_polled
        assert state.metrics.onu_count == 1

    def test_repeated_success_emits_nothing(self, aggregator, device):
        aggregator.apply(device, make_sample(7, [make_onu()]))
        assert aggregator.apply(device, make_sample(7, [make_onu()])) == []

    def test_failure_takes_device_offline_with_critical_event(self, aggregator, device):
        aggregator.apply(device, make_sample(7, [make_onu()]))

        events = aggregator.apply(device, make_sample(7, error="SSH connection timeout"))

        assert len(events) == 1
        event = events[0]
        assert event.type == EventType.DEVICE_OFFLINE
        assert event.severity == Severity.CRITICAL
        assert event.title == "OLT Unreachable: Core-OLT"
        assert event.message == "Failed to connect to OLT at 192.0.2.7: SSH connection timeout"

    def test_failure_keeps_last_known_values(self, aggregator, device):
        aggregator.apply(device, make_sample(7, [make_onu(rx_power=-19.0)]))
        first = aggregator.snapshot(7)

        aggregator.apply(device, make_sample(7, error="boom"))
        state = aggregator.snapshot(7)

        assert state.last_seen == first.last_seen
        assert state.metrics == first.metrics
        assert state.onus == first.onus
        assert state.last_error == "boom"
        assert state.consecutive_failures == 1

    def test_offline_is_reported_once(self, aggregator, device):
        aggregator.apply(device, make_sample(7, error="down"))
        assert aggregator.apply(device, make_sample(7, error="down")) == []
        assert aggregator.snapshot(7).consecutive_failures == 2

    def test_failure_threshold(self, device):
        aggregator = StateAggregator(offline_after_failures=3)
        aggregator.apply(device, make_sample(7, [make_onu()]))

        assert aggregator.apply(device, make_sample(7, error="x")) == []
        assert aggregator.apply(device, make_sample(7, error="x")) == []
        assert types(aggregator.apply(device, make_sample(7, error="x"))) == [EventType.DEVICE_OFFLINE]

    def test_recovery_resets_failures(self, aggregator, device):
        aggregator.apply(device, make_sample(7, error="down"))

        events = aggregator.apply(device, make_sample(7, []))

        assert types(events) == [EventType.DEVICE_ONLINE]
        state = aggregator.snapshot(7)
        assert state.consecutive_failures == 0
        assert state.last_error is None

    def test_threshold_must_be_positive(self):
        with pytest.raises(ValueError):
            StateAggregator(offline_after_failures=0)


class TestOnuTransitions:

    def test_online_to_offline_warns_and_stamps(self, aggregator, device):
        aggregator.apply(device, make_sample(7, [make_onu(name="Shop")]))

        events = aggregator.apply(device, make_sample(7, [make_onu(name="Shop", status="offline")]))

        assert types(events) == [EventType.ONU_OFFLINE]
        assert events[0].severity == Severity.WARNING
        assert events[0].title == "ONU Offline: Shop"
        assert events[0].onu_key == "1/1/1:1"
        assert aggregator.snapshot(7).onus["1/1/1:1"].last_offline == events[0].timestamp

    def test_offline_to_online(self, aggregator, device):
        aggregator.apply(device, make_sample(7, [make_onu(status="offline")]))

        events = aggregator.apply(device, make_sample(7, [make_onu()]))

        assert types(events) == [EventType.ONU_ONLINE]
        assert aggregator.snapshot(7).onus["1/1/1:1"].last_online is not None

    def test_missing_name_keeps_previous(self, aggregator, device):
        aggregator.apply(device, make_sample(7, [make_onu(name="Shop")]))
        aggregator.apply(device, make_sample(7, [make_onu(name=None)]))

        assert aggregator.snapshot(7).onus["1/1/1:1"].name == "Shop"

    def test_absent_onu_keeps_last_known_state(self, aggregator, device):
        aggregator.apply(device, make_sample(7, [make_onu(onu_index=1), make_onu(onu_index=2)]))

        events = aggregator.apply(device, make_sample(7, [make_onu(onu_index=1)]))

        assert events == []
        assert aggregator.snapshot(7).onus["1/1/1:2"].status == "online"


class TestPowerDrop:

    def test_low_power_alerts_once(self, aggregator, device):
        aggregator.apply(device, make_sample(7, [make_onu(rx_power=-20.0)]))

        first = aggregator.apply(device, make_sample(7, [make_onu(rx_power=-29.5)]))
        second = aggregator.apply(device, make_sample(7, [make_onu(rx_power=-30.0)]))

        assert types(first) == [EventType.POWER_DROP]
        assert first[0].message == "RX power is -29.5 dBm (threshold: -28 dBm)"
        assert second == []
        assert aggregator.snapshot(7).onus["1/1/1:1"].low_power is True

    def test_recovery_rearms_alert(self, aggregator, device):
        aggregator.apply(device, make_sample(7, [make_onu(rx_power=-29.0)]))
        aggregator.apply(device, make_sample(7, [make_onu(rx_power=-22.0)]))
        assert aggregator.snapshot(7).onus["1/1/1:1"].low_power is False

        events = aggregator.apply(device, make_sample(7, [make_onu(rx_power=-29.0)]))
        assert types(events) == [EventType.POWER_DROP]

    def test_threshold_is_strict(self, aggregator, device):
        aggregator.apply(device, make_sample(7, [make_onu()]))
        assert aggregator.apply(device, make_sample(7, [make_onu(rx_power=-28.0)])) == []


class TestSnapshots:

    def test_snapshot_is_a_copy(self, aggregator, device):
        aggregator.apply(device, make_sample(7, [make_onu()]))

        snapshot = aggregator.snapshot(7)
        snapshot.onus.clear()

        assert aggregator.snapshot(7).onus

    def test_forget_and_unknown(self, aggregator, device):
        aggregator.apply(device, make_sample(7, []))
        aggregator.forget(7)

        assert aggregator.snapshot(7) is None
        assert aggregator.all_states() == []
