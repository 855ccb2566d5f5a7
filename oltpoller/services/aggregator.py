"""
State aggregator.

Folds each Sample into the last-known DeviceState of its OLT and reports
the transitions it detects as StateEvents. Failed polls keep last-known
values; ONUs missing from a sample keep their last-known state.
"""
from datetime import datetime
from typing import Dict, List, Optional

from oltpoller.core.logging import get_logger
from oltpoller.schemas import (
    DeviceConfig,
    DeviceState,
    DeviceStatus,
    EventType,
    OnuReading,
    OnuState,
    Sample,
    Severity,
    StateEvent,
)

logger = get_logger(__name__)


class StateAggregator:

    def __init__(self, offline_after_failures: int = 1, low_rx_power_dbm: float = -28.0):
        if offline_after_failures < 1:
            raise ValueError("offline_after_failures must be >= 1")
        self.offline_after_failures = offline_after_failures
        self.low_rx_power_dbm = low_rx_power_dbm
        self._states: Dict[int, DeviceState] = {}

    def apply(self, device: DeviceConfig, sample: Sample) -> List[StateEvent]:
        """Merge `sample` into the device's state and return the detected transitions."""
        state = self._states.get(device.id)
        if state is None:
            state = DeviceState(device_id=device.id, name=device.name)
        else:
            state = state.model_copy(deep=True)
        state.name = device.name
        state.last_polled = sample.timestamp

        if sample.success:
            events = self._apply_success(device, state, sample)
        else:
            events = self._apply_failure(device, state, sample)

        # Publish the new state in one assignment
        self._states[device.id] = state

        for event in events:
            logger.info(
                "state.event",
                event_type=event.type.value,
                severity=event.severity.value,
                device_id=event.device_id,
                onu_key=event.onu_key,
            )
        return events

    def _apply_success(self, device: DeviceConfig, state: DeviceState, sample: Sample) -> List[StateEvent]:
        events: List[StateEvent] = []
        previous = state.status

        state.status = DeviceStatus.ONLINE
        state.consecutive_failures = 0
        state.last_error = None
        state.last_seen = sample.timestamp
        state.metrics = sample.metrics()

        if previous != DeviceStatus.ONLINE:
            events.append(self._event(
                EventType.DEVICE_ONLINE,
                Severity.INFO,
                device,
                sample.timestamp,
                title=f"OLT Online: {device.name}",
                message=f"OLT at {device.host} is reachable",
            ))

        for reading in sample.onus:
            events.extend(self._merge_onu(device, state, reading, sample.timestamp))
        return events

    def _apply_failure(self, device: DeviceConfig, state: DeviceState, sample: Sample) -> List[StateEvent]:
        state.consecutive_failures += 1
        state.last_error = sample.error

        if (
            state.consecutive_failures >= self.offline_after_failures
            and state.status != DeviceStatus.OFFLINE
        ):
            state.status = DeviceStatus.OFFLINE
            return [self._event(
                EventType.DEVICE_OFFLINE,
                Severity.CRITICAL,
                device,
                sample.timestamp,
                title=f"OLT Unreachable: {device.name}",
                message=f"Failed to connect to OLT at {device.host}: {sample.error}",
            )]
        return []

    def _merge_onu(
        self,
        device: DeviceConfig,
        state: DeviceState,
        reading: OnuReading,
        now: datetime,
    ) -> List[StateEvent]:
        events: List[StateEvent] = []
        key = reading.key
        previous = state.onus.get(key)
        low_power = reading.rx_power is not None and reading.rx_power < self.low_rx_power_dbm
        label = reading.name or reading.serial_number

        if previous is None:
            onu = OnuState(
                **reading.model_dump(),
                low_power=False,
                last_seen=now,
                last_online=now if reading.is_online else None,
            )
            events.append(self._event(
                EventType.ONU_DISCOVERED,
                Severity.INFO,
                device,
                now,
                onu_key=key,
                title=f"New ONU discovered: {reading.serial_number}",
                message=f"ONU {reading.serial_number} found on port {reading.pon_port}",
            ))
        else:
            onu = previous
            was_online = onu.status == "online"
            onu.serial_number = reading.serial_number
            onu.name = reading.name or onu.name
            onu.status = reading.status
            onu.rx_power = reading.rx_power
            onu.tx_power = reading.tx_power
            onu.mac_address = reading.mac_address or onu.mac_address
            onu.router_name = reading.router_name or onu.router_name
            onu.last_seen = now
            label = onu.name or onu.serial_number

            if was_online and not reading.is_online:
                onu.last_offline = now
                events.append(self._event(
                    EventType.ONU_OFFLINE,
                    Severity.WARNING,
                    device,
                    now,
                    onu_key=key,
                    title=f"ONU Offline: {label}",
                    message=f"ONU {reading.serial_number} on port {reading.pon_port} went offline",
                ))
            elif not was_online and reading.is_online:
                onu.last_online = now
                events.append(self._event(
                    EventType.ONU_ONLINE,
                    Severity.INFO,
                    device,
                    now,
                    onu_key=key,
                    title=f"ONU Online: {label}",
                    message=f"ONU {reading.serial_number} on port {reading.pon_port} is back online",
                ))

        # Alert once on the way down; a reading back above the threshold re-arms it
        if low_power and not onu.low_power:
            events.append(self._event(
                EventType.POWER_DROP,
                Severity.WARNING,
                device,
                now,
                onu_key=key,
                title=f"Low RX Power: {label}",
                message=f"RX power is {reading.rx_power} dBm (threshold: {self.low_rx_power_dbm:g} dBm)",
            ))
        if reading.rx_power is not None:
            onu.low_power = low_power

        state.onus[key] = onu
        return events

    @staticmethod
    def _event(
        event_type: EventType,
        severity: Severity,
        device: DeviceConfig,
        timestamp: datetime,
        *,
        title: str,
        message: str,
        onu_key: Optional[str] = None,
    ) -> StateEvent:
        return StateEvent(
            type=event_type,
            severity=severity,
            device_id=device.id,
            device_name=device.name,
            onu_key=onu_key,
            title=title,
            message=message,
            timestamp=timestamp,
        )

    def snapshot(self, device_id: int) -> Optional[DeviceState]:
        state = self._states.get(device_id)
        return state.model_copy(deep=True) if state is not None else None

    def all_states(self) -> List[DeviceState]:
        return [state.model_copy(deep=True) for state in self._states.values()]

    def forget(self, device_id: int) -> None:
        self._states.pop(device_id, None)
