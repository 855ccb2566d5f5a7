"""
Pytest configuration and shared fixtures.
"""
import asyncio
from datetime import datetime, timezone
from typing import Dict, List, Optional

import pytest

from oltpoller.core.exceptions import TransportError
from oltpoller.polling.transports import Transport, TransportFactory
from oltpoller.schemas import DeviceConfig, OnuReading, Sample

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


def pytest_configure(config):
    """Configure pytest-asyncio mode."""
    config.option.asyncio_mode = "auto"


def make_device(device_id: int = 1, **overrides) -> DeviceConfig:
    values = {
        "id": device_id,
        "name": f"OLT-{device_id}",
        "brand": "ZTE",
        "host": f"10.0.0.{device_id}",
        "port": 22,
        "protocol": "ssh",
        "username": "admin",
        "password": "secret",
    }
    values.update(overrides)
    return DeviceConfig(**values)


def make_onu(pon_port: str = "1/1/1", onu_index: int = 1, **overrides) -> OnuReading:
    values = {
        "pon_port": pon_port,
        "onu_index": onu_index,
        "serial_number": f"ZTEG{onu_index:08d}",
        "name": f"customer-{onu_index}",
        "status": "online",
        "rx_power": -20.0,
        "tx_power": 2.0,
    }
    values.update(overrides)
    return OnuReading(**values)


def make_sample(device_id: int = 1, onus: Optional[List[OnuReading]] = None, error: Optional[str] = None) -> Sample:
    return Sample(
        device_id=device_id,
        timestamp=datetime.now(timezone.utc),
        success=error is None,
        duration_ms=12.5,
        onus=(onus or []) if error is None else [],
        error=error,
    )


class FakeTransport(Transport):
    """Returns scripted readings per device; can block or fail on demand."""

    protocol = "ssh"

    def __init__(self):
        self.readings: Dict[int, List[OnuReading]] = {}
        self.errors: Dict[int, Exception] = {}
        self.calls: List[int] = []
        self.checks: List[tuple] = []
        self.gate: Optional[asyncio.Event] = None
        self.active = 0
        self.max_active = 0

    async def collect(self, device: DeviceConfig) -> List[OnuReading]:
        self.calls.append(device.id)
        self.active += 1
        self.max_active = max(self.max_active, self.active)
        try:
            if self.gate is not None:
                await self.gate.wait()
            if device.id in self.errors:
                raise self.errors[device.id]
            return list(self.readings.get(device.id, []))
        finally:
            self.active -= 1

    async def check_reachable(self, device: DeviceConfig, timeout: float) -> None:
        self.checks.append((device.host, timeout))
        if device.id in self.errors:
            raise self.errors[device.id]


@pytest.fixture
def fake_transport() -> FakeTransport:
    return FakeTransport()


@pytest.fixture
def transports(fake_transport) -> TransportFactory:
    return TransportFactory([fake_transport])


@pytest.fixture
def unreachable_error() -> TransportError:
    return TransportError("SSH connection timeout")
