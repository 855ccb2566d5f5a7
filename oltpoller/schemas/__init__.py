from .device import ConnectionTestRequest, ConnectionTestResult, DeviceConfig, DeviceSummary
from .sample import OnuReading, Sample, SampleMetrics
from .state import DeviceState, DeviceStatus, EventType, OnuState, Severity, StateEvent

__all__ = [
    "ConnectionTestRequest",
    "ConnectionTestResult",
    "DeviceConfig",
    "DeviceSummary",
    "OnuReading",
    "Sample",
    "SampleMetrics",
    "DeviceState",
    "DeviceStatus",
    "EventType",
    "OnuState",
    "Severity",
    "StateEvent",
]
