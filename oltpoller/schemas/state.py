from datetime import datetime
from enum import Enum
from typing import Dict, Optional
from pydantic import BaseModel, Field

from .sample import SampleMetrics


class DeviceStatus(str, Enum):
    UNKNOWN = "unknown"
    ONLINE = "online"
    OFFLINE = "offline"


class EventType(str, Enum):
    DEVICE_ONLINE = "device_online"
    DEVICE_OFFLINE = "device_offline"
    ONU_DISCOVERED = "onu_discovered"
    ONU_ONLINE = "onu_online"
    ONU_OFFLINE = "onu_offline"
    POWER_DROP = "power_drop"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class OnuState(BaseModel):
    """Last-known state of one ONU."""
    pon_port: str
    onu_index: int
    serial_number: str
    name: Optional[str] = None
    status: str = "offline"
    rx_power: Optional[float] = None
    tx_power: Optional[float] = None
    mac_address: Optional[str] = None
    router_name: Optional[str] = None
    low_power: bool = False
    last_seen: Optional[datetime] = None
    last_online: Optional[datetime] = None
    last_offline: Optional[datetime] = None


class DeviceState(BaseModel):
    """Aggregated view of one OLT across polls."""
    device_id: int
    name: str
    status: DeviceStatus = DeviceStatus.UNKNOWN
    last_seen: Optional[datetime] = None
    last_polled: Optional[datetime] = None
    last_error: Optional[str] = None
    consecutive_failures: int = 0
    metrics: SampleMetrics = Field(default_factory=SampleMetrics)
    onus: Dict[str, OnuState] = Field(default_factory=dict)


class StateEvent(BaseModel):
    """A transition detected while merging a sample."""
    type: EventType
    severity: Severity
    device_id: int
    device_name: str
    onu_key: Optional[str] = None
    title: str
    message: str
    timestamp: datetime
