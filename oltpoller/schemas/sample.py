from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field


class OnuReading(BaseModel):
    """One ONU row as read from the OLT during a poll."""
    pon_port: str
    onu_index: int
    serial_number: str
    name: Optional[str] = None
    status: str = "offline"
    rx_power: Optional[float] = None
    tx_power: Optional[float] = None
    mac_address: Optional[str] = None
    router_name: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.pon_port}:{self.onu_index}"

    @property
    def is_online(self) -> bool:
        return self.status == "online"


class SampleMetrics(BaseModel):
    onu_count: int = 0
    online_count: int = 0
    offline_count: int = 0
    avg_rx_power: Optional[float] = None
    min_rx_power: Optional[float] = None


class Sample(BaseModel):
    """
    Result of one poll of one device.

    A failed poll carries `success=False`, the error text and no ONUs.
    """
    device_id: int
    timestamp: datetime
    success: bool
    duration_ms: float = 0.0
    onus: List[OnuReading] = Field(default_factory=list)
    error: Optional[str] = None

    def metrics(self) -> SampleMetrics:
        online = sum(1 for onu in self.onus if onu.is_online)
        powers = [onu.rx_power for onu in self.onus if onu.rx_power is not None]
        return SampleMetrics(
            onu_count=len(self.onus),
            online_count=online,
            offline_count=len(self.onus) - online,
            avg_rx_power=round(sum(powers) / len(powers), 2) if powers else None,
            min_rx_power=min(powers) if powers else None,
        )
