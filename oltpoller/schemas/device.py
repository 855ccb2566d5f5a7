from typing import Optional
from pydantic import BaseModel, Field, field_validator


class DeviceConfig(BaseModel):
    """One OLT the scheduler polls. Immutable once registered."""
    id: int
    name: str
    brand: str = "ZTE"
    host: str
    port: Optional[int] = None
    protocol: str = "ssh"
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    snmp_community: Optional[str] = Field(default=None, repr=False)
    poll_interval_s: Optional[float] = Field(default=None, gt=0)
    timeout_s: Optional[float] = Field(default=None, gt=0)

    model_config = {"frozen": True}

    @field_validator("protocol")
    @classmethod
    def normalise_protocol(cls, v: str) -> str:
        return v.strip().lower()

    @classmethod
    def from_olt(cls, olt) -> "DeviceConfig":
        """Build a config from an `olts` row."""
        return cls(
            id=olt.id,
            name=olt.name,
            brand=olt.brand,
            host=olt.ip_address,
            port=olt.port,
            protocol=olt.protocol or "ssh",
            username=olt.username,
            password=olt.password_encrypted,
            snmp_community=olt.snmp_community,
            poll_interval_s=olt.poll_interval_s,
        )


class DeviceSummary(BaseModel):
    """Device list item for /api/devices."""
    id: int
    name: str
    brand: str
    host: str
    protocol: str
    poll_interval_s: float
    status: str
    in_flight: bool


class ConnectionTestRequest(BaseModel):
    """Body of POST /api/test-connection: an OLT that need not be registered."""
    host: str = Field(min_length=1)
    port: Optional[int] = Field(default=None, ge=1, le=65535)
    protocol: str = "ssh"
    brand: str = "ZTE"
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)
    snmp_community: Optional[str] = Field(default=None, repr=False)
    timeout_s: Optional[float] = Field(default=None, gt=0, le=60)

    def to_device(self) -> DeviceConfig:
        return DeviceConfig(
            id=0,
            name=self.host,
            brand=self.brand,
            host=self.host,
            port=self.port,
            protocol=self.protocol,
            username=self.username,
            password=self.password,
            snmp_community=self.snmp_community,
            timeout_s=self.timeout_s,
        )


class ConnectionTestResult(BaseModel):
    success: bool
    host: str
    port: int
    protocol: str
    duration_ms: float
    error: Optional[str] = None
