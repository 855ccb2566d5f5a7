"""
SNMP transport.

Walks the vendor's ONU run-status and optical power tables. Each row's OID
ends in `<port>.<onu>`: the last component is the ONU index and the one
before it identifies the PON port.
"""
import re
from typing import Dict, List, Optional, Tuple

from pysnmp.hlapi.v3arch.asyncio import (
    CommunityData,
    ContextData,
    ObjectIdentity,
    ObjectType,
    SnmpEngine,
    UdpTransportTarget,
    get_cmd,
    walk_cmd,
)

from oltpoller.core.config import settings
from oltpoller.core.exceptions import ConnectionFailedError, PollTimeoutError
from oltpoller.core.logging import get_logger
from oltpoller.polling.parsers.common import finalise, new_row
from oltpoller.schemas import DeviceConfig, OnuReading

from .base import Transport

logger = get_logger(__name__)

VENDOR_OIDS: Dict[str, Dict[str, str]] = {
    "HUAWEI": {
        # hwGponDeviceOnuRunStatus
        "status": "1.3.6.1.4.1.2011.6.128.1.1.2.46.1.15",
        # hwGponOltOpticsDdmInfoTxPower, ONU receive power as reported by the OLT
        "onu_rx": "1.3.6.1.4.1.2011.6.128.1.1.2.51.1.6",
    },
    "ZTE": {
        "status": "1.3.6.1.4.1.3902.1082.500.10.2.2.1.1.10",
        "onu_rx": "1.3.6.1.4.1.3902.1082.500.10.2.3.3.1.3",
    },
}

# ITU-T G.988 GPON MIB
GENERIC_OIDS: Dict[str, str] = {
    "status": "1.3.6.1.4.1.17409.2.3.6.1.1.8",
    "onu_rx": "1.3.6.1.4.1.17409.2.3.6.10.1.3",
}

SIGNAL_SCALE = 0.01

# SNMPv2-MIB::sysDescr.0
SYS_DESCR_OID = "1.3.6.1.2.1.1.1.0"


def resolve_oids(brand: str) -> Dict[str, str]:
    return VENDOR_OIDS.get((brand or "").upper(), GENERIC_OIDS)


def parse_signal_value(raw: str, scale: float = SIGNAL_SCALE) -> Optional[float]:
    """
    Convert a raw SNMP optical value to dBm.

    Values are reported in 0.01 dBm. Anything outside -50..10 dBm after
    scaling is taken as already in dBm if that fits, else discarded.
    """
    match = re.search(r"(-?\d+)", raw or "")
    if not match:
        return None
    raw_int = int(match.group(1))
    dbm = round(raw_int * scale, 2)
    if dbm < -50.0 or dbm > 10.0:
        if -50.0 <= raw_int <= 10.0:
            return float(raw_int)
        return None
    return dbm


def parse_online_status(raw: str) -> bool:
    """Run status: 1 is online (Huawei and ZTE), anything else offline."""
    lowered = (raw or "").lower().strip()
    match = re.search(r"(\d+)", lowered)
    if match:
        return int(match.group(1)) == 1
    return "online" in lowered or lowered == "up"


def split_index(oid: str, base: str) -> Optional[Tuple[str, int]]:
    """Return (port, onu_index) for a row OID under `base`, or None."""
    oid = oid.lstrip(".")
    base = base.lstrip(".")
    if not oid.startswith(base + "."):
        return None
    parts = oid[len(base) + 1:].split(".")
    if len(parts) < 2:
        return None
    try:
        return parts[-2], int(parts[-1])
    except ValueError:
        return None


def build_readings(
    brand: str,
    status_rows: Dict[Tuple[str, int], str],
    rx_rows: Dict[Tuple[str, int], str],
) -> List[OnuReading]:
    """Join the status and optical tables into readings keyed by port and index."""
    rows: Dict[str, Dict] = {}
    for (port, index), raw in status_rows.items():
        status = "online" if parse_online_status(raw) else "offline"
        rows[f"{port}:{index}"] = new_row(port, index, status=status)

    for (port, index), raw in rx_rows.items():
        key = f"{port}:{index}"
        if key not in rows:
            # Power is only reported for ONUs that answer
            rows[key] = new_row(port, index, status="online")
        rows[key]["rx_power"] = parse_signal_value(raw)

    return finalise(rows, (brand or "ONU").upper())


def raise_for_errors(error_indication, error_status, error_index) -> None:
    if error_indication:
        message = str(error_indication)
        if "timeout" in message.lower():
            raise PollTimeoutError(message)
        raise ConnectionFailedError(message)
    if error_status:
        raise ConnectionFailedError(f"{error_status.prettyPrint()} at {error_index}")


class SnmpTransport(Transport):
    protocol = "snmp"
    default_port = 161

    def __init__(
        self,
        timeout_s: Optional[float] = None,
        retries: Optional[int] = None,
        engine: Optional[SnmpEngine] = None,
    ):
        self.timeout_s = timeout_s or settings.snmp_timeout_s
        self.retries = retries if retries is not None else settings.snmp_retries
        self._engine = engine

    @property
    def engine(self) -> SnmpEngine:
        if self._engine is None:
            self._engine = SnmpEngine()
        return self._engine

    async def target_for(self, device: DeviceConfig, timeout: Optional[float] = None) -> UdpTransportTarget:
        try:
            return await UdpTransportTarget.create(
                (device.host, device.port or self.default_port),
                timeout=timeout or device.timeout_s or self.timeout_s,
                retries=self.retries,
            )
        except OSError as e:
            raise ConnectionFailedError(str(e)) from e

    async def collect(self, device: DeviceConfig) -> List[OnuReading]:
        oids = resolve_oids(device.brand)
        target = await self.target_for(device)
        community = CommunityData(device.snmp_community or "public", mpModel=1)
        status_rows = await self.walk(target, community, oids["status"])
        rx_rows = await self.walk(target, community, oids["onu_rx"])

        readings = build_readings(device.brand, status_rows, rx_rows)
        logger.info("snmp.walk_completed", device_id=device.id, onu_count=len(readings))
        return readings

    async def check_reachable(self, device: DeviceConfig, timeout: float) -> None:
        """Read sysDescr.0; SNMP has no session to open."""
        target = await self.target_for(device, timeout=timeout)
        error_indication, error_status, error_index, var_binds = await get_cmd(
            self.engine,
            CommunityData(device.snmp_community or "public", mpModel=1),
            target,
            ContextData(),
            ObjectType(ObjectIdentity(SYS_DESCR_OID)),
        )
        raise_for_errors(error_indication, error_status, error_index)
        for _, value in var_binds:
            logger.debug("snmp.check_succeeded", device_id=device.id, sys_descr=value.prettyPrint())

    async def walk(self, target, community, base_oid: str) -> Dict[Tuple[str, int], str]:
        rows: Dict[Tuple[str, int], str] = {}
        async for error_indication, error_status, error_index, var_binds in walk_cmd(
            self.engine,
            community,
            target,
            ContextData(),
            ObjectType(ObjectIdentity(base_oid)),
            lexicographicMode=False,
        ):
            raise_for_errors(error_indication, error_status, error_index)

            for name, value in var_binds:
                index = split_index(str(name.getOid()), base_oid)
                if index is None:
                    continue
                text = value.prettyPrint()
                if text.lower().startswith("no such"):
                    continue
                rows[index] = text
        return rows
