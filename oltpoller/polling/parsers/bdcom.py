"""
BDCOM EPON CLI output parser.

Handles the combined output of:
- show epon onu-info
- show epon active onu
- show epon optical-transceiver-diagnosis interface

BDCOM ONUs are identified by MAC address; the MAC (without colons) doubles
as the serial number. Index-only rows belong to the most recent
`EPON0/x` interface header.
"""
import re
from typing import Dict, List, Optional

from oltpoller.core.logging import get_logger
from oltpoller.schemas import OnuReading

from .common import finalise, format_mac, merge_row, normalise_status, parse_power

logger = get_logger(__name__)

_MAC = r"([0-9A-Fa-f]{2}(?:[:.\-]?[0-9A-Fa-f]{2}){5}|[0-9A-Fa-f]{4}\.[0-9A-Fa-f]{4}\.[0-9A-Fa-f]{4})"

INTERFACE_LINE = re.compile(r"\bEPON[\s\-]?(\d+/\d+)\b(?!:)", re.I)
# epon0/1:1  00:11:22:33:44:55  online
ONU_INFO_LINE = re.compile(rf"\bEPON(\d+/\d+):(\d+)\s+(?:MAC[:\s]+)?{_MAC}\s+(?:Status[:\s]+)?(\w+)", re.I)
# 1  0011.2233.4455  online  -21.50  2.30
TABLE_LINE = re.compile(rf"^\s*(\d+)\s+{_MAC}\s+([A-Za-z]\w*)(?:\s+([-\d.]+))?(?:\s+([-\d.]+))?")
# epon0/1:1  Temperature: 45  Rx Power: -21.5  Tx Power: 2.3
OPTICAL_LINE = re.compile(r"\bEPON(\d+/\d+):(\d+)\s.*?Rx[^:]*:\s*([-\d.]+).*?Tx[^:]*:\s*([-\d.]+)", re.I)
# 1  -21.50  2.30
POWER_LINE = re.compile(r"^\s*(\d+)\s+(-?\d+(?:\.\d+)?)\s+(-?\d+(?:\.\d+)?)\s*$")
# ONU 3 on epon0/1 is offline
EVENT_LINE = re.compile(r"ONU\s+(\d+)\s+on\s+(?:EPON)?(\d+/\d+)\s+is\s+(\w+)", re.I)
MAC_LINE = re.compile(rf"MAC(?:\s*Address)?[:\s]+{_MAC}", re.I)

DEFAULT_PORT = "0/1"


def _is_noise(line: str) -> bool:
    if len(line) < 5 or line.startswith(("---", "===", "***", "#")):
        return True
    return "terminal length" in line or "show " in line.lower()


def _mac_values(mac: str) -> Dict:
    mac = format_mac(mac)
    return {"mac_address": mac, "serial_number": mac.replace(":", "")}


def parse_bdcom_output(output: str) -> List[OnuReading]:
    rows: Dict[str, Dict] = {}
    current_port: Optional[str] = None
    last: Optional[Dict] = None

    for raw in output.splitlines():
        line = raw.strip()
        if _is_noise(line):
            continue

        match = INTERFACE_LINE.search(line)
        if match:
            current_port = match.group(1)

        match = OPTICAL_LINE.search(line)
        if match:
            port, index, rx, tx = match.groups()
            values = {"rx_power": parse_power(rx), "tx_power": parse_power(tx)}
            # Only registered ONUs report optics
            if f"{port}:{int(index)}" not in rows:
                values["status"] = "online"
            last = merge_row(rows, port, int(index), **values)
            continue

        match = ONU_INFO_LINE.search(line)
        if match:
            port, index, mac, status = match.groups()
            last = merge_row(rows, port, int(index), status=normalise_status(status), **_mac_values(mac))
            continue

        match = TABLE_LINE.search(line)
        if match:
            index, mac, status, rx, tx = match.groups()
            last = merge_row(
                rows, current_port or DEFAULT_PORT, int(index),
                status=normalise_status(status),
                rx_power=parse_power(rx),
                tx_power=parse_power(tx),
                **_mac_values(mac),
            )
            continue

        match = POWER_LINE.search(line)
        if match and current_port:
            row = rows.get(f"{current_port}:{int(match.group(1))}")
            if row is not None:
                rx, tx = float(match.group(2)), float(match.group(3))
                if rx < 0:
                    row["rx_power"] = rx
                if tx > 0:
                    row["tx_power"] = tx
            continue

        match = EVENT_LINE.search(line)
        if match:
            index, port, status = match.groups()
            last = merge_row(rows, port, int(index), status=normalise_status(status))
            continue

        match = MAC_LINE.search(line)
        if match and last is not None and not last["mac_address"]:
            last.update(_mac_values(match.group(1)))

    readings = finalise(rows, "BDCOM")
    logger.info("parser.completed", brand="BDCOM", onu_count=len(readings))
    return readings
