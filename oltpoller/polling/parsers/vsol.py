"""
VSOL V1600 series CLI output parser.

VSOL firmware revisions print the ONU table in several shapes; all of them
are accepted and folded into one row per `pon_port:onu_index`:

    PON 0/1 ONU 1 VSOL12345678 online -20.5 2.1
    0/1/1 1 VSOL12345678 online -20.5 2.1
    pon-onu 0/1:1 online VSOL12345678
    1 VSOL12345678 online -20.5 2.1

`show onu optical-info` lines update the first ONU with the same index, and
MAC / name lines belong to the ONU listed just before them.
"""
import re
from typing import Dict, List, Optional

from oltpoller.core.logging import get_logger
from oltpoller.schemas import OnuReading

from .common import (
    apply_name,
    finalise,
    format_mac,
    is_noise,
    merge_row,
    normalise_status,
    parse_power,
)

logger = get_logger(__name__)

PON_ONU_LINE = re.compile(
    r"PON\s+(\d+/\d+)\s+ONU\s+(\d+)\s+(\S+)\s+([A-Za-z]+)(?:\s+([-\d.]+))?(?:\s+([-\d.]+))?", re.I
)
SLOT_LINE = re.compile(
    r"^\s*(\d+/\d+/\d+)\s+(\d+)\s+(\S+)\s+([A-Za-z]+)(?:\s+([-\d.]+))?(?:\s+([-\d.]+))?"
)
PON_ONU_PAIR_LINE = re.compile(r"pon-onu\s+(\d+/\d+):(\d+)\s+([A-Za-z]+)\s+(\S+)", re.I)
BARE_LINE = re.compile(
    r"^\s*(\d+)\s+([A-Z0-9]{8,16})\s+([A-Za-z]+)(?:\s+([-\d.]+))?(?:\s+([-\d.]+))?\s*$"
)
OPTICAL_LINE = re.compile(r"ONU\s+(\d+)\b.*?RX[^-\d]*([-\d.]+).*?TX[^-\d]*([-\d.]+)", re.I)
MAC_LINE = re.compile(r"MAC(?:\s*Address)?[:\s]+([0-9A-Fa-f:.\-]{12,17})", re.I)
NAME_LINE = re.compile(r"(?:Name|Description|Desc)\s*[:=]\s*(.+)", re.I)

BARE_PORT = "default"


def parse_vsol_output(output: str) -> List[OnuReading]:
    rows: Dict[str, Dict] = {}
    last: Optional[Dict] = None

    for raw in output.splitlines():
        line = raw.strip()
        if is_noise(line, "show ", "terminal length"):
            continue

        match = PON_ONU_LINE.search(line)
        if match:
            port, index, serial, status, rx, tx = match.groups()
            last = merge_row(
                rows, port, int(index),
                serial_number=serial,
                status=normalise_status(status),
                rx_power=parse_power(rx),
                tx_power=parse_power(tx),
            )
            continue

        match = SLOT_LINE.search(line)
        if match:
            port, index, serial, status, rx, tx = match.groups()
            last = merge_row(
                rows, port, int(index),
                serial_number=serial,
                status=normalise_status(status),
                rx_power=parse_power(rx),
                tx_power=parse_power(tx),
            )
            continue

        match = PON_ONU_PAIR_LINE.search(line)
        if match:
            port, index, status, serial = match.groups()
            last = merge_row(rows, port, int(index), serial_number=serial, status=normalise_status(status))
            continue

        match = BARE_LINE.search(line)
        if match:
            index, serial, status, rx, tx = match.groups()
            last = merge_row(
                rows, BARE_PORT, int(index),
                serial_number=serial,
                status=normalise_status(status),
                rx_power=parse_power(rx),
                tx_power=parse_power(tx),
            )
            continue

        match = OPTICAL_LINE.search(line)
        if match:
            index = int(match.group(1))
            row = next((r for r in rows.values() if r["onu_index"] == index), None)
            if row is not None:
                row["rx_power"] = parse_power(match.group(2))
                row["tx_power"] = parse_power(match.group(3))
            continue

        if last is None:
            continue

        match = MAC_LINE.search(line)
        if match:
            last["mac_address"] = format_mac(match.group(1))
            continue

        match = NAME_LINE.search(line)
        if match:
            apply_name(last, match.group(1))

    readings = finalise(rows, "VSOL")
    logger.info("parser.completed", brand="VSOL", onu_count=len(readings))
    return readings
