"""
ZTE C300/C320/C600 CLI output parser.

Handles the combined output of:
- show gpon onu state
- show gpon onu detail-info
- show gpon onu optical-info
"""
import re
from typing import Dict, List, Optional, Tuple

from oltpoller.core.logging import get_logger
from oltpoller.schemas import OnuReading

from .common import (
    apply_name,
    finalise,
    format_mac,
    is_mac_address,
    is_noise,
    new_row,
    normalise_status,
    parse_power,
)

logger = get_logger(__name__)

# gpon-onu_1/1/1:1   online
STATE_LINE = re.compile(r"gpon-onu_(\d+/\d+/\d+):(\d+)\s+([A-Za-z]\w*)", re.I)
# 1/1/1:1    ZTEGC1234567    online  -18.5    2.1
TABLE_LINE = re.compile(
    r"(\d+/\d+/\d+):(\d+)\s+(\S+)\s+(online|offline|inactive|working)\s*([-\d.]+)?\s*([-\d.]+)?",
    re.I,
)
SERIAL_LINE = re.compile(r"(?:Serial\s*number|SN)[:\s]+(\S+)", re.I)
NAME_LINE = re.compile(r"(?:Name|Description)[:\s]+(.+)", re.I)
# gpon-onu_1/1/1:1  -22.50  2.50
OPTICAL_LINE = re.compile(r"gpon-onu_(\d+/\d+/\d+):(\d+)\s+([-\d.]+)\s+([-\d.]+)", re.I)
RX_LINE = re.compile(r"Rx\s*(?:optical)?\s*power[:\s]+([-\d.]+)", re.I)
TX_LINE = re.compile(r"Tx\s*(?:optical)?\s*power[:\s]+([-\d.]+)", re.I)
MAC_LINE = re.compile(r"MAC[:\s]+([0-9a-fA-F:.\-]{12,17})", re.I)


def parse_zte_output(output: str) -> List[OnuReading]:
    rows: Dict[str, Dict] = {}
    current: Optional[Tuple[str, int]] = None
    lines = output.splitlines()

    def current_row() -> Optional[Dict]:
        if current is None:
            return None
        return rows.get(f"{current[0]}:{current[1]}")

    for raw in lines:
        line = raw.strip()
        if is_noise(line, "terminal length"):
            continue

        match = STATE_LINE.search(line)
        if match:
            pon_port, index = match.group(1), int(match.group(2))
            status = normalise_status(match.group(3))
            key = f"{pon_port}:{index}"
            current = (pon_port, index)
            if key in rows:
                rows[key]["status"] = status
            else:
                rows[key] = new_row(pon_port, index, status=status)
            continue

        match = TABLE_LINE.search(line)
        if match:
            pon_port, index = match.group(1), int(match.group(2))
            serial = match.group(3)
            rows[f"{pon_port}:{index}"] = new_row(
                pon_port,
                index,
                status=normalise_status(match.group(4)),
                serial_number=serial,
                rx_power=parse_power(match.group(5)),
                tx_power=parse_power(match.group(6)),
                mac_address=format_mac(serial) if is_mac_address(serial) else None,
            )
            continue

        match = SERIAL_LINE.search(line)
        if match and current is not None:
            row = current_row()
            if row is not None:
                row["serial_number"] = match.group(1)
            continue

        match = NAME_LINE.search(line)
        if match and current is not None:
            row = current_row()
            if row is not None:
                apply_name(row, match.group(1))
            continue

        match = OPTICAL_LINE.search(line)
        if match:
            key = f"{match.group(1)}:{int(match.group(2))}"
            if key in rows:
                rows[key]["rx_power"] = parse_power(match.group(3))
                rows[key]["tx_power"] = parse_power(match.group(4))
            continue

        match = RX_LINE.search(line)
        if match and current is not None:
            row = current_row()
            if row is not None:
                row["rx_power"] = parse_power(match.group(1))
            continue

        match = TX_LINE.search(line)
        if match and current is not None:
            row = current_row()
            if row is not None:
                row["tx_power"] = parse_power(match.group(1))
            continue

        match = MAC_LINE.search(line)
        if match and current is not None:
            row = current_row()
            if row is not None:
                row["mac_address"] = format_mac(match.group(1))
            continue

    readings = finalise(rows, "ZTE")
    logger.info("parser.completed", brand="ZTE", lines=len(lines), onu_count=len(readings))
    return readings
