"""
Huawei MA5800/MA5683T CLI output parser.

Handles `display ont info summary all` and `display ont optical-info all`.
"""
import re
from typing import Dict, List, Optional

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

# 0/1/0   1   48575443...   online   normal
SUMMARY_LINE = re.compile(r"(\d+)/(\d+)/(\d+)\s+(\d+)\s+(\S+)\s+(online|offline|inactive)", re.I)
# 0/1/0   1   -18.50   2.30
OPTICAL_LINE = re.compile(r"(\d+)/(\d+)/(\d+)\s+(\d+)\s+([-\d.]+)\s+([-\d.]+)")
RX_LINE = re.compile(r"Rx\s*optical\s*power.*?:\s*([-\d.]+)", re.I)
TX_LINE = re.compile(r"Tx\s*optical\s*power.*?:\s*([-\d.]+)", re.I)
NAME_LINE = re.compile(r"(?:Description|Name)[:\s]+(.+)", re.I)
MAC_LINE = re.compile(r"MAC\s*(?:address)?[:\s]+([0-9a-fA-F:.\-]{12,17})", re.I)
SERIAL_LINE = re.compile(r"SN[:\s]+(\S+)", re.I)


def parse_huawei_output(output: str) -> List[OnuReading]:
    rows: Dict[str, Dict] = {}
    current: Optional[str] = None
    lines = output.splitlines()

    for raw in lines:
        line = raw.strip()
        if is_noise(line, "display ont", "screen-length"):
            continue

        match = SUMMARY_LINE.search(line)
        if match:
            pon_port = "/".join(match.group(1, 2, 3))
            ont_id = int(match.group(4))
            serial = match.group(5)
            current = f"{pon_port}:{ont_id}"
            rows[current] = new_row(
                pon_port,
                ont_id,
                status=normalise_status(match.group(6)),
                serial_number=serial,
                mac_address=format_mac(serial) if is_mac_address(serial) else None,
            )
            continue

        match = OPTICAL_LINE.search(line)
        if match:
            pon_port = "/".join(match.group(1, 2, 3))
            ont_id = int(match.group(4))
            key = f"{pon_port}:{ont_id}"
            rx_power, tx_power = parse_power(match.group(5)), parse_power(match.group(6))
            if key in rows:
                rows[key]["rx_power"] = rx_power
                rows[key]["tx_power"] = tx_power
            else:
                # Only ONTs that answer appear in the optical table
                rows[key] = new_row(
                    pon_port, ont_id, status="online", rx_power=rx_power, tx_power=tx_power
                )
            continue

        row = rows.get(current) if current else None

        match = RX_LINE.search(line)
        if match and row is not None:
            row["rx_power"] = parse_power(match.group(1))
            continue

        match = TX_LINE.search(line)
        if match and row is not None:
            row["tx_power"] = parse_power(match.group(1))
            continue

        match = NAME_LINE.search(line)
        if match and row is not None:
            apply_name(row, match.group(1))
            continue

        match = MAC_LINE.search(line)
        if match and row is not None:
            row["mac_address"] = format_mac(match.group(1))
            continue

        match = SERIAL_LINE.search(line)
        if match and row is not None:
            if not row["serial_number"]:
                row["serial_number"] = match.group(1)
            continue

    readings = finalise(rows, "HW")
    logger.info("parser.completed", brand="Huawei", lines=len(lines), onu_count=len(readings))
    return readings
