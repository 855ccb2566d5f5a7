"""
ECOM GPON OLT CLI output parser (pipe tables, column tables and the short
`gpon0/1:1 SN status rx` listing).
"""
import re
from typing import Dict, List

from oltpoller.core.logging import get_logger
from oltpoller.schemas import OnuReading

from .common import finalise, merge_row, normalise_port, normalise_status, parse_power, port_index

logger = get_logger(__name__)

# 1 | 0/1/1 | ECOM12345678 | Online | -18.50 | 2.30
PIPE_LINE = re.compile(
    r"(\d+)\s*\|\s*(\S*\d+/\d+/\d+)\s*\|\s*(\S+)\s*\|\s*(Online|Offline|Inactive)\s*\|\s*([-\d.]+)?\s*\|?\s*([-\d.]+)?",
    re.I,
)
# 1  0/1/1  ECOM12345678  online  -18.50  2.30
COLUMN_LINE = re.compile(
    r"^\s*(\d+)\s+(\S*\d+/\d+/\d+)\s+(\S+)\s+(online|offline|inactive)(?:\s+([-\d.]+))?(?:\s+([-\d.]+))?", re.I
)
# gpon0/1:1  ECOM12345678  online  -18.5dBm
SHORT_LINE = re.compile(r"(gpon\S+)\s+(\S+)\s+(online|offline)\b(?:\s+([-\d.]+))?", re.I)


def parse_ecom_output(output: str) -> List[OnuReading]:
    rows: Dict[str, Dict] = {}

    for line in output.splitlines():
        if not line.strip() or "---" in line or "===" in line or "ONU ID" in line:
            continue

        match = PIPE_LINE.search(line) or COLUMN_LINE.search(line)
        if match:
            index, port, serial, status, rx, tx = match.groups()
            merge_row(
                rows,
                normalise_port(port),
                int(index),
                serial_number=serial,
                name=f"ONU-{serial}",
                status=normalise_status(status),
                rx_power=parse_power(rx),
                tx_power=parse_power(tx),
            )
            continue

        match = SHORT_LINE.search(line)
        if match:
            port, serial, status, rx = match.groups()
            index = port_index(port)
            merge_row(
                rows,
                normalise_port(port),
                index if index is not None else len(rows) + 1,
                serial_number=serial,
                name=f"ONU-{serial}",
                status=normalise_status(status),
                rx_power=parse_power(rx),
            )

    readings = finalise(rows, "ECOM")
    logger.info("parser.completed", brand="ECOM", onu_count=len(readings))
    return readings
