"""
CDATA FD-series output parser (pipe tables, column tables and `show onu list`).

All three formats report ports as bare `frame/slot/port`, so an ONU listed in
more than one table keeps a single key.
"""
import re
from typing import Dict, List

from oltpoller.core.logging import get_logger
from oltpoller.schemas import OnuReading

from .common import finalise, merge_row, normalise_port, normalise_status, parse_power

logger = get_logger(__name__)

# 1/1/1 | 1 | CDTA12345678 | Online | -18.50 | 2.30
PIPE_LINE = re.compile(
    r"(\S*\d+/\d+/\d+)\s*\|\s*(\d+)\s*\|\s*(\S+)\s*\|\s*(Online|Offline|LOS)\s*\|\s*([-\d.]+)?\s*\|\s*([-\d.]+)?",
    re.I,
)
# 1   1/1/1   CDTA12345678   online   -18.50
COLUMN_LINE = re.compile(r"^\s*(\d+)\s+(\S*\d+/\d+/\d+)\s+(\S+)\s+(online|offline|los)\s+([-\d.]+)?", re.I)
# onu 4 on port 1/1/3 sn: CDTA12345678 state: working
LIST_LINE = re.compile(r"onu\s+(\d+)\s+on\s+port\s+(\S+)\s+sn:\s*(\S+)\s+state:\s*(working|offline|los)", re.I)


def parse_cdata_output(output: str) -> List[OnuReading]:
    rows: Dict[str, Dict] = {}

    for line in output.splitlines():
        if not line.strip() or "---" in line or "===" in line:
            continue

        match = PIPE_LINE.search(line)
        if match:
            port, index, serial, status, rx, tx = match.groups()
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

        match = COLUMN_LINE.search(line)
        if match:
            index, port, serial, status, rx = match.groups()
            merge_row(
                rows,
                normalise_port(port),
                int(index),
                serial_number=serial,
                name=f"ONU-{serial}",
                status=normalise_status(status),
                rx_power=parse_power(rx),
            )
            continue

        match = LIST_LINE.search(line)
        if match:
            index, port, serial, status = match.groups()
            merge_row(
                rows,
                normalise_port(port),
                int(index),
                serial_number=serial,
                name=f"ONU-{serial}",
                status=normalise_status(status),
            )

    readings = finalise(rows, "CDATA")
    logger.info("parser.completed", brand="CDATA", onu_count=len(readings))
    return readings
