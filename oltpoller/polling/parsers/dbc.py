"""
DBC GPON OLT CLI output parser.

DBC prints a ZTE-like ONU table, either pipe separated

    1 | gpon-olt_0/1/1 | DBCG12345678 | online | -19.20

or as one `Status:`/`SN:` line per ONU.
"""
import re
from typing import Dict, List

from oltpoller.core.logging import get_logger
from oltpoller.schemas import OnuReading

from .common import finalise, merge_row, normalise_port, normalise_status, parse_power, port_index

logger = get_logger(__name__)

PIPE_LINE = re.compile(
    r"(\d+)\s*\|\s*(\S+)\s*\|\s*(\S+)\s*\|\s*(online|offline|inactive)\s*\|?\s*([-\d.]+)?", re.I
)
# gpon-onu_0/1/1:2  Status: online  SN: DBCG12345678
STATUS_LINE = re.compile(r"(gpon\S+)\s+Status:\s*(online|offline|inactive)\s+SN:\s*(\S+)", re.I)


def parse_dbc_output(output: str) -> List[OnuReading]:
    rows: Dict[str, Dict] = {}

    for line in output.splitlines():
        if not line.strip() or "---" in line or "===" in line:
            continue

        match = PIPE_LINE.search(line)
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

        match = STATUS_LINE.search(line)
        if match:
            port, status, serial = match.groups()
            index = port_index(port)
            merge_row(
                rows,
                normalise_port(port),
                index if index is not None else len(rows) + 1,
                serial_number=serial,
                name=f"ONU-{serial}",
                status=normalise_status(status),
            )

    readings = finalise(rows, "DBC")
    logger.info("parser.completed", brand="DBC", onu_count=len(readings))
    return readings
