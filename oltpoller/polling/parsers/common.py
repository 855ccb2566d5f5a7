"""Helpers shared by the vendor CLI parsers."""
import re
from typing import Dict, List, Optional

from oltpoller.schemas import OnuReading


_MAC_SEPARATORS = re.compile(r"[:.\-]")
_SKIP_PREFIXES = ("---", "===")
# gpon-olt_0/1/1, gpon-0/1/1, epon0/1, pon-1/1/1 and a trailing ":<onu>"
_PORT_PREFIX = re.compile(r"^(?:gpon-olt_?|gpon-onu_|gpon-?|epon-?|pon-?)", re.I)
_PORT_SUFFIX = re.compile(r":\d+$")


def is_mac_address(value: Optional[str]) -> bool:
    if not value:
        return False
    cleaned = _MAC_SEPARATORS.sub("", value).upper()
    return re.fullmatch(r"[0-9A-F]{12}", cleaned) is not None


def format_mac(value: Optional[str]) -> Optional[str]:
    """
    Normalise a MAC address to XX:XX:XX:XX:XX:XX.

    Values that are not 12 hex digits once separators are stripped are
    returned upper-cased and otherwise untouched.
    """
    if not value:
        return None
    cleaned = _MAC_SEPARATORS.sub("", value).upper()
    if len(cleaned) != 12:
        return value.upper()
    return ":".join(cleaned[i:i + 2] for i in range(0, 12, 2))


ONLINE_WORDS = ("online", "working", "up", "active", "registered")


def normalise_status(value: str) -> str:
    return "online" if value.strip().lower() in ONLINE_WORDS else "offline"


def parse_power(value: Optional[str]) -> Optional[float]:
    if value is None or value == "":
        return None
    try:
        return float(value)
    except ValueError:
        return None


def is_noise(line: str, *markers: str) -> bool:
    """Blank lines, separators, echoed commands and short fragments."""
    if not line or len(line) < 5 or line.startswith(_SKIP_PREFIXES):
        return True
    return any(marker in line for marker in markers)


def new_row(pon_port: str, onu_index: int, **values) -> Dict:
    row = {
        "pon_port": pon_port,
        "onu_index": onu_index,
        "status": "offline",
        "serial_number": None,
        "name": None,
        "rx_power": None,
        "tx_power": None,
        "mac_address": None,
        "router_name": None,
    }
    row.update(values)
    return row


def apply_name(row: Dict, name: str) -> None:
    name = name.strip()
    if not row["name"] or row["name"].startswith("ONU-"):
        row["name"] = name
    if not row["router_name"]:
        row["router_name"] = name


def finalise(rows: Dict[str, Dict], serial_prefix: str) -> List[OnuReading]:
    """
    Fill serial and name fallbacks and build readings.

    A missing serial becomes the MAC without colons, else
    "{prefix}-{key}" with "/" replaced by "-". A missing name becomes
    "ONU-{pon_port}:{onu_index}".
    """
    readings = []
    for key, row in rows.items():
        if not row["serial_number"]:
            if row["mac_address"]:
                row["serial_number"] = row["mac_address"].replace(":", "")
            else:
                row["serial_number"] = f"{serial_prefix}-{key.replace('/', '-')}"
        if not row["name"]:
            row["name"] = f"ONU-{row['pon_port']}:{row['onu_index']}"
        readings.append(OnuReading(**row))
    return readings


def normalise_port(value: str) -> str:
    """Reduce a vendor port label to its bare numbering, e.g. "pon-1/1/1" -> "1/1/1"."""
    return _PORT_SUFFIX.sub("", _PORT_PREFIX.sub("", value.strip()))


def merge_row(rows: Dict[str, Dict], pon_port: str, onu_index: int, **values) -> Dict:
    """
    Add a row, or fold non-empty values into the row already under its key.

    Devices that print an ONU in several tables (or twice in one) end up
    with one row per `pon_port:onu_index`.
    """
    key = f"{pon_port}:{onu_index}"
    row = rows.get(key)
    if row is None:
        row = rows[key] = new_row(pon_port, onu_index, **values)
    else:
        row.update({field: value for field, value in values.items() if value is not None})
    return row


def port_index(value: str) -> Optional[int]:
    """ONU index from a "port:onu" label such as "gpon-olt_0/1/1:5", or None."""
    match = _PORT_SUFFIX.search(value.strip())
    return int(match.group(0)[1:]) if match else None
