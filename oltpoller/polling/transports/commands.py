"""CLI command lists per OLT brand, shared by the SSH and Telnet transports."""
from typing import List

# Pager-disabling commands; the Telnet transport sends its own before these lists
PAGER_COMMANDS = ("terminal length 0", "screen-length 0 temporary")

BRAND_COMMANDS = {
    "ZTE": [
        "terminal length 0",
        "show gpon onu state",
        "show gpon onu detail-info",
        "show gpon onu optical-info",
    ],
    "HUAWEI": [
        "screen-length 0 temporary",
        "display ont info summary all",
        "display ont optical-info all",
    ],
    "FIBERHOME": [
        "show gpon onu state",
        "show gpon onu list",
    ],
    "VSOL": [
        "terminal length 0",
        "show onu info",
        "show onu optical-info",
    ],
    "BDCOM": [
        "terminal length 0",
        "show epon onu-info",
        "show epon active onu",
        "show epon optical-transceiver-diagnosis interface",
    ],
    "CDATA": [
        "terminal length 0",
        "show onu info all",
        "show onu list",
    ],
    "DBC": [
        "terminal length 0",
        "show gpon onu state",
    ],
    "ECOM": [
        "terminal length 0",
        "show gpon onu info",
    ],
}
DEFAULT_COMMANDS = ["show onu status"]


def get_commands(brand: str) -> List[str]:
    return list(BRAND_COMMANDS.get((brand or "").upper(), DEFAULT_COMMANDS))


__all__ = ["BRAND_COMMANDS", "DEFAULT_COMMANDS", "PAGER_COMMANDS", "get_commands"]
