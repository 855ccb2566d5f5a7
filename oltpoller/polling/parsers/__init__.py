from typing import List

from oltpoller.core.logging import get_logger
from oltpoller.schemas import OnuReading

from .bdcom import parse_bdcom_output
from .cdata import parse_cdata_output
from .dbc import parse_dbc_output
from .ecom import parse_ecom_output
from .huawei import parse_huawei_output
from .vsol import parse_vsol_output
from .zte import parse_zte_output

logger = get_logger(__name__)

PARSERS = {
    "ZTE": parse_zte_output,
    "HUAWEI": parse_huawei_output,
    "CDATA": parse_cdata_output,
    "VSOL": parse_vsol_output,
    "BDCOM": parse_bdcom_output,
    "DBC": parse_dbc_output,
    "ECOM": parse_ecom_output,
}


def parse_output(brand: str, output: str) -> List[OnuReading]:
    """Dispatch raw CLI output to the brand's parser. Unknown brands yield no ONUs."""
    parser = PARSERS.get((brand or "").upper())
    if parser is None:
        logger.warning("parser.unsupported_brand", brand=brand)
        return []
    return parser(output)


__all__ = [
    "PARSERS",
    "parse_output",
    "parse_zte_output",
    "parse_huawei_output",
    "parse_cdata_output",
    "parse_vsol_output",
    "parse_bdcom_output",
    "parse_dbc_output",
    "parse_ecom_output",
]
