from .base import Transport, TransportFactory
from .snmp import SnmpTransport
from .ssh import SshCliTransport
from .telnet import TelnetTransport


def default_factory() -> TransportFactory:
    return TransportFactory([SshCliTransport(), TelnetTransport(), SnmpTransport()])


__all__ = [
    "Transport",
    "TransportFactory",
    "SnmpTransport",
    "SshCliTransport",
    "TelnetTransport",
    "default_factory",
]
