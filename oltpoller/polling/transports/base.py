import asyncio
from abc import ABC, abstractmethod
from typing import Dict, List

from oltpoller.core.exceptions import ConnectionFailedError, PollTimeoutError, UnsupportedProtocolError
from oltpoller.schemas import DeviceConfig, OnuReading


class Transport(ABC):
    """Reads the ONU table of one OLT over one protocol."""

    protocol: str = ""
    default_port: int = 0

    @abstractmethod
    async def collect(self, device: DeviceConfig) -> List[OnuReading]:
        """
        Collect ONU readings from the device.

        Raises:
            TransportError: connection, authentication or timeout failure
        """

    async def check_reachable(self, device: DeviceConfig, timeout: float) -> None:
        """
        Check the device answers on this protocol without reading ONUs.

        The base check opens and closes a TCP connection to the service port.

        Raises:
            TransportError: the device is unreachable or did not answer in time
        """
        port = device.port or self.default_port
        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(device.host, port), timeout)
        except asyncio.TimeoutError:
            raise PollTimeoutError(f"Connection to {device.host}:{port} timed out after {timeout:.0f}s")
        except OSError as e:
            raise ConnectionFailedError(str(e) or type(e).__name__) from e
        writer.close()


class TransportFactory:
    """Maps a protocol name to a shared transport instance."""

    def __init__(self, transports: List[Transport]):
        self._transports: Dict[str, Transport] = {t.protocol: t for t in transports}

    def for_device(self, device: DeviceConfig) -> Transport:
        transport = self._transports.get(device.protocol)
        if transport is None:
            raise UnsupportedProtocolError(f"No transport for protocol {device.protocol!r}")
        return transport

    @property
    def protocols(self) -> List[str]:
        return sorted(self._transports)
