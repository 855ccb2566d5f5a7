"""
Polling service.

Wires the registry, scheduler, aggregator and publisher together and owns
the registry refresh loop. One instance lives on `app.state.service` for
the lifetime of the process.
"""
import asyncio
import time
from typing import List, Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from oltpoller.core.config import Settings, settings as default_settings
from oltpoller.core.exceptions import TransportError, UnsupportedProtocolError
from oltpoller.core.logging import get_logger
from oltpoller.polling.poller import poll_device
from oltpoller.polling.registry import DeviceRegistry, RegistryDiff, load_devices
from oltpoller.polling.scheduler import PollFunc, PollScheduler
from oltpoller.polling.transports import TransportFactory, default_factory
from oltpoller.schemas import ConnectionTestResult, DeviceConfig, DeviceSummary, Sample
from oltpoller.services.aggregator import StateAggregator
from oltpoller.services.publisher import Publisher

logger = get_logger(__name__)


class PollingService:

    def __init__(
        self,
        *,
        session_factory: Optional[async_sessionmaker] = None,
        publisher: Optional[Publisher] = None,
        transports: Optional[TransportFactory] = None,
        registry: Optional[DeviceRegistry] = None,
        config: Settings = default_settings,
        poll: PollFunc = poll_device,
    ):
        self.config = config
        self.session_factory = session_factory
        self.registry = registry or DeviceRegistry()
        self.transports = transports or default_factory()
        self.publisher = publisher or Publisher()
        self.aggregator = StateAggregator(
            offline_after_failures=config.offline_after_failures,
            low_rx_power_dbm=config.low_rx_power_dbm,
        )
        self.scheduler = PollScheduler(
            self.registry,
            self.transports,
            self.handle_sample,
            default_interval_s=config.polling_interval_s,
            max_concurrent=config.max_concurrent_polls,
            initial_delay_s=config.initial_poll_delay_s,
            poll=poll,
        )
        self._refresh_task: Optional[asyncio.Task] = None

    async def handle_sample(self, device: DeviceConfig, sample: Sample) -> None:
        events = self.aggregator.apply(device, sample)
        await self.publisher.publish(device, sample, self.aggregator.snapshot(device.id), events)

    async def refresh_registry(self) -> Optional[RegistryDiff]:
        """
        Reload active OLTs from the database and resync the scheduler.

        On a database error the current registry is kept and None returned.
        """
        if self.session_factory is None:
            return None
        try:
            devices = await load_devices(self.session_factory)
        except Exception as e:
            logger.error("registry.refresh_failed", error=str(e), error_type=type(e).__name__)
            return None

        diff = self.registry.replace_all(devices)
        for device_id in diff.removed:
            self.aggregator.forget(device_id)
        self.scheduler.sync()
        return diff

    async def _refresh_loop(self) -> None:
        while True:
            await asyncio.sleep(self.config.registry_refresh_s)
            await self.refresh_registry()

    async def start(self) -> None:
        await self.refresh_registry()
        self.scheduler.start()
        if self.session_factory is not None:
            self._refresh_task = asyncio.create_task(self._refresh_loop(), name="registry-refresh")
        logger.info("service.started", device_count=len(self.registry))

    async def stop(self) -> None:
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            await asyncio.gather(self._refresh_task, return_exceptions=True)
            self._refresh_task = None
        await self.scheduler.stop()
        logger.info("service.stopped")

    def devices(self) -> List[DeviceSummary]:
        summaries = []
        for device in self.registry.all():
            state = self.aggregator.snapshot(device.id)
            summaries.append(DeviceSummary(
                id=device.id,
                name=device.name,
                brand=device.brand,
                host=device.host,
                protocol=device.protocol,
                poll_interval_s=self.scheduler.interval_for(device),
                status=state.status.value if state else "unknown",
                in_flight=self.scheduler.is_in_flight(device.id),
            ))
        return summaries

    async def test_connection(self, device: DeviceConfig) -> ConnectionTestResult:
        """
        Check that a device answers on its protocol, without polling it.

        The device does not have to be registered. Transport failures are
        reported in the result rather than raised.

        Raises:
            UnsupportedProtocolError: no transport exists for the protocol
        """
        transport = self.transports.for_device(device)
        timeout = device.timeout_s or self.config.connection_test_timeout_s
        started = time.monotonic()
        error = None
        try:
            await transport.check_reachable(device, timeout)
        except UnsupportedProtocolError:
            raise
        except TransportError as e:
            error = str(e)
        except Exception as e:
            logger.error("service.connection_test_error", host=device.host, error=str(e), exc_info=True)
            error = f"{type(e).__name__}: {e}"

        result = ConnectionTestResult(
            success=error is None,
            host=device.host,
            port=device.port or transport.default_port,
            protocol=device.protocol,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
            error=error,
        )
        logger.info(
            "service.connection_tested",
            host=device.host,
            protocol=device.protocol,
            success=result.success,
            error=error,
            duration_ms=result.duration_ms,
        )
        return result
