"""
Publisher.

Fans state events out to in-process subscribers and hands every poll
result to the configured sinks. Sinks are isolated from each other and
from the poll loop: a failing sink is logged and counted, nothing more.
"""
import asyncio
from typing import List, Optional, Protocol, Sequence, Set

from oltpoller.api.v1.metrics import onus_online, sink_failures_total, state_events_total
from oltpoller.core.logging import get_logger
from oltpoller.schemas import DeviceConfig, DeviceState, Sample, StateEvent

logger = get_logger(__name__)


class Sink(Protocol):
    name: str

    async def handle(
        self,
        device: DeviceConfig,
        sample: Sample,
        state: DeviceState,
        events: List[StateEvent],
    ) -> None:
        ...


class Publisher:

    def __init__(self, sinks: Sequence[Sink] = (), queue_size: int = 100):
        self.sinks = list(sinks)
        self.queue_size = queue_size
        self._subscribers: Set[asyncio.Queue] = set()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    def broadcast(self, event: StateEvent) -> None:
        """Deliver to every subscriber; a full queue loses its oldest event."""
        for queue in list(self._subscribers):
            if queue.full():
                try:
                    queue.get_nowait()
                except asyncio.QueueEmpty:
                    pass
                logger.debug("publisher.subscriber_lagging", queue_size=self.queue_size)
            queue.put_nowait(event)

    async def publish(
        self,
        device: DeviceConfig,
        sample: Sample,
        state: Optional[DeviceState],
        events: List[StateEvent],
    ) -> None:
        for event in events:
            state_events_total.labels(type=event.type.value, severity=event.severity.value).inc()
            self.broadcast(event)

        if state is None:
            return
        onus_online.labels(device_id=str(device.id)).set(state.metrics.online_count)
        if not self.sinks:
            return

        await asyncio.gather(
            *(self._run_sink(sink, device, sample, state, events) for sink in self.sinks)
        )

    async def _run_sink(
        self,
        sink: Sink,
        device: DeviceConfig,
        sample: Sample,
        state: DeviceState,
        events: List[StateEvent],
    ) -> None:
        try:
            await sink.handle(device, sample, state, events)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            sink_failures_total.labels(sink=sink.name).inc()
            logger.error(
                "publisher.sink_failed",
                sink=sink.name,
                device_id=device.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            # Do NOT raise: losing one sink write is acceptable, stopping the poll loop is not
