"""
Poll scheduler.

Runs one asyncio task per registered device. Each task wakes on its
device's own fixed-rate interval, polls through the shared transports and
hands the Sample to a callback (the aggregator and publisher pipeline).

Guarantees:
- A device is never polled twice at once (per-device lock)
- At most `max_concurrent` polls run at a time (global semaphore)
- Missed ticks are skipped, never replayed in a burst
- First polls are spread across the initial delay window
"""
import asyncio
import time
from collections import deque
from datetime import datetime, timezone
from typing import Awaitable, Callable, Deque, Dict, List, Optional, Set

from oltpoller.api.v1.metrics import (
    poll_duration_seconds,
    polls_in_flight,
    polls_skipped_total,
    polls_total,
    registered_devices,
)
from oltpoller.core.exceptions import PollInProgressError, UnknownDeviceError
from oltpoller.core.logging import get_logger
from oltpoller.polling.poller import poll_device
from oltpoller.polling.registry import DeviceRegistry
from oltpoller.polling.transports import TransportFactory
from oltpoller.schemas import DeviceConfig, Sample

logger = get_logger(__name__)

SampleHandler = Callable[[DeviceConfig, Sample], Awaitable[None]]
PollFunc = Callable[[DeviceConfig, TransportFactory], Awaitable[Sample]]

MAX_RECENT_ERRORS = 50


def next_due_time(previous_due: float, interval: float, now: float) -> float:
    """
    Next fixed-rate deadline after `previous_due`.

    Deadlines already in the past are dropped, so a poll that overran
    several intervals resumes on the grid instead of firing back to back.
    """
    next_due = previous_due + interval
    while next_due <= now:
        next_due += interval
    return next_due


def stagger_offsets(count: int, window: float) -> List[float]:
    """Spread `count` first polls evenly over (0, window]."""
    if count <= 0:
        return []
    return [window * (i + 1) / count for i in range(count)]


class PollScheduler:

    def __init__(
        self,
        registry: DeviceRegistry,
        transports: TransportFactory,
        on_sample: SampleHandler,
        *,
        default_interval_s: float,
        max_concurrent: int = 4,
        initial_delay_s: float = 5.0,
        poll: PollFunc = poll_device,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.registry = registry
        self.transports = transports
        self.on_sample = on_sample
        self.default_interval_s = default_interval_s
        self.max_concurrent = max_concurrent
        self.initial_delay_s = initial_delay_s
        self._poll = poll
        self._clock = clock

        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._locks: Dict[int, asyncio.Lock] = {}
        self._loops: Dict[int, asyncio.Task] = {}
        self._loop_devices: Dict[int, DeviceConfig] = {}
        self._background: Set[asyncio.Task] = set()

        self._running = False
        self._poll_all_running = False
        self._last_poll_all: Optional[datetime] = None
        self._last_results: Dict[int, dict] = {}
        self._recent_errors: Deque[dict] = deque(maxlen=MAX_RECENT_ERRORS)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def poll_all_running(self) -> bool:
        return self._poll_all_running

    def interval_for(self, device: DeviceConfig) -> float:
        return device.poll_interval_s or self.default_interval_s

    def start(self) -> None:
        """Start a loop for every registered device."""
        if self._running:
            return
        self._running = True
        logger.info(
            "scheduler.started",
            device_count=len(self.registry),
            default_interval_s=self.default_interval_s,
            max_concurrent=self.max_concurrent,
        )
        self.sync()

    async def stop(self) -> None:
        """Cancel every loop and background poll and wait for them to finish."""
        self._running = False
        tasks = list(self._loops.values()) + list(self._background)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._loops.clear()
        self._loop_devices.clear()
        self._background.clear()
        logger.info("scheduler.stopped")

    def sync(self) -> None:
        """
        Reconcile running loops with the registry.

        New devices get a loop, removed devices lose theirs, and devices
        whose config changed are restarted with the new config.
        """
        if not self._running:
            return

        current = {device.id: device for device in self.registry.all()}
        registered_devices.set(len(current))

        for device_id in list(self._loops):
            device = current.get(device_id)
            if device is None:
                self._cancel_loop(device_id)
                self._last_results.pop(device_id, None)
                logger.info("scheduler.device_removed", device_id=device_id)
            elif device != self._loop_devices[device_id]:
                self._cancel_loop(device_id)
                logger.info("scheduler.device_changed", device_id=device_id)

        # A held lock belongs to a poll still finishing; it is dropped on a later sync
        for device_id in [d for d, lock in self._locks.items() if d not in current and not lock.locked()]:
            del self._locks[device_id]

        to_start = [device for device_id, device in current.items() if device_id not in self._loops]
        for device, offset in zip(to_start, stagger_offsets(len(to_start), self.initial_delay_s)):
            self._loops[device.id] = asyncio.create_task(
                self._run_loop(device, offset), name=f"poll-loop-{device.id}"
            )
            self._loop_devices[device.id] = device
            logger.info(
                "scheduler.device_added",
                device_id=device.id,
                device_name=device.name,
                interval_s=self.interval_for(device),
                first_poll_in_s=round(offset, 2),
            )

    def _cancel_loop(self, device_id: int) -> None:
        task = self._loops.pop(device_id, None)
        self._loop_devices.pop(device_id, None)
        if task is not None:
            task.cancel()

    async def _run_loop(self, device: DeviceConfig, first_delay: float) -> None:
        interval = self.interval_for(device)
        next_due = self._clock() + first_delay
        while True:
            await asyncio.sleep(max(0.0, next_due - self._clock()))
            await self._poll_once(device, manual=False)
            next_due = next_due_time(next_due, interval, self._clock())

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def is_in_flight(self, device_id: int) -> bool:
        lock = self._locks.get(device_id)
        return lock is not None and lock.locked()

    async def _poll_once(self, device: DeviceConfig, manual: bool) -> Optional[Sample]:
        lock = self._locks.setdefault(device.id, asyncio.Lock())
        if lock.locked():
            if manual:
                raise PollInProgressError(f"Device {device.id} is already being polled")
            polls_skipped_total.inc()
            logger.info("scheduler.tick_skipped", device_id=device.id)
            return None

        async with lock:
            async with self._semaphore:
                polls_in_flight.inc()
                try:
                    sample = await self._poll(device, self.transports)
                finally:
                    polls_in_flight.dec()

            self._record(device, sample)
            try:
                await self.on_sample(device, sample)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.error(
                    "scheduler.sample_handler_failed",
                    device_id=device.id,
                    error=str(e),
                    exc_info=True,
                )
        return sample

    def _record(self, device: DeviceConfig, sample: Sample) -> None:
        result = "success" if sample.success else "failure"
        polls_total.labels(protocol=device.protocol, result=result).inc()
        poll_duration_seconds.labels(protocol=device.protocol).observe(sample.duration_ms / 1000)

        self._last_results[device.id] = {
            "success": sample.success,
            "timestamp": sample.timestamp.isoformat(),
            "duration_ms": sample.duration_ms,
            "onu_count": len(sample.onus),
            "error": sample.error,
        }
        if not sample.success:
            self._recent_errors.append({
                "device_id": device.id,
                "device_name": device.name,
                "error": sample.error,
                "timestamp": sample.timestamp.isoformat(),
            })

    async def trigger(self, device_id: int) -> Sample:
        """
        Poll one device now, outside its schedule.

        Raises:
            UnknownDeviceError: device is not registered
            PollInProgressError: device is being polled right now
        """
        device = self.registry.get(device_id)
        if device is None:
            raise UnknownDeviceError(f"Device {device_id} not found")
        logger.info("scheduler.manual_poll", device_id=device_id)
        return await self._poll_once(device, manual=True)

    async def poll_all(self) -> Dict[int, Optional[Sample]]:
        """
        Poll every registered device once and wait for the results.

        Devices already in flight are skipped (their result is None).

        Raises:
            PollInProgressError: a poll-all is already running
        """
        if self._poll_all_running:
            raise PollInProgressError("Polling already in progress")
        self._poll_all_running = True
        return await self._run_poll_all()

    def start_poll_all(self) -> asyncio.Task:
        """Start a poll-all in the background. Raises PollInProgressError if one is running."""
        if self._poll_all_running:
            raise PollInProgressError("Polling already in progress")
        self._poll_all_running = True
        task = asyncio.create_task(self._run_poll_all(), name="poll-all")
        self._background.add(task)
        task.add_done_callback(self._background.discard)
        return task

    async def _run_poll_all(self) -> Dict[int, Optional[Sample]]:
        try:
            devices = self.registry.all()
            logger.info("scheduler.poll_all_started", device_count=len(devices))
            samples = await asyncio.gather(
                *(self._poll_once(device, manual=False) for device in devices)
            )
            self._last_poll_all = datetime.now(timezone.utc)
            results = {device.id: sample for device, sample in zip(devices, samples)}
            logger.info(
                "scheduler.poll_all_completed",
                device_count=len(devices),
                failed=sum(1 for s in samples if s is not None and not s.success),
            )
            return results
        finally:
            self._poll_all_running = False

    def status(self) -> dict:
        return {
            "running": self._running,
            "is_polling": self._poll_all_running,
            "device_count": len(self.registry),
            "in_flight": sorted(d for d, lock in self._locks.items() if lock.locked()),
            "last_poll_all": self._last_poll_all.isoformat() if self._last_poll_all else None,
            "default_interval_s": self.default_interval_s,
            "max_concurrent": self.max_concurrent,
            "last_results": dict(self._last_results),
            "recent_errors": list(self._recent_errors),
        }
