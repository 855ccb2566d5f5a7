"""
Unit tests for the poll scheduler.
"""
import asyncio

import pytest

from oltpoller.core.exceptions import PollInProgressError, TransportError, UnknownDeviceError
from oltpoller.polling.registry import DeviceRegistry
from oltpoller.polling.scheduler import PollScheduler, next_due_time, stagger_offsets
from tests.conftest import make_device, make_onu


async def settle(rounds: int = 5) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def handled():
    return []


@pytest.fixture
async def make_scheduler(transports, handled):
    created = []

    def factory(devices, **kwargs):
        async def on_sample(device, sample):
            handled.append((device.id, sample))

        options = {"default_interval_s": 60.0, "max_concurrent": 4, "initial_delay_s": 0.0}
        options.update(kwargs)
        scheduler = PollScheduler(DeviceRegistry(devices), transports, on_sample, **options)
        created.append(scheduler)
        return scheduler

    yield factory

    for scheduler in created:
        if scheduler.running:
            await scheduler.stop()


class TestTiming:

    def test_next_due_time_on_schedule(self):
        assert next_due_time(100.0, 10.0, 101.0) == 110.0

    def test_next_due_time_skips_missed_ticks(self):
        # The poll overran three intervals; resume on the grid, no burst
        assert next_due_time(100.0, 10.0, 135.0) == 140.0

    def test_next_due_time_exact_boundary_moves_forward(self):
        assert next_due_time(100.0, 10.0, 110.0) == 120.0

    def test_stagger_offsets_spread_over_window(self):
        assert stagger_offsets(4, 5.0) == [1.25, 2.5, 3.75, 5.0]
        assert stagger_offsets(0, 5.0) == []

    async def test_interval_falls_back_to_default(self, make_scheduler):
        scheduler = make_scheduler([], default_interval_s=60.0)

        assert scheduler.interval_for(make_device(1)) == 60.0
        assert scheduler.interval_for(make_device(2, poll_interval_s=15.0)) == 15.0


class TestManualTrigger:

    async def test_trigger_polls_and_hands_over_sample(self, make_scheduler, fake_transport, handled):
        fake_transport.readings[1] = [make_onu()]
        scheduler = make_scheduler([make_device(1)])

        sample = await scheduler.trigger(1)

        assert sample.success
        assert len(sample.onus) == 1
        assert handled == [(1, sample)]

    async def test_unknown_device(self, make_scheduler):
        scheduler = make_scheduler([make_device(1)])

        with pytest.raises(UnknownDeviceError):
            await scheduler.trigger(99)

    async def test_trigger_while_in_flight_is_rejected(self, make_scheduler, fake_transport):
        fake_transport.gate = asyncio.Event()
        scheduler = make_scheduler([make_device(1)])

        first = asyncio.create_task(scheduler.trigger(1))
        await settle()
        assert scheduler.is_in_flight(1)

        with pytest.raises(PollInProgressError):
            await scheduler.trigger(1)

        fake_transport.gate.set()
        await first
        assert fake_transport.calls == [1]
        assert not scheduler.is_in_flight(1)

    async def test_scheduled_tick_is_skipped_while_in_flight(self, make_scheduler, fake_transport):
        fake_transport.gate = asyncio.Event()
        device = make_device(1)
        scheduler = make_scheduler([device])

        manual = asyncio.create_task(scheduler.trigger(1))
        await settle()

        assert await scheduler._poll_once(device, manual=False) is None

        fake_transport.gate.set()
        await manual
        assert fake_transport.calls == [1]

    async def test_transport_failure_is_recorded_not_raised(self, make_scheduler, fake_transport):
        fake_transport.errors[1] = TransportError("Connection refused")
        scheduler = make_scheduler([make_device(1)])

        sample = await scheduler.trigger(1)

        assert not sample.success
        status = scheduler.status()
        assert status["last_results"][1]["success"] is False
        assert status["recent_errors"][0]["error"] == "Connection refused"

    async def test_handler_failure_does_not_escape(self, transports):
        async def broken(device, sample):
            raise RuntimeError("sink exploded")

        scheduler = PollScheduler(
            DeviceRegistry([make_device(1)]), transports, broken, default_interval_s=60.0
        )

        sample = await scheduler.trigger(1)
        assert sample.success


class TestPollAll:

    async def test_polls_every_device(self, make_scheduler, fake_transport):
        scheduler = make_scheduler([make_device(i) for i in (1, 2, 3)])

        results = await scheduler.poll_all()

        assert set(results) == {1, 2, 3}
        assert sorted(fake_transport.calls) == [1, 2, 3]
        assert scheduler.status()["last_poll_all"] is not None
        assert not scheduler.poll_all_running

    async def test_concurrent_poll_all_is_rejected(self, make_scheduler, fake_transport):
        fake_transport.gate = asyncio.Event()
        scheduler = make_scheduler([make_device(1)])

        task = scheduler.start_poll_all()
        assert scheduler.poll_all_running

        with pytest.raises(PollInProgressError):
            scheduler.start_poll_all()
        with pytest.raises(PollInProgressError):
            await scheduler.poll_all()

        fake_transport.gate.set()
        await task
        assert not scheduler.poll_all_running

    async def test_concurrency_cap(self, make_scheduler, fake_transport):
        fake_transport.gate = asyncio.Event()
        scheduler = make_scheduler([make_device(i) for i in range(1, 7)], max_concurrent=2)

        task = scheduler.start_poll_all()
        await settle(10)
        assert fake_transport.active == 2

        fake_transport.gate.set()
        await task
        assert fake_transport.max_active == 2
        assert len(fake_transport.calls) == 6


class TestLoops:

    async def test_devices_poll_on_their_own_interval(self, make_scheduler, fake_transport):
        fast = make_device(1, poll_interval_s=0.05)
        slow = make_device(2, poll_interval_s=30.0)
        scheduler = make_scheduler([fast, slow], initial_delay_s=0.0)

        scheduler.start()
        await asyncio.sleep(0.3)
        await scheduler.stop()

        assert fake_transport.calls.count(1) >= 3
        assert fake_transport.calls.count(2) == 1
        assert fake_transport.max_active <= 2

    async def test_no_overlap_when_poll_outlasts_interval(self, make_scheduler, fake_transport):
        fake_transport.gate = asyncio.Event()
        scheduler = make_scheduler([make_device(1, poll_interval_s=0.01)])

        scheduler.start()
        await asyncio.sleep(0.1)

        assert fake_transport.calls == [1]
        assert fake_transport.max_active == 1

        fake_transport.gate.set()
        await scheduler.stop()

    async def test_sync_follows_registry(self, make_scheduler):
        scheduler = make_scheduler([make_device(1), make_device(2)], initial_delay_s=10.0)
        scheduler.start()
        assert set(scheduler._loops) == {1, 2}

        first_loop = scheduler._loops[1]
        scheduler.registry.replace_all([make_device(1, poll_interval_s=5.0), make_device(3)])
        scheduler.sync()
        await settle()

        assert set(scheduler._loops) == {1, 3}
        assert first_loop.cancelled()
        assert scheduler._loop_devices[1].poll_interval_s == 5.0

        await scheduler.stop()
        assert scheduler._loops == {}
        assert not scheduler.running

    async def test_removed_device_releases_its_lock(self, make_scheduler):
        scheduler = make_scheduler([make_device(1), make_device(2)], initial_delay_s=10.0)
        scheduler.start()
        await scheduler.trigger(2)
        assert 2 in scheduler._locks

        scheduler.registry.replace_all([make_device(1)])
        scheduler.sync()

        assert 2 not in scheduler._locks

    async def test_lock_of_removed_device_kept_while_polling(self, make_scheduler, fake_transport):
        fake_transport.gate = asyncio.Event()
        scheduler = make_scheduler([make_device(1), make_device(2)], initial_delay_s=10.0)
        scheduler.start()
        poll = asyncio.create_task(scheduler.trigger(2))
        await settle()

        scheduler.registry.replace_all([make_device(1)])
        scheduler.sync()
        assert scheduler.is_in_flight(2)

        fake_transport.gate.set()
        await poll
        scheduler.sync()
        assert 2 not in scheduler._locks

    async def test_sync_before_start_does_nothing(self, make_scheduler):
        scheduler = make_scheduler([make_device(1)])
        scheduler.sync()
        assert scheduler._loops == {}
