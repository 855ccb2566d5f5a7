"""Sinks that persist poll results outside the process."""
from typing import Awaitable, Callable, List

from influxdb_client import Point
from redis.asyncio import Redis
from sqlalchemy.ext.asyncio import async_sessionmaker

from oltpoller.core.logging import get_logger
from oltpoller.repositories import alert_repo, olt_repo, onu_repo
from oltpoller.schemas import DeviceConfig, DeviceState, DeviceStatus, Sample, Severity, StateEvent

logger = get_logger(__name__)

ALERT_SEVERITIES = (Severity.WARNING, Severity.CRITICAL)


def state_cache_key(device_id: int) -> str:
    return f"olt:state:{device_id}"


class RedisSink:
    """Publishes events on a channel and caches each device snapshot with a TTL."""

    name = "redis"

    def __init__(self, redis: Redis, channel: str, ttl_s: int):
        self.redis = redis
        self.channel = channel
        self.ttl_s = ttl_s

    async def handle(
        self,
        device: DeviceConfig,
        sample: Sample,
        state: DeviceState,
        events: List[StateEvent],
    ) -> None:
        for event in events:
            await self.redis.publish(self.channel, event.model_dump_json())

        await self.redis.setex(state_cache_key(device.id), self.ttl_s, state.model_dump_json())
        logger.debug("redis.state_cached", device_id=device.id, event_count=len(events))


class DatabaseSink:
    """
    Writes current state to MySQL.

    - `olts`: status, last_polled, active_ports (online ONU count)
    - `onus`: upsert of every ONU reported by the sample
    - `alerts`: one row per warning or critical event
    """

    name = "database"

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def handle(
        self,
        device: DeviceConfig,
        sample: Sample,
        state: DeviceState,
        events: List[StateEvent],
    ) -> None:
        async with self.session_factory() as db:
            if sample.success:
                await olt_repo.update_status(
                    db,
                    device.id,
                    status=DeviceStatus.ONLINE.value,
                    last_polled=sample.timestamp,
                    active_ports=state.metrics.online_count,
                )
                # One row per key even if the device listed an ONU twice
                reported = {onu.key: state.onus[onu.key] for onu in sample.onus if onu.key in state.onus}
                inserted, updated = await onu_repo.upsert_many(db, device.id, reported.values())
            else:
                # Offline only once the aggregator says so
                await olt_repo.update_status(
                    db,
                    device.id,
                    status=state.status.value if state.status != DeviceStatus.UNKNOWN else "offline",
                    last_polled=sample.timestamp,
                )
                inserted = updated = 0

            alerts = 0
            for event in events:
                if event.severity in ALERT_SEVERITIES:
                    await alert_repo.create_from_event(db, event)
                    alerts += 1

            await db.commit()

        logger.debug(
            "database.state_written",
            device_id=device.id,
            onus_inserted=inserted,
            onus_updated=updated,
            alerts=alerts,
        )


def build_points(device: DeviceConfig, sample: Sample) -> List[Point]:
    """
    Build InfluxDB points for one sample.

    - `olt_poll`: one point per poll with counts, duration and success
    - `onu_optical`: one point per ONU that reported optical power
    """
    metrics = sample.metrics()
    points = [
        Point("olt_poll")
        .tag("device_id", str(device.id))
        .tag("brand", device.brand)
        .field("success", sample.success)
        .field("duration_ms", float(sample.duration_ms))
        .field("onu_count", metrics.onu_count)
        .field("online_count", metrics.online_count)
        .field("offline_count", metrics.offline_count)
        .time(sample.timestamp)
    ]

    for onu in sample.onus:
        if onu.rx_power is None and onu.tx_power is None:
            continue
        point = (
            Point("onu_optical")
            .tag("device_id", str(device.id))
            .tag("pon_port", onu.pon_port)
            .tag("onu_index", str(onu.onu_index))
            .tag("serial_number", onu.serial_number)
            .time(sample.timestamp)
        )
        if onu.rx_power is not None:
            point = point.field("rx_power", float(onu.rx_power))
        if onu.tx_power is not None:
            point = point.field("tx_power", float(onu.tx_power))
        points.append(point)

    return points


class InfluxSink:
    """Writes poll counts and per-ONU optical power to InfluxDB."""

    name = "influxdb"

    def __init__(self, write: Callable[[List[Point]], Awaitable[None]]):
        self.write = write

    async def handle(
        self,
        device: DeviceConfig,
        sample: Sample,
        state: DeviceState,
        events: List[StateEvent],
    ) -> None:
        points = build_points(device, sample)
        await self.write(points)
        logger.debug("influx.batch_written", device_id=device.id, point_count=len(points))
