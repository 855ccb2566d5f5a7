import asyncio
import time
from datetime import datetime, timezone

from oltpoller.core.exceptions import TransportError
from oltpoller.core.logging import get_logger
from oltpoller.polling.transports import TransportFactory
from oltpoller.schemas import DeviceConfig, Sample

logger = get_logger(__name__)


async def poll_device(device: DeviceConfig, transports: TransportFactory) -> Sample:
    """
    Poll one device once and return a Sample.

    Never raises for device failures. Transport errors and unexpected
    exceptions produce a failed Sample carrying the error text, so a
    broken OLT cannot take down its poll loop. Cancellation propagates.

    Args:
        device: Registry entry for the OLT
        transports: Factory resolving the device's protocol to a transport

    Returns:
        Sample with the ONU readings, or success=False and error set
    """
    started = time.monotonic()
    timestamp = datetime.now(timezone.utc)

    try:
        transport = transports.for_device(device)
        onus = await transport.collect(device)
    except asyncio.CancelledError:
        raise
    except TransportError as e:
        duration_ms = round((time.monotonic() - started) * 1000, 2)
        logger.warning(
            "poll.failed",
            device_id=device.id,
            device_name=device.name,
            host=device.host,
            error=str(e),
            error_type=type(e).__name__,
            duration_ms=duration_ms,
        )
        return Sample(
            device_id=device.id,
            timestamp=timestamp,
            success=False,
            duration_ms=duration_ms,
            error=str(e),
        )
    except Exception as e:
        duration_ms = round((time.monotonic() - started) * 1000, 2)
        logger.error(
            "poll.unexpected_error",
            device_id=device.id,
            device_name=device.name,
            error=str(e),
            error_type=type(e).__name__,
            exc_info=True,
        )
        return Sample(
            device_id=device.id,
            timestamp=timestamp,
            success=False,
            duration_ms=duration_ms,
            error=f"{type(e).__name__}: {e}",
        )

    sample = Sample(
        device_id=device.id,
        timestamp=timestamp,
        success=True,
        duration_ms=round((time.monotonic() - started) * 1000, 2),
        onus=onus,
    )
    logger.info(
        "poll.completed",
        device_id=device.id,
        device_name=device.name,
        onu_count=len(onus),
        duration_ms=sample.duration_ms,
    )
    return sample
