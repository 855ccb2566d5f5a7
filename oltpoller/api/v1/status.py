from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Request, status

from oltpoller.core.config import settings
from oltpoller.core.dependencies import get_service
from oltpoller.core.logging import get_logger
from oltpoller.services.polling_service import PollingService


router = APIRouter(tags=["Status"])
logger = get_logger(__name__)


@router.get("/status", response_model=dict)
async def get_status(request: Request, service: PollingService = Depends(get_service)):
    """
    Scheduler and process status.

    Includes in-flight devices, the last result per device, recent errors
    and the supervisor contract the process was started under.
    """
    process_spec = getattr(request.app.state, "process_spec", None)
    return {
        "data": {
            "scheduler": service.scheduler.status(),
            "polling_interval_ms": settings.polling_interval_ms,
            "subscribers": service.publisher.subscriber_count,
            "process": {
                "name": process_spec.name,
                "instances": process_spec.instances,
                "autorestart": process_spec.autorestart,
                "max_memory_restart": process_spec.max_memory_restart,
                "log_paths": process_spec.log_paths,
            } if process_spec else None,
            "server_time": datetime.now(timezone.utc).isoformat(),
        }
    }


@router.get("/devices", response_model=dict)
async def list_devices(service: PollingService = Depends(get_service)):
    """List registered devices with their current status."""
    devices = service.devices()
    return {"data": [d.model_dump() for d in devices], "total": len(devices)}


@router.get("/devices/{device_id}/state", response_model=dict)
async def get_device_state(device_id: int, service: PollingService = Depends(get_service)):
    """
    Aggregated state of one device.

    Returns 404 if the device is not registered. A registered device that
    has not been polled yet reports status "unknown".
    """
    device = service.registry.get(device_id)
    if device is None:
        logger.warning("device.not_found", device_id=device_id)
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Device not found"
        )

    state = service.aggregator.snapshot(device_id)
    if state is None:
        return {"data": {"device_id": device.id, "name": device.name, "status": "unknown", "onus": {}}}
    return {"data": state.model_dump(mode="json")}
