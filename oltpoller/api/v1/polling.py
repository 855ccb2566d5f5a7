from fastapi import APIRouter, Depends, HTTPException, status

from oltpoller.core.dependencies import get_service
from oltpoller.core.exceptions import PollInProgressError, UnknownDeviceError, UnsupportedProtocolError
from oltpoller.core.logging import get_logger
from oltpoller.schemas import ConnectionTestRequest
from oltpoller.services.polling_service import PollingService


router = APIRouter(tags=["Polling"])
logger = get_logger(__name__)


@router.post("/poll/{device_id}", response_model=dict)
async def poll_device_now(device_id: int, service: PollingService = Depends(get_service)):
    """
    Poll one device immediately and return the result.

    - 404 if the device is not registered
    - 409 if the device is being polled right now
    """
    try:
        sample = await service.scheduler.trigger(device_id)
    except UnknownDeviceError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="OLT not found"
        )
    except PollInProgressError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="OLT is already being polled"
        )

    return {
        "data": {
            "device_id": device_id,
            "success": sample.success,
            "onu_count": len(sample.onus),
            "duration_ms": sample.duration_ms,
            "error": sample.error,
        }
    }


@router.post("/poll-all", status_code=status.HTTP_202_ACCEPTED, response_model=dict)
async def poll_all(service: PollingService = Depends(get_service)):
    """Start polling every device in the background. 409 if a poll-all is running."""
    try:
        service.scheduler.start_poll_all()
    except PollInProgressError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Polling already in progress"
        )

    logger.info("api.poll_all_started", device_count=len(service.registry))
    return {"data": {"message": "Polling started", "device_count": len(service.registry)}}


@router.post("/test-connection", response_model=dict)
async def test_connection(payload: ConnectionTestRequest, service: PollingService = Depends(get_service)):
    """
    Check that an OLT is reachable before it is added.

    Always 200 with success=false and the error for unreachable devices;
    422 for a protocol with no transport.
    """
    try:
        result = await service.test_connection(payload.to_device())
    except UnsupportedProtocolError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e)
        )

    return {"data": result.model_dump()}
