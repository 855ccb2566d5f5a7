from fastapi import HTTPException, Request, status

from oltpoller.services.polling_service import PollingService


def get_service(request: Request) -> PollingService:
    """
    Dependency returning the polling service started by the app lifespan.

    Raises:
        HTTPException 503: if the service is not running yet
    """
    service = getattr(request.app.state, "service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Polling service not started"
        )
    return service
