"""Server-sent event stream of state transitions."""
import asyncio
from typing import AsyncIterator, Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import StreamingResponse

from oltpoller.core.dependencies import get_service
from oltpoller.services.polling_service import PollingService
from oltpoller.services.publisher import Publisher
from oltpoller.schemas import StateEvent


router = APIRouter(tags=["Events"])

KEEPALIVE_S = 15.0


def format_sse(event: StateEvent) -> str:
    return f"event: {event.type.value}\ndata: {event.model_dump_json()}\n\n"


async def event_stream(
    publisher: Publisher,
    request: Optional[Request] = None,
    max_events: Optional[int] = None,
    keepalive_s: float = KEEPALIVE_S,
) -> AsyncIterator[str]:
    queue = publisher.subscribe()
    sent = 0
    try:
        while max_events is None or sent < max_events:
            if request is not None and await request.is_disconnected():
                break
            try:
                event = await asyncio.wait_for(queue.get(), timeout=keepalive_s)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield format_sse(event)
            sent += 1
    finally:
        publisher.unsubscribe(queue)


@router.get("/events")
async def stream_events(
    request: Request,
    max_events: Optional[int] = Query(None, ge=1),
    service: PollingService = Depends(get_service),
):
    """Stream state events as they happen (text/event-stream)."""
    return StreamingResponse(
        event_stream(service.publisher, request, max_events),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
