import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from app.core.auth import Actor
from app.core.security import get_actor
from app.services.realtime import RealtimeHub, get_realtime_hub

router = APIRouter()
logger = logging.getLogger(__name__)

KEEPALIVE_SECONDS = 15.0


@router.get("/stream")
async def stream_notifications(
    request: Request,
    actor: Actor = Depends(get_actor),
    hub: RealtimeHub = Depends(get_realtime_hub),
) -> StreamingResponse:
    queue = hub.subscribe(actor.user_id)
    return StreamingResponse(
        event_stream(
            hub,
            actor.user_id,
            queue,
            is_disconnected=request.is_disconnected,
            keepalive_seconds=KEEPALIVE_SECONDS,
        ),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


async def event_stream(
    hub: RealtimeHub,
    user_id: int,
    queue: asyncio.Queue[dict[str, Any]],
    *,
    is_disconnected: Callable[[], Awaitable[bool]],
    keepalive_seconds: float,
) -> AsyncIterator[str]:
    """Relay hub events for one subscriber as server-sent events."""
    try:
        yield ": connected\n\n"
        while not await is_disconnected():
            try:
                payload = await asyncio.wait_for(queue.get(), timeout=keepalive_seconds)
            except asyncio.TimeoutError:
                yield ": keepalive\n\n"
                continue
            yield format_event(payload)
    finally:
        hub.unsubscribe(user_id, queue)
        logger.info("notification stream closed user_id=%s", user_id)


def format_event(payload: dict[str, Any]) -> str:
    event_name = payload.get("event", "notification")
    body = json.dumps(payload, default=str, separators=(",", ":"))
    return f"event: {event_name}\ndata: {body}\n\n"
