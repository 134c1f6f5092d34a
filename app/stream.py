"""Server-Sent Events endpoint that keeps dashboards in sync with new readings."""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Mapping

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from services.broadcast import BroadcastHub, build_default_hub
from settings import get_settings

router = APIRouter()

KEEPALIVE_FRAME = ": keep-alive\n\n"

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def get_hub() -> BroadcastHub:
    return build_default_hub()


def format_event(message: Mapping[str, Any]) -> str:
    return f"data: {json.dumps(message)}\n\n"


async def event_stream(
    request: Request,
    hub: BroadcastHub,
    keepalive: float,
) -> AsyncIterator[str]:
    """Yield SSE frames for one client until it disconnects or is evicted.

    The subscriber is always released, whichever way the loop ends.
    """
    subscriber = await hub.subscribe()
    try:
        while not subscriber.closed:
            if await request.is_disconnected():
                break
            try:
                message = await subscriber.next_event(timeout=keepalive)
            except asyncio.TimeoutError:
                yield KEEPALIVE_FRAME
                continue
            if message is None:
                break
            yield format_event(message)
    finally:
        # Starlette cancels this generator when the client goes away; the
        # shield lets the removal finish even then.
        await asyncio.shield(hub.unsubscribe(subscriber))


@router.get("/api/dashboard/stream", summary="Live stream of new readings (text/event-stream).")
async def live_updates(
    request: Request,
    hub: BroadcastHub = Depends(get_hub),
) -> StreamingResponse:
    keepalive = get_settings().stream_keepalive_seconds
    return StreamingResponse(
        event_stream(request, hub, keepalive),
        media_type="text/event-stream",
        headers=SSE_HEADERS,
    )
