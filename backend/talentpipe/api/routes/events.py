from __future__ import annotations

import asyncio

from fastapi import APIRouter, Depends, Request
from fastapi.responses import StreamingResponse

from talentpipe.api import deps
from talentpipe.schemas.user import UserContext
from talentpipe.services.event_bus import EventBus

router = APIRouter(tags=["events"])

PING_SECONDS = 15


@router.get("/events/stream")
async def stream_events(
    request: Request,
    bus: EventBus = Depends(deps.get_event_bus),
    _user: UserContext = Depends(deps.get_user),
):
    queue = await bus.subscribe()

    async def event_generator():
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    data = await asyncio.wait_for(queue.get(), timeout=PING_SECONDS)
                    yield f"data: {data}\n\n"
                except asyncio.TimeoutError:
                    yield "event: ping\ndata: {}\n\n"
        finally:
            await bus.unsubscribe(queue)

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )
