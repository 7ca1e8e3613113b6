"""Server-Sent Events stream of tree and sync events."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from ...services.context import ExplorerContext
from ..dependencies import get_context

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])

POLL_SECONDS = 1.0


@router.get("/api/events")
async def stream_events(request: Request, context: ExplorerContext = Depends(get_context)):
    """
    Stream live updates as Server-Sent Events.

    The first event is `init` with the full state. Later events are
    `update` (full state after a mutation), `progress` (sync status) and
    `error`.
    """
    state = await asyncio.to_thread(context.tree_store.snapshot)
    subscription = context.bus.subscribe(state)

    async def event_generator() -> AsyncGenerator[dict, None]:
        try:
            while True:
                event = await asyncio.to_thread(subscription.get, POLL_SECONDS)
                if event is None:
                    if subscription.closed or await request.is_disconnected():
                        break
                    continue
                yield {"event": event.type, "data": json.dumps(event.data)}
        finally:
            context.bus.unsubscribe(subscription)

    return EventSourceResponse(event_generator())


__all__ = ["router"]
