from __future__ import annotations

import asyncio
import json
import logging

from fastapi import APIRouter, Depends, Request
from sse_starlette.sse import EventSourceResponse

from archive_pmn.auth import require_user
from archive_pmn.db.messages import list_member_channel_ids
from archive_pmn.db.users import UserRow
from archive_pmn.services import context_from_request

logger = logging.getLogger(__name__)

router = APIRouter(tags=["realtime"])

CURRENT_USER = Depends(require_user)

# How often the generator wakes up to notice a disconnected client.
POLL_SECONDS = 15.0


@router.get("/realtime")
async def realtime_stream(request: Request, user: UserRow = CURRENT_USER) -> EventSourceResponse:
    """Server-Sent Events stream of table changes visible to the current user."""

    ctx = context_from_request(request)
    channel_ids = list_member_channel_ids(ctx.db_path, user_id=user.user_id)

    async def event_generator():
        sub = ctx.feed.subscribe(user_id=user.user_id, channel_ids=channel_ids)
        logger.info("Realtime subscriber connected: %s", user.email)
        try:
            while True:
                if await request.is_disconnected():
                    break
                try:
                    change = await asyncio.wait_for(sub.queue.get(), timeout=POLL_SECONDS)
                except TimeoutError:
                    continue
                yield {
                    "event": change.table,
                    "data": json.dumps(change.to_dict(), ensure_ascii=False),
                }
        finally:
            ctx.feed.unsubscribe(sub)
            if sub.dropped:
                logger.info("Realtime subscriber %s missed %d events", user.email, sub.dropped)
            logger.info("Realtime subscriber disconnected: %s", user.email)

    return EventSourceResponse(event_generator())
