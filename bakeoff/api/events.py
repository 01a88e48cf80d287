import asyncio
import logging
import time
from typing import AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import StreamingResponse
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select

from bakeoff.core.config import get_settings
from bakeoff.core.database import get_db
from bakeoff.core.events import EventBroker, format_sse, get_broker
from bakeoff.models.models import Season

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/seasons/{season_id}", tags=["Live updates"])


def _control(event_type: str, season_id: int) -> dict:
    return {
        "type": event_type,
        "data": {},
        "season_id": season_id,
        "timestamp": int(time.time() * 1000),
    }


async def event_stream(
    broker: EventBroker,
    season_id: int,
    ping_seconds: float,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[str]:
    """SSE frames for one client: a greeting, then events, with pings when quiet."""
    queue = broker.subscribe(season_id)
    try:
        yield format_sse(_control("connected", season_id))
        while True:
            if is_disconnected is not None and await is_disconnected():
                break
            try:
                message = await asyncio.wait_for(queue.get(), timeout=ping_seconds)
            except asyncio.TimeoutError:
                message = _control("ping", season_id)
            yield format_sse(message)
    finally:
        broker.unsubscribe(queue)
        logger.debug("Live update client for season %s went away", season_id)


@router.get("/events")
async def season_events(
    season_id: int,
    request: Request,
    db: AsyncSession = Depends(get_db),
    broker: EventBroker = Depends(get_broker),
):
    """Server-sent events for a season: picks_updated, scores_updated, elimination_updated."""
    result = await db.execute(select(Season).where(Season.id == season_id))
    if not result.scalar_one_or_none():
        raise HTTPException(status_code=404, detail="Season not found")

    return StreamingResponse(
        event_stream(broker, season_id, get_settings().event_ping_seconds, request.is_disconnected),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )
