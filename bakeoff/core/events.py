"""
Live updates: in-process publish/subscribe for score and pick changes.

The scoring services never touch connections. Routers call
``broker.publish(...)`` after their transaction commits, and the SSE
endpoint owns one subscriber queue per connected client. Delivery is
best-effort: a slow or gone subscriber loses messages instead of
holding up the publisher.
"""

import asyncio
import json
import logging
import time
from functools import lru_cache

from bakeoff.core.config import get_settings

logger = logging.getLogger(__name__)


class EventBroker:
    def __init__(self, queue_size: int = 100):
        self.queue_size = queue_size
        # queue -> season_id it listens to (None = every season)
        self._subscribers: dict[asyncio.Queue, int | None] = {}

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, season_id: int | None = None) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[queue] = season_id
        logger.debug("Subscriber added for season %s (%d total)", season_id, len(self._subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.pop(queue, None)

    def publish(self, event_type: str, payload: dict, season_id: int | None = None) -> int:
        """Fan a message out to matching subscribers. Returns how many got it.

        Never blocks and never raises: a full queue drops the message.
        """
        message = {
            "type": event_type,
            "data": payload,
            "season_id": season_id,
            "timestamp": int(time.time() * 1000),
        }
        delivered = 0
        for queue, wanted in list(self._subscribers.items()):
            if wanted is not None and season_id is not None and wanted != season_id:
                continue
            try:
                queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                logger.debug("Dropping %s event for a slow subscriber", event_type)
        return delivered


def format_sse(message: dict) -> str:
    return f"data: {json.dumps(message, default=str)}\n\n"


@lru_cache()
def get_broker() -> EventBroker:
    return EventBroker(queue_size=get_settings().event_queue_size)


def safe_publish(broker: EventBroker, event_type: str, payload: dict, season_id: int | None = None) -> None:
    """Publish without letting a broadcast failure reach the caller."""
    try:
        broker.publish(event_type, payload, season_id)
    except Exception as e:
        logger.warning("Live update %s for season %s failed: %s", event_type, season_id, e)
