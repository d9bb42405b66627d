# electzone/realtime.py
# In-process change feed for dashboard refresh (votes inserted, voters updated)
import asyncio
import logging
from typing import Any, Dict, Optional, Set

logger = logging.getLogger(__name__)


class ChangeFeed:
    """
    Fan-out of table change events to subscribers.

    Each subscriber gets its own bounded queue. A subscriber that stops reading
    loses events instead of blocking the publisher; the dashboard reloads its
    numbers on every event, so a dropped one only delays a refresh.
    """

    def __init__(self, max_queue: int = 100):
        self.max_queue = max_queue
        self._subscribers: Set[asyncio.Queue] = set()

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.max_queue)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, table: str, event: str, record: Optional[Dict[str, Any]] = None) -> None:
        message = {"table": table, "event": event, "record": record or {}}
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                logger.warning(f"Change feed subscriber is full, dropping {table}:{event}")


feed = ChangeFeed()
