"""Fan-out of emitted records to realtime subscribers."""

import asyncio
from typing import Set
import structlog

logger = structlog.get_logger()


class SwapBroadcaster:
    """Per-subscriber bounded queues; a full queue drops the record."""

    def __init__(self, queue_size: int = 256):
        self.queue_size = queue_size
        self._subscribers: Set[asyncio.Queue] = set()
        self.published = 0
        self.dropped = 0

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers.add(queue)
        logger.info("Broadcast subscriber added", subscribers=len(self._subscribers))
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        self._subscribers.discard(queue)
        logger.info("Broadcast subscriber removed", subscribers=len(self._subscribers))

    def publish(self, record: str) -> int:
        """Queue ``record`` for every subscriber, return how many got it."""
        delivered = 0
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(record)
                delivered += 1
            except asyncio.QueueFull:
                self.dropped += 1
        self.published += 1
        return delivered
