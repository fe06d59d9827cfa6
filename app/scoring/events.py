"""
In-process broadcast channel for :class:`ScoreUpdated` events.

Each subscriber owns an ``asyncio.Queue``; publishing never blocks.  A
subscriber that falls ``maxsize`` events behind loses its oldest event.
"""

from __future__ import annotations

import asyncio

from app.core.logging import get_logger
from app.schemas.events import ScoreUpdated

logger = get_logger(__name__)


class EventChannel:
    def __init__(self, maxsize: int = 100):
        self.maxsize = maxsize
        self._subscribers: list[asyncio.Queue[ScoreUpdated]] = []

    def subscribe(self) -> asyncio.Queue[ScoreUpdated]:
        queue: asyncio.Queue[ScoreUpdated] = asyncio.Queue(maxsize=self.maxsize)
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ScoreUpdated]) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def publish(self, event: ScoreUpdated) -> None:
        for queue in list(self._subscribers):
            if queue.full():
                queue.get_nowait()
                logger.warning("event_dropped", date=str(event.date), kind=event.kind.value)
            queue.put_nowait(event)
