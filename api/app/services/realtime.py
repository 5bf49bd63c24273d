from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from functools import lru_cache
from typing import Any

from app.core.config import get_settings

logger = logging.getLogger(__name__)


class RealtimeHub:
    """Per-user subscriber queues for the live notification channel.

    Delivery is at-most-once: a user with no open subscription misses the
    event, and a subscriber whose queue is full has the event dropped.
    """

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = max(1, queue_size)
        self._subscribers: dict[int, list[asyncio.Queue[dict[str, Any]]]] = defaultdict(list)

    def subscribe(self, user_id: int) -> asyncio.Queue[dict[str, Any]]:
        queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue(maxsize=self.queue_size)
        self._subscribers[user_id].append(queue)
        logger.info("realtime subscriber added user_id=%s connections=%s", user_id, len(self._subscribers[user_id]))
        return queue

    def unsubscribe(self, user_id: int, queue: asyncio.Queue[dict[str, Any]]) -> None:
        queues = self._subscribers.get(user_id)
        if not queues or queue not in queues:
            return
        queues.remove(queue)
        if not queues:
            del self._subscribers[user_id]
        logger.info("realtime subscriber removed user_id=%s", user_id)

    def connection_count(self, user_id: int) -> int:
        return len(self._subscribers.get(user_id, ()))

    def publish(self, user_id: int, payload: dict[str, Any]) -> bool:
        queues = self._subscribers.get(user_id)
        if not queues:
            return False

        delivered = False
        for queue in list(queues):
            try:
                queue.put_nowait(payload)
                delivered = True
            except asyncio.QueueFull:
                logger.warning("realtime queue full; dropping event user_id=%s", user_id)
        return delivered


@lru_cache
def get_realtime_hub() -> RealtimeHub:
    return RealtimeHub(queue_size=get_settings().realtime_queue_size)
