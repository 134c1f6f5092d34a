"""In-process fan-out of update events to live dashboard connections."""

from __future__ import annotations

import asyncio
import logging
from functools import lru_cache
from typing import Any, Dict, List, Mapping, Optional
from uuid import uuid4

from models.errors import SubscriberDeliveryError
from models.records import CONNECTED_MESSAGE
from settings import get_settings

logger = logging.getLogger(__name__)

Message = Dict[str, Any]


class Subscriber:
    """Opaque handle for one live connection, wrapping a bounded event queue.

    ``None`` on the queue is the end-of-stream marker written by ``close``.
    """

    def __init__(self, queue_size: int) -> None:
        self.id = uuid4().hex
        self._queue: asyncio.Queue[Optional[Message]] = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, message: Mapping[str, Any]) -> None:
        if self._closed:
            raise SubscriberDeliveryError(f"Subscriber {self.id} is closed.")
        try:
            self._queue.put_nowait(dict(message))
        except asyncio.QueueFull as exc:
            raise SubscriberDeliveryError(
                f"Subscriber {self.id} is not keeping up."
            ) from exc

    async def next_event(self, timeout: Optional[float] = None) -> Optional[Message]:
        """Wait for the next message; ``None`` once the subscriber is closed.

        Raises ``asyncio.TimeoutError`` when nothing arrives within ``timeout``.
        """
        if self._closed:
            return None
        return await asyncio.wait_for(self._queue.get(), timeout)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake a reader blocked in next_event. A full queue needs no wake-up:
        # the reader finds items and then observes ``closed``.
        try:
            self._queue.put_nowait(None)
        except asyncio.QueueFull:
            pass


class BroadcastHub:

    def __init__(self, queue_size: int = 100) -> None:
        self.queue_size = queue_size
        self._subscribers: Dict[str, Subscriber] = {}
        self._lock = asyncio.Lock()

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(self) -> Subscriber:
        subscriber = Subscriber(queue_size=self.queue_size)
        # Queued before the subscriber is visible to publish().
        subscriber.push(CONNECTED_MESSAGE)
        async with self._lock:
            self._subscribers[subscriber.id] = subscriber
            count = len(self._subscribers)
        logger.info(
            "Live subscriber connected",
            extra={"subscriber_id": subscriber.id, "subscriber_count": count},
        )
        return subscriber

    async def unsubscribe(self, subscriber: Subscriber) -> None:
        async with self._lock:
            removed = self._subscribers.pop(subscriber.id, None)
            count = len(self._subscribers)
        subscriber.close()
        if removed is not None:
            logger.info(
                "Live subscriber disconnected",
                extra={"subscriber_id": subscriber.id, "subscriber_count": count},
            )

    async def publish(self, message: Mapping[str, Any]) -> int:
        """Push ``message`` to every current subscriber; return how many got it.

        A subscriber whose push fails is unsubscribed; the others still receive
        the message.
        """
        async with self._lock:
            targets: List[Subscriber] = list(self._subscribers.values())

        delivered = 0
        failed: List[Subscriber] = []
        for subscriber in targets:
            try:
                subscriber.push(message)
            except SubscriberDeliveryError as exc:
                logger.warning(
                    "Dropping live subscriber",
                    extra={"subscriber_id": subscriber.id, "reason": str(exc)},
                )
                failed.append(subscriber)
                continue
            delivered += 1

        for subscriber in failed:
            await self.unsubscribe(subscriber)
        return delivered

    async def close(self) -> None:
        """Disconnect every subscriber, e.g. at process shutdown."""
        async with self._lock:
            subscribers = list(self._subscribers.values())
            self._subscribers.clear()
        for subscriber in subscribers:
            subscriber.close()
        if subscribers:
            logger.info(
                "Closed live subscribers", extra={"subscriber_count": len(subscribers)}
            )


@lru_cache
def build_default_hub(queue_size: Optional[int] = None) -> BroadcastHub:
    size = queue_size or get_settings().subscriber_queue_size
    return BroadcastHub(queue_size=size)
