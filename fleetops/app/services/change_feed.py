"""
Change notification feed.

Committed writes are announced as ``ChangeEvent``s. Delivery is best effort
and at-least-once; nothing in the engine depends on receiving them. Callers
use the feed to refresh cached views. ``subscribe()`` returns a fresh, lazy,
unbounded iterator on every call, so a dropped subscription is restarted by
simply subscribing again.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import AsyncIterator, List, Optional, Set

from pydantic import ValidationError
from redis.exceptions import RedisError

from fleetops.app.core.reliability import CircuitBreaker, CircuitOpenError
from fleetops.app.db.store import ChangeEvent

logger = logging.getLogger("fleetops.change_feed")


class ChangeFeed(ABC):

    @abstractmethod
    async def publish(self, events: List[ChangeEvent]) -> None:
        """Announce committed events. Never raises for delivery problems."""
        ...

    @abstractmethod
    def subscribe(self) -> AsyncIterator[ChangeEvent]:
        ...


class LocalSubscription:
    """Queue-backed iterator registered with its feed on creation."""

    def __init__(self, feed: "LocalChangeFeed", queue: asyncio.Queue):
        self._feed = feed
        self._queue = queue
        self._closed = False

    def __aiter__(self):
        return self

    async def __anext__(self) -> ChangeEvent:
        if self._closed:
            raise StopAsyncIteration
        return await self._queue.get()

    async def aclose(self) -> None:
        self._closed = True
        self._feed._subscribers.discard(self._queue)


class LocalChangeFeed(ChangeFeed):
    """In-process fan-out through one asyncio.Queue per subscriber."""

    def __init__(self, max_queue_size: int = 1000):
        self._max_queue_size = max_queue_size
        self._subscribers: Set[asyncio.Queue] = set()

    async def publish(self, events: List[ChangeEvent]) -> None:
        for queue in list(self._subscribers):
            for event in events:
                try:
                    queue.put_nowait(event)
                except asyncio.QueueFull:
                    logger.warning(
                        "Subscriber queue full, change event dropped",
                        extra={"entity_type": event.entity_type.value, "entity_id": event.entity_id}
                    )

    def subscribe(self) -> LocalSubscription:
        queue = asyncio.Queue(maxsize=self._max_queue_size)
        self._subscribers.add(queue)
        return LocalSubscription(self, queue)


class RedisChangeFeed(ChangeFeed):
    """Redis pub/sub feed shared by every process on the same channel."""

    def __init__(self, redis, channel: str, breaker: Optional[CircuitBreaker] = None):
        self._redis = redis
        self._channel = channel
        self._breaker = breaker or CircuitBreaker(failure_threshold=3, reset_timeout=30)

    async def publish(self, events: List[ChangeEvent]) -> None:
        for event in events:
            try:
                await self._breaker.call(self._redis.publish, self._channel, event.model_dump_json())
            except CircuitOpenError:
                logger.warning(
                    "Change feed circuit open, event not published",
                    extra={"channel": self._channel, "entity_type": event.entity_type.value, "entity_id": event.entity_id}
                )
            except RedisError as exc:
                logger.warning(
                    "Change feed publish failed",
                    extra={"channel": self._channel, "entity_id": event.entity_id, "error": str(exc)}
                )

    async def subscribe(self) -> AsyncIterator[ChangeEvent]:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self._channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    yield ChangeEvent.model_validate_json(message["data"])
                except ValidationError:
                    logger.warning("Malformed change event skipped", extra={"channel": self._channel})
        finally:
            await pubsub.unsubscribe(self._channel)
            await pubsub.aclose()


async def run_cache_invalidator(feed: ChangeFeed, cache, retry_seconds: float) -> None:
    """
    Keep ``cache`` in step with writes committed anywhere.

    Runs until cancelled; a subscription that drops or fails for any other
    reason is re-established after ``retry_seconds``.
    """
    while True:
        try:
            async for event in feed.subscribe():
                await cache.invalidate_for_events([event])
        except RedisError as exc:
            logger.warning("Change feed subscription dropped, resubscribing", extra={"error": str(exc)})
        except Exception:
            logger.exception("Cache invalidator failed, resubscribing")
        await asyncio.sleep(retry_seconds)
