"""Push-event feed: fan-out of row-change events to live subscriptions."""

from __future__ import annotations

import asyncio
import json
import logging
import uuid
from typing import AsyncIterator, Iterable, Optional, Set

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from .access import ChangeEvent, ChangeKind


logger = logging.getLogger("app.data.feed")

_CLOSED = object()


class Subscription:
    """A live stream of change events for one table."""

    def __init__(self, table: str, event_kinds: Iterable[ChangeKind]):
        self.id = uuid.uuid4().hex
        self.table = table
        self.event_kinds: Set[ChangeKind] = set(event_kinds)
        self._queue: asyncio.Queue = asyncio.Queue()
        self.closed = False

    def wants(self, event: ChangeEvent) -> bool:
        return not self.closed and event.table == self.table and event.kind in self.event_kinds

    def push(self, event: ChangeEvent) -> None:
        self._queue.put_nowait(event)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[ChangeEvent]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[ChangeEvent]:
        while True:
            item = await self._queue.get()
            if item is _CLOSED:
                return
            yield item


class ChangeFeed:
    """In-process change feed shared by every session of this process."""

    def __init__(self):
        self._subscriptions: dict[str, Subscription] = {}

    def subscribe(self, table: str, event_kinds: Iterable[ChangeKind]) -> Subscription:
        subscription = Subscription(table, event_kinds)
        self._subscriptions[subscription.id] = subscription
        logger.info(
            "Subscription opened: id=%s, table=%s, total=%d",
            subscription.id,
            table,
            len(self._subscriptions),
        )
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if self._subscriptions.pop(subscription.id, None) is None:
            return
        subscription.close()
        logger.info("Subscription closed: id=%s, table=%s", subscription.id, subscription.table)

    async def publish(self, event: ChangeEvent) -> int:
        return self.dispatch(event)

    def dispatch(self, event: ChangeEvent) -> int:
        """Deliver an event to local subscriptions. Returns the delivery count."""
        delivered = 0
        for subscription in list(self._subscriptions.values()):
            if subscription.wants(event):
                subscription.push(event)
                delivered += 1
        return delivered

    @property
    def subscription_count(self) -> int:
        return len(self._subscriptions)


class RedisChangeFeed(ChangeFeed):
    """Change feed that also fans events out to other processes via Redis pub/sub."""

    def __init__(self, redis_url: str, channel: str):
        super().__init__()
        self.channel = channel
        self.origin = uuid.uuid4().hex
        self._redis = aioredis.Redis.from_url(redis_url, decode_responses=True)
        self._listener: Optional[asyncio.Task] = None

    async def publish(self, event: ChangeEvent) -> int:
        delivered = self.dispatch(event)
        payload = json.dumps({"origin": self.origin, "event": event.model_dump(mode="json")})
        try:
            await self._redis.publish(self.channel, payload)
        except RedisError as e:
            logger.warning("Failed to publish change event to Redis channel %s: %s", self.channel, e)
        return delivered

    def start(self) -> None:
        if self._listener is None:
            self._listener = asyncio.create_task(self._listen())

    async def stop(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        await self._redis.aclose()

    async def _listen(self) -> None:
        pubsub = self._redis.pubsub()
        await pubsub.subscribe(self.channel)
        logger.info("Listening for change events on Redis channel %s", self.channel)
        try:
            async for message in pubsub.listen():
                if message.get("type") != "message":
                    continue
                try:
                    payload = json.loads(message["data"])
                    if payload.get("origin") == self.origin:
                        continue
                    self.dispatch(ChangeEvent.model_validate(payload["event"]))
                except (ValueError, KeyError) as e:
                    logger.warning("Discarding malformed change event: %s", e)
        finally:
            await pubsub.aclose()
