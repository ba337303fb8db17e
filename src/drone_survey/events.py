from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Protocol

logger = logging.getLogger(__name__)

_CLOSED = object()


def mission_topic(mission_id: str) -> str:
    return f"missions/{mission_id}"


class Notifier(Protocol):
    async def publish(self, topic: str, payload: dict[str, Any]) -> None: ...


class Subscription:
    """Async iterator over the payloads published on one topic."""

    def __init__(self, broker: TopicBroker, topic: str) -> None:
        self.broker = broker
        self.topic = topic
        self.queue: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> dict[str, Any]:
        if self.closed and self.queue.empty():
            raise StopAsyncIteration
        item = await self.queue.get()
        if item is _CLOSED:
            self.closed = True
            raise StopAsyncIteration
        return item

    def drain(self) -> list[dict[str, Any]]:
        """Everything queued right now, without waiting."""
        items = []
        while not self.queue.empty():
            item = self.queue.get_nowait()
            if item is _CLOSED:
                self.closed = True
                break
            items.append(item)
        return items

    def close(self) -> None:
        self.broker.unsubscribe(self)


class TopicBroker:
    """
    In-process topic fan-out standing in for the real-time push channel.

    Each subscriber owns an unbounded queue, so publishing never blocks and
    every subscriber sees one publisher's messages in publish order.
    """

    def __init__(self) -> None:
        self.subscribers: dict[str, list[Subscription]] = defaultdict(list)
        self.closed = False

    def subscribe(self, topic: str) -> Subscription:
        if self.closed:
            raise RuntimeError("broker is closed")
        sub = Subscription(self, topic)
        self.subscribers[topic].append(sub)
        logger.debug("Subscribed to %s", topic)
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        subs = self.subscribers.get(sub.topic, [])
        if sub in subs:
            subs.remove(sub)
            sub.queue.put_nowait(_CLOSED)
        if not subs:
            self.subscribers.pop(sub.topic, None)

    async def publish(self, topic: str, payload: dict[str, Any]) -> None:
        if self.closed:
            raise RuntimeError("broker is closed")
        subs = list(self.subscribers.get(topic, []))
        for sub in subs:
            sub.queue.put_nowait(payload)
        logger.debug("Published %s on %s to %d subscriber(s)", payload.get("event"), topic, len(subs))

    async def close(self) -> None:
        self.closed = True
        for subs in list(self.subscribers.values()):
            for sub in list(subs):
                self.unsubscribe(sub)
