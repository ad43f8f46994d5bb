from __future__ import annotations

import asyncio
import inspect
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Union

from fastapi import WebSocket

logger = logging.getLogger("rollcall.feed")

GLOBAL_TOPIC = "attendance"

Callback = Callable[[dict[str, Any]], Union[None, Awaitable[None]]]


def identity_topic(identity_id: Any) -> str:
    return f"{GLOBAL_TOPIC}:{identity_id}"


class Subscription:
    """Handle returned by ``EventFeed.subscribe``; ``close`` is the only teardown path."""

    def __init__(self, feed: EventFeed, topic: str, callback: Callback) -> None:
        self.feed = feed
        self.topic = topic
        self.callback = callback
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.feed._remove(self)
        logger.debug("Closed subscription on %s", self.topic)

    def __enter__(self) -> Subscription:
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


class EventFeed:
    """In-process pub/sub keyed by topic.

    Delivery is at-least-once from the consumer's point of view: publishers
    may repeat a payload and nothing here orders payloads across publishers.
    """

    def __init__(self) -> None:
        self._subscriptions: dict[str, list[Subscription]] = defaultdict(list)

    def subscribe(self, topic: str, callback: Callback) -> Subscription:
        subscription = Subscription(self, topic, callback)
        self._subscriptions[topic].append(subscription)
        logger.debug("Subscribed to %s", topic)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        current = self._subscriptions.get(subscription.topic)
        if not current:
            return
        if subscription in current:
            current.remove(subscription)
        if not current:
            del self._subscriptions[subscription.topic]

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscriptions.get(topic, ()))

    async def publish(self, topic: str, payload: dict[str, Any]) -> int:
        targets = list(self._subscriptions.get(topic, ()))
        delivered = 0
        for subscription in targets:
            if subscription.closed:
                continue
            try:
                result = subscription.callback(payload)
                if inspect.isawaitable(result):
                    await result
                delivered += 1
            except Exception:
                logger.exception("Subscriber on %s failed; continuing delivery", topic)
        return delivered


class ConnectionManager:
    """Bridges feed topics to WebSocket clients."""

    def __init__(self, feed: EventFeed) -> None:
        self.feed = feed
        self._connections: dict[WebSocket, Subscription] = {}
        self._lock = asyncio.Lock()

    async def connect(self, websocket: WebSocket, topic: str = GLOBAL_TOPIC) -> None:
        await websocket.accept()

        async def _forward(payload: dict[str, Any]) -> None:
            try:
                await websocket.send_json(payload)
            except Exception:
                await self.disconnect(websocket)

        async with self._lock:
            self._connections[websocket] = self.feed.subscribe(topic, _forward)

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            subscription = self._connections.pop(websocket, None)
        if subscription is not None:
            subscription.close()

    @property
    def active(self) -> int:
        return len(self._connections)


event_feed = EventFeed()
ws_manager = ConnectionManager(event_feed)
