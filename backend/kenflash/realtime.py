"""In-process publish/subscribe channels for direct messages.

Each conversation between two users has one channel. A chat view holds a
subscription only inside :func:`conversation_channel`, so leaving the view
always releases it.
"""
import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

logger = logging.getLogger(__name__)


def conversation_key(user_a: str, user_b: str) -> str:
    """Channel key for a pair of users, independent of argument order."""
    first, second = sorted((user_a, user_b))
    return f"chat:{first}:{second}"


class ChannelSubscription:
    """A single subscriber's queue on one channel."""

    def __init__(self, key: str):
        self.key = key
        self._queue: asyncio.Queue[dict[str, Any]] = asyncio.Queue()

    def deliver(self, message: dict[str, Any]) -> None:
        self._queue.put_nowait(message)

    async def get(self) -> dict[str, Any]:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()


class ChannelHub:
    """Registry of channel subscriptions keyed by conversation."""

    def __init__(self) -> None:
        self._subscriptions: dict[str, set[ChannelSubscription]] = defaultdict(set)

    def subscribe(self, key: str) -> ChannelSubscription:
        subscription = ChannelSubscription(key)
        self._subscriptions[key].add(subscription)
        logger.debug("Subscribed to %s (%d active)", key, len(self._subscriptions[key]))
        return subscription

    def unsubscribe(self, subscription: ChannelSubscription) -> None:
        subscribers = self._subscriptions.get(subscription.key)
        if not subscribers:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscriptions[subscription.key]
        logger.debug("Unsubscribed from %s", subscription.key)

    def publish(self, key: str, message: dict[str, Any]) -> int:
        """Deliver ``message`` to every subscriber of ``key``; returns the count."""
        subscribers = list(self._subscriptions.get(key, ()))
        for subscription in subscribers:
            subscription.deliver(message)
        return len(subscribers)

    def active_count(self, key: str) -> int:
        return len(self._subscriptions.get(key, ()))


@asynccontextmanager
async def conversation_channel(
    hub: ChannelHub, user_a: str, user_b: str
) -> AsyncIterator[ChannelSubscription]:
    """Hold a subscription to the ``user_a``/``user_b`` channel for the block."""
    subscription = hub.subscribe(conversation_key(user_a, user_b))
    try:
        yield subscription
    finally:
        hub.unsubscribe(subscription)


hub = ChannelHub()


def get_hub() -> ChannelHub:
    """FastAPI dependency for the process-wide channel hub."""
    return hub
