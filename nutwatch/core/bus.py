"""
A simple, in-memory, async-friendly Event Bus.

This is the outward event sink of the watchdog: telemetry updates, power
transitions and shutdown countdown notifications are published here as
one-way messages. Publishers never wait for subscribers.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Dict, List, Set

logger = logging.getLogger(__name__)

TOPIC_UPS_UPDATE = "ups-update"
TOPIC_POWER_EVENT = "power-event"
TOPIC_SHUTDOWN_WARNING = "shutdown-warning"
TOPIC_SHUTDOWN_CANCELLED = "shutdown-cancelled"

# Type hint for an async callback that takes one argument
EventCallback = Callable[[Any], Awaitable[None]]


class EventBus:
    """
    A simple asynchronous event bus for pub/sub interactions.
    """

    def __init__(self):
        self._subscribers: Dict[str, List[EventCallback]] = defaultdict(list)
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, topic: str, callback: EventCallback) -> None:
        """
        Subscribes a callback to a specific topic.

        Args:
            topic: The topic to subscribe to (e.g., "shutdown-warning").
            callback: An async function to be called when an event is published.
        """
        logger.debug("New subscription to topic: %s", topic)
        self._subscribers[topic].append(callback)

    async def publish(self, topic: str, data: Any = None) -> None:
        """
        Publishes an event to all subscribers of a topic.

        Each delivery runs as its own task and this returns without waiting
        for any of them. Subscriber failures are logged.
        """
        callbacks = list(self._subscribers.get(topic, ()))
        if not callbacks:
            return
        logger.debug("Publishing event to topic '%s' for %d subscribers.", topic, len(callbacks))
        for callback in callbacks:
            task = asyncio.create_task(self._deliver(topic, callback, data))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)

    async def _deliver(self, topic: str, callback: EventCallback, data: Any) -> None:
        try:
            await callback(data)
        except Exception:
            logger.exception("Subscriber for '%s' failed", topic)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """Wait until every delivery published so far has finished."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
