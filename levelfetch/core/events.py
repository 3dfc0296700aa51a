"""
Publishes task events to any number of subscribers without ever blocking the
publisher.
"""

import asyncio
import logging
from typing import AsyncIterator, Optional

from rich.markup import escape

from levelfetch.models.task import TaskEvent

log = logging.getLogger(__name__)
event_log = logging.getLogger("levelfetch.events")

_LEVELS = {
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class Subscription:
    """An unbounded queue of events, optionally restricted to one task."""

    def __init__(self, bus: "EventBus", task_id: Optional[str] = None):
        self._bus = bus
        self.task_id = task_id
        self.queue: asyncio.Queue[TaskEvent] = asyncio.Queue()

    def accepts(self, event: TaskEvent) -> bool:
        return self.task_id is None or event.task_id == self.task_id

    async def get(self) -> TaskEvent:
        return await self.queue.get()

    def close(self) -> None:
        self._bus.unsubscribe(self)

    async def __aiter__(self) -> AsyncIterator[TaskEvent]:
        """Yields events until one carries a terminal status."""
        while True:
            event = await self.queue.get()
            yield event
            if event.status is not None and event.status.is_terminal:
                return

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class EventBus:
    """Fan-out of task events. Delivery is best-effort."""

    def __init__(self) -> None:
        self._subscriptions: list[Subscription] = []

    def subscribe(self, task_id: Optional[str] = None) -> Subscription:
        subscription = Subscription(self, task_id)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def publish(self, event: TaskEvent) -> None:
        event_log.log(
            _LEVELS.get(event.level, logging.INFO),
            escape(f"[{event.task_id[:8]}] {event.event}: {event.message}"),
        )
        for subscription in list(self._subscriptions):
            if subscription.accepts(event):
                subscription.queue.put_nowait(event)
