"""
Event Broadcaster - pushes committed workflow changes to every connected
dashboard.

Delivery is at-most-once and best-effort: there is no replay and no
backlog, and a dashboard that was not connected when an event went out has
to reload in full. publish() never raises back into the request that
triggered it.

Route handlers run in FastAPI's threadpool while WebSocket sessions live on
the event loop, so each subscription remembers its loop and publish() hands
events over with call_soon_threadsafe.
"""

import asyncio
import os
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Set

from trainingflow.services.vocabulary import EventName
from trainingflow.logging_config import get_logger, log_with_context

logger = get_logger("events")

EVENT_QUEUE_SIZE = int(os.getenv("EVENT_QUEUE_SIZE", "256"))


@dataclass(frozen=True)
class Event:
    """A named notification with a minimal payload (keys and new statuses)."""
    name: EventName
    data: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_message(self) -> dict:
        return {
            "event": self.name.value,
            "data": self.data,
            "timestamp": self.timestamp,
        }


class Subscription:
    """One connected dashboard: a bounded queue owned by an event loop."""

    def __init__(self, loop: asyncio.AbstractEventLoop, maxsize: int = EVENT_QUEUE_SIZE):
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def _offer(self, event: Event):
        # Runs on the subscriber's loop
        try:
            self.queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            log_with_context(logger, "WARNING",
                "Dashboard queue full, dropped {}".format(event.name.value),
                extra_data={"dropped_total": self.dropped})

    def deliver(self, event: Event):
        self.loop.call_soon_threadsafe(self._offer, event)

    async def next_event(self) -> Event:
        return await self.queue.get()


class EventBroadcaster:
    """Single-process publish/subscribe hub for dashboard sessions."""

    def __init__(self):
        self._subscriptions: Set[Subscription] = set()
        self._lock = threading.Lock()

    def subscribe(self, loop: asyncio.AbstractEventLoop = None) -> Subscription:
        subscription = Subscription(loop or asyncio.get_running_loop())
        with self._lock:
            self._subscriptions.add(subscription)
        log_with_context(logger, "INFO", "Dashboard subscribed",
                         extra_data={"subscribers": self.subscriber_count})
        return subscription

    def unsubscribe(self, subscription: Subscription):
        with self._lock:
            self._subscriptions.discard(subscription)
        log_with_context(logger, "INFO", "Dashboard unsubscribed",
                         extra_data={"subscribers": self.subscriber_count})

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, event: Event) -> int:
        """
        Hand the event to every current subscriber. Returns the number of
        subscriptions it was handed to; closed ones are dropped silently.
        """
        with self._lock:
            subscriptions = list(self._subscriptions)

        delivered = 0
        for subscription in subscriptions:
            try:
                subscription.deliver(event)
                delivered += 1
            except RuntimeError:
                # Loop already closed: the dashboard is gone
                self.unsubscribe(subscription)
                log_with_context(logger, "WARNING",
                    "Delivery miss for {}: subscriber loop closed".format(event.name.value),
                    context={"uid": event.data.get("uid")})

        log_with_context(logger, "INFO", "Published {}".format(event.name.value),
                         context={"uid": event.data.get("uid")},
                         extra_data={"subscribers": delivered, "data": event.data})
        return delivered

    def reset(self):
        with self._lock:
            self._subscriptions.clear()


broadcaster = EventBroadcaster()
