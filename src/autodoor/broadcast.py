# Copyright (c) 2025 Preston Elder
#
# This software is released under the MIT License.
# https://opensource.org/licenses/MIT

"""In-process broadcast hub.

Fans published events out to any number of live subscribers and keeps a
bounded audit trail. Publishing never blocks: each subscriber owns a FIFO
queue, so every subscriber sees the events it receives in publish order.

Example:
    hub = BroadcastHub()
    sub = hub.subscribe({"door:status-update"})
    hub.publish("door:status-update", {"status": "open"})
    event = await sub.get()
"""
from __future__ import annotations

import asyncio
import itertools
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Iterable, Optional, TypeVar

from .const import DEFAULT_AUDIT_LOG_SIZE
from .models import utcnow

logger = logging.getLogger(__name__)
audit_logger = logging.getLogger("autodoor.audit")

T = TypeVar("T")

_CLOSED = object()


@dataclass(frozen=True)
class BroadcastEvent:
    """A published event as seen by subscribers and the audit log."""

    name: str
    payload: dict[str, Any]
    sequence: int
    timestamp: datetime = field(default_factory=utcnow)


class Subscription(Generic[T]):
    """A single-consumer stream of items.

    Iterate with ``async for``. Once closed, a subscription ends its
    iteration after the already queued items and cannot be reopened.
    """

    def __init__(self, maxsize: int = 0, on_close=None):
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self._on_close = on_close
        self.overflowed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def pending(self) -> int:
        """Number of items waiting to be consumed."""
        return self._queue.qsize()

    def deliver(self, item: T) -> bool:
        """Queue an item. Returns False if the subscription is closed or full."""
        if self._closed:
            return False
        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self.overflowed = True
            self.close()
            return False
        return True

    def close(self):
        """Stop the subscription and detach it from its source."""
        if self._closed:
            return
        self._closed = True
        # The sentinel may not fit into a full queue; get() also checks _closed
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            pass
        if self._on_close:
            self._on_close(self)

    async def get(self) -> T:
        """Wait for the next item.

        Raises:
            StopAsyncIteration: once the subscription is closed and drained.
        """
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item

    def get_nowait(self) -> Optional[T]:
        """Return the next queued item, or None if nothing is waiting."""
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return None if item is _CLOSED else item

    def __aiter__(self):
        return self

    async def __anext__(self) -> T:
        return await self.get()


class BroadcastHub:
    """Fan-out of named events to subscribers, plus an audit ring."""

    def __init__(self, audit_size: int = DEFAULT_AUDIT_LOG_SIZE):
        self._subscribers: list[tuple[Optional[frozenset[str]], Subscription]] = []
        self._sequence = itertools.count(1)
        self.audit_log: deque[BroadcastEvent] = deque(maxlen=audit_size)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(
        self, events: Optional[Iterable[str]] = None, maxsize: int = 0
    ) -> Subscription[BroadcastEvent]:
        """Subscribe to all events, or only to the named ones.

        Args:
            events: Event names to receive; None for every event.
            maxsize: Queue bound; a subscriber that falls this far behind is
                     dropped instead of having events skipped.
        """
        names = frozenset(events) if events is not None else None
        subscription: Subscription[BroadcastEvent] = Subscription(
            maxsize=maxsize, on_close=self._remove
        )
        self._subscribers.append((names, subscription))
        logger.debug(f"Subscriber added ({self.subscriber_count} total)")
        return subscription

    def _remove(self, subscription: Subscription):
        self._subscribers = [
            (names, sub) for names, sub in self._subscribers if sub is not subscription
        ]
        if subscription.overflowed:
            logger.warning("Dropped a subscriber that fell behind")
        else:
            logger.debug(f"Subscriber removed ({self.subscriber_count} left)")

    def publish(self, name: str, payload: dict[str, Any]) -> BroadcastEvent:
        """Publish an event to every matching subscriber."""
        event = BroadcastEvent(name=name, payload=payload, sequence=next(self._sequence))
        self.audit_log.append(event)
        audit_logger.debug(f"#{event.sequence} {name} {payload}")

        for names, subscription in list(self._subscribers):
            if names is None or name in names:
                subscription.deliver(event)
        return event

    def recent(self, name: Optional[str] = None, limit: Optional[int] = None) -> list[BroadcastEvent]:
        """Return audited events, oldest first, optionally filtered by name."""
        events = [e for e in self.audit_log if name is None or e.name == name]
        if limit is not None:
            events = events[-limit:] if limit else []
        return events

    def close(self):
        """Close every subscription."""
        for _, subscription in list(self._subscribers):
            subscription.close()
