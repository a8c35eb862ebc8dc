"""In-process change feed.

Committed row changes are published here and fanned out to subscribers whose
equality filter matches the affected row. Delivery is best effort: a
subscriber that falls behind loses events and nothing is replayed.
"""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Any, List, Optional, Union

from ..config import get_feed_queue_size
from ..observability.metrics import CHANGE_FEED_EVENTS, CHANGE_FEED_SUBSCRIPTIONS
from ..schemas import DeleteEvent, InsertEvent, UpdateEvent


logger = logging.getLogger(__name__)

Event = Union[InsertEvent, UpdateEvent, DeleteEvent]

_CLOSED = object()


class Subscription:
    """One consumer's view of the feed, filtered on ``column == value``."""

    def __init__(
        self,
        feed: "ChangeFeed",
        *,
        table: str,
        column: str,
        value: Any,
        loop: asyncio.AbstractEventLoop,
        maxsize: int,
    ):
        self._feed = feed
        self.table = table
        self.column = column
        self.value = value
        self._loop = loop
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self._closed = False
        self.dropped = 0

    @property
    def closed(self) -> bool:
        return self._closed

    def matches(self, event: Event) -> bool:
        if event.table != self.table:
            return False
        row = event.old if isinstance(event, DeleteEvent) else event.new
        if row is None:
            return False
        return getattr(row, self.column, None) == self.value

    def _deliver(self, event: Event) -> None:
        # Runs on the subscriber's loop.
        if self._closed:
            return
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Change feed subscriber for %s=%s is full; dropping %s event",
                self.column,
                self.value,
                event.type,
            )

    def dispatch(self, event: Event) -> bool:
        """Hand ``event`` to the subscriber's loop from any thread."""

        if self._closed:
            return False
        try:
            self._loop.call_soon_threadsafe(self._deliver, event)
        except RuntimeError:
            logger.debug("Subscriber loop closed; releasing subscription", exc_info=True)
            self.close()
            return False
        return True

    def _wake(self) -> None:
        try:
            self._queue.put_nowait(_CLOSED)
        except asyncio.QueueFull:
            # a queued event wakes the waiter; the next get() sees the close
            pass

    async def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """Wait for the next event; ``None`` on timeout or after close."""

        if self._closed:
            return None
        try:
            if timeout is None:
                item = await self._queue.get()
            else:
                item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            return None
        return item

    def __aiter__(self):
        return self

    async def __anext__(self) -> Event:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._feed._remove(self)
        try:
            self._loop.call_soon_threadsafe(self._wake)
        except RuntimeError:
            pass


class ChangeFeed:
    def __init__(self, maxsize: Optional[int] = None):
        self._maxsize = maxsize
        self._lock = threading.Lock()
        self._subscriptions: List[Subscription] = []

    def subscribe(
        self,
        table: str,
        column: str,
        value: Any,
        *,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> Subscription:
        """Open a subscription; must be called from the consuming loop unless ``loop`` is given."""

        subscription = Subscription(
            self,
            table=table,
            column=column,
            value=value,
            loop=loop or asyncio.get_running_loop(),
            maxsize=self._maxsize or get_feed_queue_size(),
        )
        with self._lock:
            self._subscriptions.append(subscription)
            CHANGE_FEED_SUBSCRIPTIONS.set(len(self._subscriptions))
        logger.debug("Change feed subscription opened on %s where %s=%s", table, column, value)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        with self._lock:
            try:
                self._subscriptions.remove(subscription)
            except ValueError:
                return
            CHANGE_FEED_SUBSCRIPTIONS.set(len(self._subscriptions))
        logger.debug(
            "Change feed subscription released on %s where %s=%s",
            subscription.table,
            subscription.column,
            subscription.value,
        )

    def publish(self, event: Event) -> int:
        """Fan ``event`` out to matching subscribers; returns the delivery count."""

        with self._lock:
            targets = [sub for sub in self._subscriptions if sub.matches(event)]
        CHANGE_FEED_EVENTS.labels(event.type).inc()
        delivered = 0
        for subscription in targets:
            if subscription.dispatch(event):
                delivered += 1
        return delivered

    def subscription_count(self) -> int:
        with self._lock:
            return len(self._subscriptions)

    def close_all(self) -> None:
        with self._lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.close()


_feed: Optional[ChangeFeed] = None
_feed_lock = threading.Lock()


def get_change_feed() -> ChangeFeed:
    global _feed
    with _feed_lock:
        if _feed is None:
            _feed = ChangeFeed()
        return _feed


def reset_change_feed() -> None:
    """Drop every subscription and start a fresh broker (tests, app shutdown)."""

    global _feed
    with _feed_lock:
        previous, _feed = _feed, None
    if previous is not None:
        previous.close_all()


__all__ = [
    "ChangeFeed",
    "Subscription",
    "get_change_feed",
    "reset_change_feed",
]
