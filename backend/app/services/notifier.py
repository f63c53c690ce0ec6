from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from threading import Lock
from typing import Optional, Protocol, Union
from uuid import uuid4

from backend.app.models import ChangeEvent
from backend.app.observability import ServiceMetrics

logger = logging.getLogger("recruiting_dashboard.notifier")

KEEPALIVE_FRAME = ": keepalive\n\n"

_CLOSED = object()


class NotifierDeliveryError(Exception):
    pass


class DisconnectAware(Protocol):
    async def is_disconnected(self) -> bool: ...


def _running_loop() -> Optional[asyncio.AbstractEventLoop]:
    try:
        return asyncio.get_running_loop()
    except RuntimeError:
        return None


class Subscriber:
    """One live change-stream connection with its own bounded outbox.

    The outbox belongs to the event loop that created the subscriber; sends
    from any other thread are handed over with ``call_soon_threadsafe``.
    """

    def __init__(self, max_pending: int = 100) -> None:
        self.id = f"sub_{uuid4().hex[:10]}"
        self.closed = False
        self.max_pending = max_pending
        self._loop = _running_loop()
        self._queue: asyncio.Queue[Union[ChangeEvent, object]] = asyncio.Queue()

    def _put(self, item: Union[ChangeEvent, object]) -> None:
        loop = self._loop
        if loop is not None and loop.is_running() and _running_loop() is not loop:
            loop.call_soon_threadsafe(self._queue.put_nowait, item)
        else:
            self._queue.put_nowait(item)

    def send(self, event: ChangeEvent) -> None:
        if self.closed:
            raise NotifierDeliveryError(f"subscriber closed: {self.id}")
        if self._queue.qsize() >= self.max_pending:
            raise NotifierDeliveryError(f"subscriber not draining: {self.id}")
        self._put(event)

    async def receive(self, timeout: Optional[float] = None) -> Optional[ChangeEvent]:
        """Next event, or None on timeout or once the subscriber is closed."""
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout)
        except asyncio.TimeoutError:
            return None
        if item is _CLOSED:
            return None
        return item

    def drain(self) -> list[ChangeEvent]:
        events: list[ChangeEvent] = []
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if item is not _CLOSED:
                events.append(item)
        return events

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        # wakes a pending receive()
        self._put(_CLOSED)


class ChangeNotifier:
    """Registry of connected subscribers; broadcast is fire-and-forget."""

    def __init__(
        self,
        max_pending_per_subscriber: int = 100,
        metrics: Optional[ServiceMetrics] = None,
    ) -> None:
        self._lock = Lock()
        self._subscribers: dict[str, Subscriber] = {}
        self.max_pending_per_subscriber = max_pending_per_subscriber
        self.metrics = metrics or ServiceMetrics()

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def add(self, subscriber: Subscriber) -> None:
        with self._lock:
            self._subscribers[subscriber.id] = subscriber

    def subscribe(self) -> Subscriber:
        subscriber = Subscriber(max_pending=self.max_pending_per_subscriber)
        subscriber.send(ChangeEvent.connected())
        self.add(subscriber)
        logger.info("subscriber_added id=%s total=%s", subscriber.id, self.subscriber_count)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber) -> None:
        subscriber.close()
        with self._lock:
            removed = self._subscribers.pop(subscriber.id, None)
        if removed:
            logger.info(
                "subscriber_removed id=%s total=%s", subscriber.id, self.subscriber_count
            )

    def broadcast(self, event: ChangeEvent) -> int:
        with self._lock:
            targets = list(self._subscribers.values())
        delivered = 0
        dropped = 0
        for subscriber in targets:
            try:
                subscriber.send(event)
                delivered += 1
            except NotifierDeliveryError as exc:
                dropped += 1
                logger.warning("subscriber_dropped id=%s error=%s", subscriber.id, exc)
                self.unsubscribe(subscriber)
        self.metrics.record_broadcast(delivered=delivered, dropped=dropped)
        return delivered

    def close(self) -> None:
        with self._lock:
            targets = list(self._subscribers.values())
            self._subscribers.clear()
        for subscriber in targets:
            subscriber.close()
        logger.info("notifier_closed dropped=%s", len(targets))


async def event_stream(
    request: DisconnectAware,
    notifier: ChangeNotifier,
    *,
    keepalive_seconds: float = 15,
) -> AsyncIterator[str]:
    subscriber = notifier.subscribe()
    try:
        while True:
            if await request.is_disconnected():
                break
            event = await subscriber.receive(timeout=keepalive_seconds)
            if event is None:
                if subscriber.closed:
                    break
                yield KEEPALIVE_FRAME
                continue
            yield event.to_sse()
    finally:
        notifier.unsubscribe(subscriber)
