from __future__ import annotations

import asyncio
import json

from backend.app.models import ChangeEvent, ChangeEventType
from backend.app.services.notifier import (
    KEEPALIVE_FRAME,
    ChangeNotifier,
    NotifierDeliveryError,
    Subscriber,
    event_stream,
)


class BrokenSubscriber(Subscriber):
    def send(self, event: ChangeEvent) -> None:
        raise NotifierDeliveryError("connection reset")


class FakeRequest:
    def __init__(self, disconnect_after: int) -> None:
        self.checks = 0
        self.disconnect_after = disconnect_after

    async def is_disconnected(self) -> bool:
        self.checks += 1
        return self.checks > self.disconnect_after


def _frame_payload(frame: str) -> dict:
    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    return json.loads(frame[len("data: ") :])


def test_broadcast_without_subscribers_is_noop() -> None:
    notifier = ChangeNotifier()
    assert notifier.broadcast(ChangeEvent.updated("c1")) == 0
    assert notifier.subscriber_count == 0


def test_subscribe_delivers_connected_ack_first() -> None:
    notifier = ChangeNotifier()
    subscriber = notifier.subscribe()
    [event] = subscriber.drain()
    assert event.type == ChangeEventType.connected
    assert event.candidate_id is None
    assert notifier.subscriber_count == 1


def test_failed_subscriber_is_dropped_and_others_still_receive() -> None:
    notifier = ChangeNotifier()
    first = notifier.subscribe()
    broken = BrokenSubscriber()
    notifier.add(broken)
    last = notifier.subscribe()

    delivered = notifier.broadcast(ChangeEvent.updated("c7"))

    assert delivered == 2
    assert notifier.subscriber_count == 2
    assert broken.closed is True
    for subscriber in (first, last):
        events = subscriber.drain()
        assert events[-1].type == ChangeEventType.updated
        assert events[-1].candidate_id == "c7"


def test_subscriber_closed_mid_broadcast_does_not_block_others() -> None:
    notifier = ChangeNotifier()
    gone = notifier.subscribe()
    alive = notifier.subscribe()
    gone.close()

    assert notifier.broadcast(ChangeEvent.updated("c2")) == 1
    assert notifier.subscriber_count == 1
    assert alive.drain()[-1].candidate_id == "c2"


def test_full_outbox_counts_as_disconnect() -> None:
    notifier = ChangeNotifier(max_pending_per_subscriber=2)
    subscriber = notifier.subscribe()
    assert notifier.broadcast(ChangeEvent.updated("c1")) == 1
    assert notifier.broadcast(ChangeEvent.updated("c2")) == 0
    assert notifier.subscriber_count == 0
    assert subscriber.closed is True


def test_unsubscribe_is_idempotent() -> None:
    notifier = ChangeNotifier()
    subscriber = notifier.subscribe()
    notifier.unsubscribe(subscriber)
    notifier.unsubscribe(subscriber)
    assert notifier.subscriber_count == 0


def test_close_drops_every_subscriber() -> None:
    notifier = ChangeNotifier()
    subscribers = [notifier.subscribe() for _ in range(3)]
    notifier.close()
    assert notifier.subscriber_count == 0
    assert all(subscriber.closed for subscriber in subscribers)
    assert notifier.broadcast(ChangeEvent.updated("c1")) == 0


def test_change_event_sse_frame() -> None:
    payload = _frame_payload(ChangeEvent.updated("c5").to_sse())
    assert payload["type"] == "updated"
    assert payload["candidate_id"] == "c5"
    assert "at" in payload

    connected = _frame_payload(ChangeEvent.connected().to_sse())
    assert connected["type"] == "connected"
    assert "candidate_id" not in connected


def test_event_stream_yields_ack_updates_and_unsubscribes() -> None:
    async def scenario() -> tuple[list[str], int, int]:
        notifier = ChangeNotifier()
        request = FakeRequest(disconnect_after=2)
        stream = event_stream(request, notifier, keepalive_seconds=1)

        frames = [await stream.__anext__()]
        during = notifier.subscriber_count
        notifier.broadcast(ChangeEvent.updated("c3"))
        frames.extend([frame async for frame in stream])
        return frames, during, notifier.subscriber_count

    frames, during, after = asyncio.run(scenario())
    assert [_frame_payload(frame)["type"] for frame in frames] == ["connected", "updated"]
    assert _frame_payload(frames[1])["candidate_id"] == "c3"
    assert during == 1
    assert after == 0


def test_event_stream_sends_keepalive_when_idle() -> None:
    async def scenario() -> list[str]:
        notifier = ChangeNotifier()
        stream = event_stream(FakeRequest(disconnect_after=2), notifier, keepalive_seconds=0.01)
        return [frame async for frame in stream]

    frames = asyncio.run(scenario())
    assert frames[1] == KEEPALIVE_FRAME


def test_event_stream_closed_by_consumer_unsubscribes() -> None:
    async def scenario() -> int:
        notifier = ChangeNotifier()
        stream = event_stream(FakeRequest(disconnect_after=100), notifier, keepalive_seconds=1)
        await stream.__anext__()
        await stream.aclose()
        return notifier.subscriber_count

    assert asyncio.run(scenario()) == 0


def test_close_wakes_a_waiting_receive() -> None:
    async def scenario() -> tuple[object, float]:
        subscriber = Subscriber()
        waiter = asyncio.ensure_future(subscriber.receive(timeout=30))
        await asyncio.sleep(0)
        started = asyncio.get_running_loop().time()
        subscriber.close()
        result = await asyncio.wait_for(waiter, timeout=1)
        return result, asyncio.get_running_loop().time() - started

    result, elapsed = asyncio.run(scenario())
    assert result is None
    assert elapsed < 1


def test_notifier_close_ends_open_stream_promptly() -> None:
    async def scenario() -> list[str]:
        notifier = ChangeNotifier()
        stream = event_stream(FakeRequest(disconnect_after=100), notifier, keepalive_seconds=30)
        frames = [await stream.__anext__()]
        notifier.broadcast(ChangeEvent.updated("c4"))
        notifier.close()
        rest = await asyncio.wait_for(_collect(stream), timeout=1)
        return frames + rest

    frames = asyncio.run(scenario())
    assert [_frame_payload(frame)["type"] for frame in frames] == ["connected", "updated"]


async def _collect(stream) -> list[str]:
    return [frame async for frame in stream]


def test_send_from_another_thread_reaches_loop_owned_subscriber() -> None:
    async def scenario() -> ChangeEvent:
        notifier = ChangeNotifier()
        subscriber = notifier.subscribe()
        subscriber.drain()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, notifier.broadcast, ChangeEvent.updated("c8"))
        return await subscriber.receive(timeout=1)

    event = asyncio.run(scenario())
    assert event is not None
    assert event.candidate_id == "c8"


def test_broadcast_outcomes_are_counted() -> None:
    notifier = ChangeNotifier()
    notifier.subscribe()
    notifier.add(BrokenSubscriber())
    notifier.broadcast(ChangeEvent.updated("c1"))
    assert notifier.metrics.count("notifications_delivered_total") == 1
    assert notifier.metrics.count("subscribers_dropped_total") == 1
