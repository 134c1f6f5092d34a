"""Tests for the live update fan-out hub."""

from __future__ import annotations

import asyncio

import pytest

from models.errors import SubscriberDeliveryError
from services.broadcast import BroadcastHub, Subscriber

CONNECTED = {"type": "connected"}


def _update(temperature: int) -> dict:
    return {"type": "update", "device": "room_12", "data": {"temperature": temperature}}


async def _drain(subscriber: Subscriber) -> list:
    messages = []
    while True:
        try:
            message = await subscriber.next_event(timeout=0.05)
        except asyncio.TimeoutError:
            return messages
        if message is None:
            return messages
        messages.append(message)


def test_subscribe_sends_connected_first() -> None:
    async def scenario():
        hub = BroadcastHub()
        subscriber = await hub.subscribe()
        await hub.publish(_update(70))
        return await _drain(subscriber), hub.subscriber_count

    messages, count = asyncio.run(scenario())

    assert messages == [CONNECTED, _update(70)]
    assert count == 1


def test_publish_reaches_every_subscriber() -> None:
    async def scenario():
        hub = BroadcastHub()
        subscribers = [await hub.subscribe() for _ in range(3)]
        delivered = await hub.publish(_update(72))
        return delivered, [await _drain(subscriber) for subscriber in subscribers]

    delivered, received = asyncio.run(scenario())

    assert delivered == 3
    assert all(messages == [CONNECTED, _update(72)] for messages in received)


def test_failing_subscriber_is_removed_without_affecting_others() -> None:
    async def scenario():
        hub = BroadcastHub()
        first, second, third = [await hub.subscribe() for _ in range(3)]

        def broken_push(message) -> None:
            raise SubscriberDeliveryError("connection reset")

        second.push = broken_push  # type: ignore[method-assign]
        delivered = await hub.publish(_update(72))
        return hub, delivered, second, await _drain(first), await _drain(third)

    hub, delivered, second, first_messages, third_messages = asyncio.run(scenario())

    assert delivered == 2
    assert hub.subscriber_count == 2
    assert second.closed is True
    assert first_messages == [CONNECTED, _update(72)]
    assert third_messages == [CONNECTED, _update(72)]


def test_stalled_subscriber_is_evicted_when_its_queue_fills() -> None:
    async def scenario():
        hub = BroadcastHub(queue_size=2)
        slow = await hub.subscribe()
        fast = await hub.subscribe()
        await hub.publish(_update(1))
        await _drain(fast)
        await hub.publish(_update(2))
        return hub, slow, fast

    hub, slow, fast = asyncio.run(scenario())

    assert slow.closed is True
    assert fast.closed is False
    assert hub.subscriber_count == 1


def test_late_subscriber_sees_no_replay() -> None:
    async def scenario():
        hub = BroadcastHub()
        await hub.publish(_update(1))
        await hub.publish(_update(2))
        late = await hub.subscribe()
        await hub.publish(_update(3))
        return await _drain(late)

    assert asyncio.run(scenario()) == [CONNECTED, _update(3)]


def test_publish_without_subscribers_is_a_noop() -> None:
    assert asyncio.run(BroadcastHub().publish(_update(1))) == 0


def test_unsubscribe_is_idempotent() -> None:
    async def scenario():
        hub = BroadcastHub()
        subscriber = await hub.subscribe()
        await hub.unsubscribe(subscriber)
        await hub.unsubscribe(subscriber)
        return hub, subscriber

    hub, subscriber = asyncio.run(scenario())

    assert hub.subscriber_count == 0
    assert subscriber.closed is True


def test_push_to_closed_subscriber_fails() -> None:
    async def scenario():
        hub = BroadcastHub()
        subscriber = await hub.subscribe()
        await hub.unsubscribe(subscriber)
        return subscriber

    subscriber = asyncio.run(scenario())

    with pytest.raises(SubscriberDeliveryError):
        subscriber.push(_update(1))


def test_close_wakes_waiting_readers() -> None:
    async def scenario():
        hub = BroadcastHub()
        subscriber = await hub.subscribe()
        assert await subscriber.next_event(timeout=1) == CONNECTED
        waiter = asyncio.create_task(subscriber.next_event())
        await asyncio.sleep(0)
        await hub.close()
        return await asyncio.wait_for(waiter, timeout=1), hub.subscriber_count

    message, count = asyncio.run(scenario())

    assert message is None
    assert count == 0


def test_concurrent_subscribe_and_publish() -> None:
    async def scenario():
        hub = BroadcastHub()

        async def churn() -> None:
            subscriber = await hub.subscribe()
            await asyncio.sleep(0)
            await hub.unsubscribe(subscriber)

        await asyncio.gather(
            *(churn() for _ in range(20)),
            *(hub.publish(_update(index)) for index in range(20)),
        )
        return hub.subscriber_count

    assert asyncio.run(scenario()) == 0
