from __future__ import annotations

import asyncio

from app.application.sync.pubsub import PubSubChannel


async def _wait_for(predicate, *, attempts: int = 200):
    for _ in range(attempts):
        if predicate():
            return
        await asyncio.sleep(0.005)
    raise AssertionError("condition not met")


class ScriptedPoller:
    def __init__(self, batches):
        self.batches = list(batches)
        self.topics: list[str] = []

    async def __call__(self, topic: str):
        self.topics.append(topic)
        return self.batches.pop(0) if self.batches else []


async def test_poller_feeds_every_subscriber():
    channel = PubSubChannel(poller=ScriptedPoller([["m1", "m2"]]), poll_interval_seconds=0.001)
    first: list = []
    second: list = []

    await channel.subscribe("base:pool", first.append)
    await channel.subscribe("base:pool", second.append)
    await _wait_for(lambda: len(second) == 2)

    assert first == ["m1", "m2"]
    assert channel.subscriber_count("base:pool") == 2
    await channel.close()


async def test_failing_callback_does_not_affect_others():
    channel = PubSubChannel(poller=ScriptedPoller([]), poll_interval_seconds=60)
    received: list = []

    def broken(message):
        raise ValueError("bad subscriber")

    await channel.subscribe("topic", broken)
    await channel.subscribe("topic", received.append)

    assert channel.publish("topic", "hello") == 1
    assert received == ["hello"]
    await channel.close()


async def test_last_unsubscribe_stops_polling():
    channel = PubSubChannel(poller=ScriptedPoller([]), poll_interval_seconds=60)
    unsubscribe = await channel.subscribe("topic", lambda message: None)

    assert channel.is_polling("topic")
    await unsubscribe()
    assert not channel.is_polling("topic")
    assert channel.subscriber_count("topic") == 0


async def test_feed_close_is_reported_once_per_teardown():
    closed: list[str] = []
    channel = PubSubChannel(poller=ScriptedPoller([]), poll_interval_seconds=60, on_feed_closed=closed.append)
    first = await channel.subscribe("topic", lambda message: None)
    second = await channel.subscribe("topic", lambda message: None)

    await first()
    assert closed == []
    await second()
    assert closed == ["topic"]


async def test_push_stream_is_preferred_over_polling():
    closed: list[str] = []
    pushers = {}

    async def stream_factory(topic, emit):
        pushers[topic] = emit

        async def close():
            closed.append(topic)

        return close

    poller = ScriptedPoller([])
    channel = PubSubChannel(poller=poller, poll_interval_seconds=0.001, stream_factory=stream_factory)
    received: list = []

    unsubscribe = await channel.subscribe("topic", received.append)
    pushers["topic"]("pushed")
    await unsubscribe()

    assert received == ["pushed"]
    assert closed == ["topic"]
    assert not channel.is_polling("topic")
    assert poller.topics == []


async def test_stream_failure_falls_back_to_polling():
    async def stream_factory(topic, emit):
        raise ConnectionError("ws refused")

    channel = PubSubChannel(
        poller=ScriptedPoller([["polled"]]),
        poll_interval_seconds=0.001,
        stream_factory=stream_factory,
    )
    received: list = []

    await channel.subscribe("topic", received.append)
    await _wait_for(lambda: received == ["polled"])

    assert channel.is_polling("topic")
    await channel.close()
