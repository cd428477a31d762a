"""
Tests for the in-process event bus.
"""
import pytest

from ballup.services.event_bus import BROADCAST_TOPIC, EventBus, game_topic, user_topic


def test_topic_names():
    assert game_topic("g1") == "game:g1"
    assert user_topic("u1") == "user:u1"
    assert BROADCAST_TOPIC == "broadcast"


@pytest.mark.asyncio
async def test_publish_reaches_subscribers_in_order():
    bus = EventBus()
    received = []

    async def first(topic, event, payload):
        received.append(("first", topic, event, payload))

    async def second(topic, event, payload):
        received.append(("second", topic, event, payload))

    bus.subscribe(first)
    bus.subscribe(second)
    bus.subscribe(first)

    await bus.publish("game:g1", "player-joined", {"userId": "u1"})
    assert received == [
        ("first", "game:g1", "player-joined", {"userId": "u1"}),
        ("second", "game:g1", "player-joined", {"userId": "u1"}),
    ]


@pytest.mark.asyncio
async def test_failing_subscriber_does_not_block_others():
    bus = EventBus()
    received = []

    async def broken(topic, event, payload):
        raise RuntimeError("socket gone")

    async def healthy(topic, event, payload):
        received.append(event)

    bus.subscribe(broken)
    bus.subscribe(healthy)

    await bus.publish("broadcast", "new-game-created", {})
    assert received == ["new-game-created"]


@pytest.mark.asyncio
async def test_unsubscribe():
    bus = EventBus()
    received = []

    async def handler(topic, event, payload):
        received.append(event)

    bus.subscribe(handler)
    bus.unsubscribe(handler)
    bus.unsubscribe(handler)

    await bus.publish("broadcast", "new-game-created", {})
    assert received == []
