import asyncio
import json
import logging
from datetime import UTC, datetime

import pytest

from neighbourhood_chat.infrastructure.realtime_hub import (
    RELAY_PREFIX,
    RealtimeHub,
    group_room,
    user_room,
)
from neighbourhood_chat.infrastructure.redis_client import RedisClient


class Recorder:
    def __init__(self):
        self.frames = []

    async def send_json(self, data):
        self.frames.append(data)


class Broken:
    async def send_json(self, data):
        raise RuntimeError("gone")


@pytest.fixture
async def redis_client(mock_redis):
    client = RedisClient("localhost", 6379, logging.getLogger("test"))
    client.client = mock_redis
    return client


def test_room_names():
    assert group_room("g1") == "group_g1"
    assert user_room("u1") == "user_u1"


async def test_publish_reaches_only_room_subscribers():
    hub = RealtimeHub()
    inside, outside = Recorder(), Recorder()
    await hub.subscribe(inside, "group_g1")
    await hub.subscribe(outside, "group_g2")

    delivered = await hub.publish("group_g1", "new_message", {"id": "m1"})

    assert delivered == 1
    assert inside.frames == [{"event": "new_message", "room": "group_g1", "payload": {"id": "m1"}}]
    assert outside.frames == []


async def test_failing_connection_is_dropped():
    hub = RealtimeHub()
    good, bad = Recorder(), Broken()
    await hub.subscribe(good, "group_g1")
    await hub.subscribe(bad, "group_g1")
    await hub.subscribe(bad, "user_u1")

    delivered = await hub.publish("group_g1", "new_message", {})

    assert delivered == 1
    assert await hub.rooms_of(bad) == set()
    assert await hub.subscribers("group_g1") == [good]


async def test_unsubscribe_and_disconnect():
    hub = RealtimeHub()
    connection = Recorder()
    await hub.subscribe(connection, "group_g1")
    await hub.subscribe(connection, "user_u1")

    await hub.unsubscribe(connection, "group_g1")
    assert await hub.rooms_of(connection) == {"user_u1"}

    await hub.disconnect(connection)
    assert await hub.rooms_of(connection) == set()
    assert await hub.publish("user_u1", "message_sent", {}) == 0


async def test_payload_is_json_encoded():
    hub = RealtimeHub()
    connection = Recorder()
    await hub.subscribe(connection, "user_u1")

    await hub.publish("user_u1", "notification_update", {"at": datetime(2024, 1, 1, tzinfo=UTC)})

    assert connection.frames[0]["payload"] == {"at": "2024-01-01T00:00:00+00:00"}


async def test_publish_is_relayed_through_redis(redis_client, mock_redis):
    hub = RealtimeHub(redis_client)
    pubsub = mock_redis.pubsub(ignore_subscribe_messages=True)
    await pubsub.psubscribe(f"{RELAY_PREFIX}*")

    await hub.publish("group_g1", "new_message", {"id": "m1"})

    message = None
    for _ in range(50):
        message = await pubsub.get_message(timeout=0.05)
        if message is not None:
            break
    await pubsub.aclose()

    assert message["channel"] == f"{RELAY_PREFIX}group_g1"
    data = json.loads(message["data"])
    assert data["origin"] == hub.instance_id
    assert data["payload"] == {"id": "m1"}


async def test_relay_failure_does_not_break_local_delivery(redis_client, monkeypatch, caplog):
    async def broken_publish(channel, message):
        raise ConnectionError("redis down")

    monkeypatch.setattr(redis_client, "publish", broken_publish)
    hub = RealtimeHub(redis_client)
    connection = Recorder()
    await hub.subscribe(connection, "group_g1")

    delivered = await hub.publish("group_g1", "new_message", {})

    assert delivered == 1
    assert any("Relay of new_message" in r.message for r in caplog.records)


async def test_no_relay_before_redis_connects():
    hub = RealtimeHub(RedisClient("localhost", 6379, logging.getLogger("test")))

    assert await hub.publish("group_g1", "new_message", {}) == 0


async def test_listener_delivers_frames_from_other_workers(redis_client):
    receiver = RealtimeHub(redis_client)
    sender = RealtimeHub(redis_client)
    connection, echo = Recorder(), Recorder()
    await receiver.subscribe(connection, "group_g1")
    await sender.subscribe(echo, "group_g1")
    await receiver.start()
    await sender.start()
    try:
        await sender.publish("group_g1", "new_message", {"id": "m1"})
        for _ in range(100):
            if connection.frames:
                break
            await asyncio.sleep(0.01)
    finally:
        await receiver.stop()
        await sender.stop()

    assert connection.frames == [
        {"event": "new_message", "room": "group_g1", "payload": {"id": "m1"}}
    ]
    # the sender's own relayed copy is ignored
    assert len(echo.frames) == 1
