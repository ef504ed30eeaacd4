import json

import pytest

from conftest import RecordingBroadcaster
from thola_server.manager import ConnectionManager
from thola_server.models.dc_models import GameState
from thola_server.redis_subscriber import RedisSubscriber
from thola_server.services.broadcaster import FanoutBroadcaster, RedisBroadcaster
from thola_server.services.session_store import InMemorySessionStore


class FakeRedis:
    def __init__(self, messages=None):
        self.published = []
        self.messages = list(messages or [])
        self.subscribed = []
        self.closed = False

    async def publish(self, channel, message):
        self.published.append((channel, message))
        return 1

    def pubsub(self):
        return self

    async def subscribe(self, channel):
        self.subscribed.append(channel)

    async def unsubscribe(self, channel):
        self.subscribed.remove(channel)

    async def get_message(self, ignore_subscribe_messages=True, timeout=None):
        return self.messages.pop(0)

    async def aclose(self):
        self.closed = True


class BrokenBroadcaster:
    async def publish(self, event, payload):
        raise ConnectionError("gone")


async def test_redis_broadcaster_publishes_envelope():
    redis = FakeRedis()
    await RedisBroadcaster(redis, "game:main").publish("chat_message", {"text": "hi"})
    channel, message = redis.published[0]
    assert channel == "game:main"
    assert json.loads(message) == {"event": "chat_message", "data": {"text": "hi"}}


async def test_fanout_keeps_going_past_a_failing_sink():
    healthy = RecordingBroadcaster()
    fanout = FanoutBroadcaster([BrokenBroadcaster(), healthy])
    await fanout.publish("game_state", {"message": "x"})
    assert healthy.events == [("game_state", {"message": "x"})]


async def test_fanout_raises_when_every_sink_fails():
    with pytest.raises(ConnectionError):
        await FanoutBroadcaster([BrokenBroadcaster()]).publish("game_state", {})


async def test_subscriber_sends_snapshot_then_forwards_events():
    envelope = json.dumps({"event": "emoji_reaction", "data": {"sender_id": "p1", "emoji": "👏"}})
    redis = FakeRedis(
        messages=[
            {"type": "message", "data": "not json"},
            {"type": "message", "data": envelope},
        ]
    )
    store = InMemorySessionStore(GameState(message="hello"))
    generator = RedisSubscriber(store).event_generator("game:main", redis)

    first = await generator.__anext__()
    assert first.startswith("event: game_state\ndata: ")
    assert json.loads(first.split("data: ", 1)[1])["message"] == "hello"

    second = await generator.__anext__()
    assert second == f"event: emoji_reaction\ndata: {json.dumps({'sender_id': 'p1', 'emoji': '👏'})}\n\n"

    await generator.aclose()
    assert redis.closed
    assert redis.subscribed == []


class ClosedWebSocket:
    async def send_json(self, message):
        raise RuntimeError("Cannot call send once a close message has been sent")


class OpenWebSocket:
    def __init__(self):
        self.sent = []

    async def send_json(self, message):
        self.sent.append(message)


async def test_connection_manager_forgets_closed_sockets():
    manager = ConnectionManager()
    closed, open_socket = ClosedWebSocket(), OpenWebSocket()
    manager.active_connections = {"p1": [closed], "p2": [open_socket]}

    await manager.publish("game_state", {"message": "one"})
    assert manager.active_connections == {"p2": [open_socket]}

    await manager.publish("game_state", {"message": "two"})
    assert [m["data"]["message"] for m in open_socket.sent] == ["one", "two"]
