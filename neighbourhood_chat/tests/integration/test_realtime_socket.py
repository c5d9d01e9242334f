import asyncio

import pytest
from fastapi import WebSocketDisconnect

from neighbourhood_chat.api.realtime import POLICY_VIOLATION, realtime_socket
from neighbourhood_chat.domain.identifiers import new_id
from neighbourhood_chat.infrastructure.realtime_hub import group_room, user_room

pytestmark = pytest.mark.asyncio


class FakeWebSocket:
    """Replays queued client frames, then disconnects."""

    def __init__(self, app, incoming):
        self.app = app
        self.incoming = list(incoming)
        self.sent = []
        self.accepted = False
        self.close_code = None

    async def accept(self):
        self.accepted = True

    async def close(self, code=1000):
        self.close_code = code

    async def send_json(self, data):
        self.sent.append(data)

    async def receive_json(self):
        if not self.incoming:
            raise WebSocketDisconnect(code=1000)
        frame = self.incoming.pop(0)
        if isinstance(frame, Exception):
            raise frame
        return frame


def token_for(security_service, user_id):
    token, _ = security_service.create_access_token({"sub": user_id})
    return token


async def test_rejects_missing_token(app):
    websocket = FakeWebSocket(app, [])

    await realtime_socket(websocket, token=None)

    assert websocket.accepted is False
    assert websocket.close_code == POLICY_VIOLATION


async def test_rejects_unknown_user(app, seed, security_service):
    websocket = FakeWebSocket(app, [])

    await realtime_socket(websocket, token=token_for(security_service, new_id()))

    assert websocket.close_code == POLICY_VIOLATION


async def test_join_and_leave_group_room(app, seed, security_service, hub):
    rooms_seen = []

    class Probe(FakeWebSocket):
        async def send_json(self, data):
            await super().send_json(data)
            rooms_seen.append(await hub.rooms_of(self))

    websocket = Probe(
        app,
        [
            {"event": "join_group", "groupId": seed.G1},
            {"event": "leave_group", "groupId": seed.G1},
        ],
    )

    await realtime_socket(websocket, token=token_for(security_service, seed.U1))

    assert websocket.accepted is True
    assert [frame["event"] for frame in websocket.sent] == [
        "connected",
        "group_joined",
        "group_left",
    ]
    assert rooms_seen == [
        {user_room(seed.U1)},
        {user_room(seed.U1), group_room(seed.G1)},
        {user_room(seed.U1)},
    ]
    # the connection is forgotten once the client goes away
    assert await hub.rooms_of(websocket) == set()


async def test_join_denied_for_non_member(app, seed, security_service, hub):
    websocket = FakeWebSocket(app, [{"event": "join_group", "groupId": seed.G2}])

    await realtime_socket(websocket, token=token_for(security_service, seed.U1))

    error = websocket.sent[-1]
    assert error["event"] == "error"
    assert error["payload"]["code"] == "GROUP_ACCESS_DENIED"


async def test_bad_frames_get_error_replies(app, seed, security_service):
    websocket = FakeWebSocket(
        app,
        [
            ValueError("not json"),
            ["not", "an", "object"],
            {"event": "dance"},
            {"event": "join_group", "groupId": "G1"},
        ],
    )

    await realtime_socket(websocket, token=token_for(security_service, seed.U1))

    codes = [frame["payload"]["code"] for frame in websocket.sent if frame["event"] == "error"]
    assert codes == ["INVALID_FRAME", "INVALID_FRAME", "UNKNOWN_EVENT", "INVALID_GROUP_ID"]


class QueueWebSocket(FakeWebSocket):
    def __init__(self, app):
        super().__init__(app, [])
        self.queue = asyncio.Queue()

    async def receive_json(self):
        frame = await self.queue.get()
        if frame is None:
            raise WebSocketDisconnect(code=1000)
        return frame


async def wait_for_event(websocket, event, attempts=200):
    for _ in range(attempts):
        if any(frame["event"] == event for frame in websocket.sent):
            return
        await asyncio.sleep(0.01)
    raise AssertionError(f"{event} never arrived, got {websocket.sent}")


async def test_joined_socket_receives_group_traffic(
    app, client, seed, security_service, auth_for
):
    websocket = QueueWebSocket(app)
    task = asyncio.create_task(
        realtime_socket(websocket, token=token_for(security_service, seed.U2))
    )
    await websocket.queue.put({"event": "join_group", "groupId": seed.G1})
    await wait_for_event(websocket, "group_joined")

    response = await client.post(
        f"/api/chat/groups/{seed.G1}/messages",
        headers=auth_for(seed.U1),
        json={"content": "evening all"},
    )
    assert response.status_code == 201

    await websocket.queue.put(None)
    await task

    events = {frame["event"]: frame for frame in websocket.sent}
    assert events["new_message"]["room"] == group_room(seed.G1)
    assert events["new_message"]["payload"] == response.json()
    assert events["notification_update"]["room"] == user_room(seed.U2)
    assert events["notification_update"]["payload"]["messageId"] == response.json()["id"]
    assert "message_sent" not in events
