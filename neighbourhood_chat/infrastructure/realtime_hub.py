# neighbourhood_chat/infrastructure/realtime_hub.py
"""Room based fan-out for WebSocket connections.

Rooms are plain strings: ``group_<groupId>`` for everyone looking at a group
and ``user_<userId>`` for a user's private channel. A connection is anything
with an ``async send_json(data)`` method, which covers Starlette's WebSocket.

Each worker keeps its own registry. Published frames are also relayed
through Redis so that subscribers connected to other workers receive them;
a worker ignores relayed frames it sent itself.
"""
import asyncio
import json
import logging
import uuid
from collections import defaultdict
from contextlib import suppress
from typing import Any, Protocol

from fastapi.encoders import jsonable_encoder
from redis.asyncio.client import PubSub

from neighbourhood_chat.infrastructure.redis_client import RedisClient

RELAY_PREFIX = "realtime:"


class Connection(Protocol):
    async def send_json(self, data: Any) -> None: ...


def group_room(group_id: str) -> str:
    return f"group_{group_id}"


def user_room(user_id: str) -> str:
    return f"user_{user_id}"


class RealtimeHub:
    def __init__(
        self,
        redis_client: RedisClient | None = None,
        logger: logging.Logger | None = None,
        relay: bool = True,
    ):
        self.redis_client = redis_client
        self.logger = logger or logging.getLogger("neighbourhood_chat.realtime")
        self.relay = relay
        self.instance_id = uuid.uuid4().hex
        self._rooms: dict[str, set[Connection]] = defaultdict(set)
        self._lock = asyncio.Lock()
        self._pubsub: PubSub | None = None
        self._listener: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._listener is not None and not self._listener.done()

    async def start(self) -> None:
        if self.running or not self._relay_enabled():
            return
        self._pubsub = await self.redis_client.psubscribe(f"{RELAY_PREFIX}*")
        self._listener = asyncio.create_task(self._listen(self._pubsub))
        self.logger.info(f"Realtime hub {self.instance_id} started")

    async def stop(self) -> None:
        if self._listener is not None:
            self._listener.cancel()
            with suppress(asyncio.CancelledError):
                await self._listener
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        async with self._lock:
            self._rooms.clear()
        self.logger.info(f"Realtime hub {self.instance_id} stopped")

    async def subscribe(self, connection: Connection, room: str) -> None:
        async with self._lock:
            self._rooms[room].add(connection)
        self.logger.debug(f"Connection subscribed to {room}")

    async def unsubscribe(self, connection: Connection, room: str) -> None:
        async with self._lock:
            members = self._rooms.get(room)
            if members is None:
                return
            members.discard(connection)
            if not members:
                del self._rooms[room]

    async def disconnect(self, connection: Connection) -> None:
        async with self._lock:
            for room in [r for r, members in self._rooms.items() if connection in members]:
                self._rooms[room].discard(connection)
                if not self._rooms[room]:
                    del self._rooms[room]

    async def subscribers(self, room: str) -> list[Connection]:
        async with self._lock:
            return list(self._rooms.get(room, ()))

    async def rooms_of(self, connection: Connection) -> set[str]:
        async with self._lock:
            return {room for room, members in self._rooms.items() if connection in members}

    async def publish(self, room: str, event: str, payload: Any) -> int:
        """Deliver ``event`` to every subscriber of ``room``.

        Returns the number of local connections that received the frame.
        """
        frame = {"event": event, "room": room, "payload": jsonable_encoder(payload)}
        delivered = await self._deliver(room, frame)

        if self._relay_enabled():
            try:
                await self.redis_client.publish(
                    f"{RELAY_PREFIX}{room}",
                    json.dumps({"origin": self.instance_id, **frame}),
                )
            except Exception as e:
                self.logger.warning(f"Relay of {event} to {room} failed: {e!s}")
        return delivered

    async def _deliver(self, room: str, frame: dict[str, Any]) -> int:
        targets = await self.subscribers(room)
        delivered = 0
        stale = []
        for connection in targets:
            try:
                await connection.send_json(frame)
                delivered += 1
            except Exception as e:
                self.logger.warning(f"Dropping connection in {room}: {e!s}")
                stale.append(connection)
        for connection in stale:
            await self.disconnect(connection)
        return delivered

    async def _listen(self, pubsub: PubSub) -> None:
        async for message in pubsub.listen():
            if message.get("type") != "pmessage":
                continue
            try:
                data = json.loads(message["data"])
            except (TypeError, ValueError):
                self.logger.warning(f"Ignoring malformed relay frame on {message.get('channel')}")
                continue
            if data.get("origin") == self.instance_id:
                continue
            room = data.get("room")
            if not room:
                continue
            await self._deliver(
                room,
                {"event": data.get("event"), "room": room, "payload": data.get("payload")},
            )

    def _relay_enabled(self) -> bool:
        return (
            self.relay
            and self.redis_client is not None
            and self.redis_client.connected
        )
