# neighbourhood_chat/api/realtime.py
import logging

from fastapi import APIRouter, Query, WebSocket, WebSocketDisconnect

from neighbourhood_chat.domain.identifiers import is_valid_id
from neighbourhood_chat.gateways.group_gateway import GroupGateway
from neighbourhood_chat.gateways.user_gateway import UserGateway
from neighbourhood_chat.infrastructure.db_wrapper import QuerySettings
from neighbourhood_chat.infrastructure.errors import ChatError
from neighbourhood_chat.infrastructure.realtime_hub import group_room, user_room
from neighbourhood_chat.infrastructure.uow import UnitOfWork

router = APIRouter()
logger = logging.getLogger("neighbourhood_chat.realtime")

POLICY_VIOLATION = 1008


async def _error(websocket: WebSocket, code: str, message: str) -> None:
    await websocket.send_json({"event": "error", "payload": {"code": code, "message": message}})


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket, token: str | None = Query(None)):
    state = websocket.app.state
    hub = state.realtime_hub
    settings = QuerySettings.from_config(state.config)

    user_id = state.security_service.decode_access_token(token) if token else None
    if user_id is not None:
        async with state.database.session() as session:
            user = await UserGateway(session, UnitOfWork(session), settings).get_user(user_id)
            if user is None or not user.is_active:
                user_id = None
    if user_id is None:
        await websocket.close(code=POLICY_VIOLATION)
        return

    await websocket.accept()
    await hub.subscribe(websocket, user_room(user_id))
    await websocket.send_json({"event": "connected", "payload": {"userId": user_id}})
    logger.info(f"Realtime connection opened for {user_id}")

    try:
        while True:
            try:
                frame = await websocket.receive_json()
            except ValueError:
                await _error(websocket, "INVALID_FRAME", "Frames must be JSON objects")
                continue
            if not isinstance(frame, dict):
                await _error(websocket, "INVALID_FRAME", "Frames must be JSON objects")
                continue

            event = frame.get("event")
            group_id = frame.get("groupId")
            if event not in ("join_group", "leave_group"):
                await _error(websocket, "UNKNOWN_EVENT", f"Unknown event {event!r}")
                continue
            if not is_valid_id(group_id):
                await _error(websocket, "INVALID_GROUP_ID", "Invalid group ID format")
                continue

            if event == "leave_group":
                await hub.unsubscribe(websocket, group_room(group_id))
                await websocket.send_json(
                    {"event": "group_left", "room": group_room(group_id), "payload": {"groupId": group_id}}
                )
                continue

            try:
                async with state.database.session() as session:
                    group = await GroupGateway(
                        session, UnitOfWork(session), settings
                    ).get_group_for_member(group_id, user_id)
            except ChatError as e:
                await _error(websocket, e.code, e.classification.user_friendly_message)
                continue
            if group is None:
                await _error(
                    websocket,
                    "GROUP_ACCESS_DENIED",
                    "Not a member of this group or group not found",
                )
                continue
            await hub.subscribe(websocket, group_room(group_id))
            await websocket.send_json(
                {"event": "group_joined", "room": group_room(group_id), "payload": {"groupId": group_id}}
            )
    except WebSocketDisconnect:
        logger.info(f"Realtime connection closed for {user_id}")
    finally:
        await hub.disconnect(websocket)
