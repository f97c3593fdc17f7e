import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from pydantic import ValidationError as PayloadError

from chatapp.auth import ACCESS_COOKIE, get_user_from_token
from chatapp.database import AsyncSessionLocal
from chatapp.dependencies import get_connection_manager
from chatapp.errors import AuthError
from chatapp.schemas.message import RoomAction
from chatapp.websocket_manager import ConnectionManager

logger = logging.getLogger(__name__)

router = APIRouter()

@router.websocket("")
async def websocket_endpoint(
    websocket: WebSocket,
    user_id: Optional[int] = None,
    token: Optional[str] = None,
    manager: ConnectionManager = Depends(get_connection_manager),
):
    """Realtime channel.

    The handshake names the user with ``user_id``; the access token
    (cookie or ``token`` query parameter) must belong to that same user.
    """
    if user_id is None:
        await websocket.close(code=1008, reason="user_id required")
        return

    access_token = websocket.cookies.get(ACCESS_COOKIE) or token
    async with AsyncSessionLocal() as db:
        try:
            user = await get_user_from_token(access_token, db)
        except AuthError as e:
            logger.info(f"Rejected websocket handshake for user {user_id}: {e.message}")
            await websocket.close(code=1008, reason=e.message)
            return

    if user.id != user_id:
        await websocket.close(code=1008, reason="Token does not match user_id")
        return

    connection_id = await manager.connect(websocket, user.id)
    try:
        while True:
            data = await websocket.receive_text()
            try:
                frame = json.loads(data)
            except json.JSONDecodeError:
                await manager.send_to_connection(connection_id, {
                    "type": "error",
                    "message": "Invalid JSON format"
                })
                continue
            if not isinstance(frame, dict):
                await manager.send_to_connection(connection_id, {
                    "type": "error",
                    "message": "Frame must be a JSON object"
                })
                continue
            await handle_websocket_message(manager, connection_id, frame.get("action"), frame.get("data") or {})
    except WebSocketDisconnect:
        pass
    finally:
        await manager.disconnect(connection_id)

async def handle_websocket_message(manager: ConnectionManager, connection_id: str, action: str, payload):

    if action in ("joinGroup", "leaveGroup"):
        try:
            room = RoomAction.model_validate(payload)
        except PayloadError:
            await manager.send_to_connection(connection_id, {
                "type": "error",
                "message": f"{action} requires a numeric group_id"
            })
            return
        if action == "joinGroup":
            manager.join_room(connection_id, room.group_id)
        else:
            manager.leave_room(connection_id, room.group_id)

    elif action == "ping":
        await manager.send_to_connection(connection_id, {"type": "pong"})

    else:
        await manager.send_to_connection(connection_id, {
            "type": "error",
            "message": f"Unknown action: {action}"
        })

@router.get("/online-users")
async def get_online_users(manager: ConnectionManager = Depends(get_connection_manager)):
    connected_users = manager.get_connected_users()
    return {"online_users": connected_users, "count": len(connected_users)}
