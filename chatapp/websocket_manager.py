import logging
import uuid
from typing import Any, Dict, List, Set

from fastapi import WebSocket

from chatapp.presence import PresenceRegistry
from chatapp.schemas.message import DirectMessageResponse, GroupMessageResponse

logger = logging.getLogger(__name__)

ONLINE_USERS_EVENT = "getOnlineUsers"
NEW_MESSAGE_EVENT = "newMessage"
NEW_GROUP_MESSAGE_EVENT = "newGroupMessage"


class ConnectionManager:
    """Live connections, presence and group rooms for this process.

    Pushes are best-effort: a failed send is logged and dropped, since
    every message is already stored before it is pushed.
    """

    def __init__(self, presence: PresenceRegistry = None):
        self.presence = presence or PresenceRegistry()
        self.active_connections: Dict[str, WebSocket] = {}
        self.connection_users: Dict[str, int] = {}
        self.rooms: Dict[int, Set[str]] = {}

    async def connect(self, websocket: WebSocket, user_id: int) -> str:
        await websocket.accept()
        connection_id = uuid.uuid4().hex
        self.active_connections[connection_id] = websocket
        self.connection_users[connection_id] = user_id
        self.presence.register(user_id, connection_id)
        logger.info(f"User {user_id} connected ({connection_id})")

        await self.broadcast_online_users()
        return connection_id

    async def disconnect(self, connection_id: str) -> None:
        self.active_connections.pop(connection_id, None)
        user_id = self.connection_users.pop(connection_id, None)
        for group_id in list(self.rooms.keys()):
            self._discard_from_room(group_id, connection_id)

        if user_id is None:
            return
        self.presence.unregister(user_id, connection_id)
        logger.info(f"User {user_id} disconnected ({connection_id})")
        await self.broadcast_online_users()

    def join_room(self, connection_id: str, group_id: int) -> None:
        if connection_id not in self.active_connections:
            return
        self.rooms.setdefault(group_id, set()).add(connection_id)
        logger.debug(f"Connection {connection_id} joined group {group_id}")

    def leave_room(self, connection_id: str, group_id: int) -> None:
        self._discard_from_room(group_id, connection_id)
        logger.debug(f"Connection {connection_id} left group {group_id}")

    def _discard_from_room(self, group_id: int, connection_id: str) -> None:
        members = self.rooms.get(group_id)
        if members is None:
            return
        members.discard(connection_id)
        if not members:
            del self.rooms[group_id]

    def room_connections(self, group_id: int) -> Set[str]:
        return set(self.rooms.get(group_id, ()))

    async def send_to_connection(self, connection_id: str, event: Dict[str, Any]) -> bool:
        websocket = self.active_connections.get(connection_id)
        if websocket is None:
            return False
        try:
            await websocket.send_json(event)
        except Exception as e:
            logger.warning(f"Push to connection {connection_id} failed: {e}")
            return False
        return True

    async def send_personal_message(self, event: Dict[str, Any], user_id: int) -> bool:
        connection_id = self.presence.lookup(user_id)
        if connection_id is None:
            return False
        return await self.send_to_connection(connection_id, event)

    async def broadcast_online_users(self) -> None:
        event = {"type": ONLINE_USERS_EVENT, "data": self.presence.online_user_ids()}
        for connection_id in list(self.active_connections.keys()):
            await self.send_to_connection(connection_id, event)

    async def deliver_direct_message(self, message) -> bool:
        """Push a stored direct message to the receiver's connection, if online."""
        payload = DirectMessageResponse.model_validate(message).model_dump(mode="json")
        return await self.send_personal_message(
            {"type": NEW_MESSAGE_EVENT, "data": payload}, message.receiver_id
        )

    async def deliver_group_message(self, message) -> int:
        """Push a stored group message to every connection in the group's room."""
        payload = GroupMessageResponse.model_validate(message).model_dump(mode="json")
        event = {"type": NEW_GROUP_MESSAGE_EVENT, "data": payload}
        delivered = 0
        for connection_id in self.room_connections(message.group_id):
            if await self.send_to_connection(connection_id, event):
                delivered += 1
        return delivered

    def get_connected_users(self) -> List[int]:
        return self.presence.online_user_ids()

    def is_user_online(self, user_id: int) -> bool:
        return self.presence.is_online(user_id)

manager = ConnectionManager()
