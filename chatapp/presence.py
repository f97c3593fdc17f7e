from typing import Dict, List, Optional


class PresenceRegistry:
    """Maps each online user id to the id of their live connection.

    One connection per user: registering again replaces the previous
    entry. State lives only in this process and starts empty.
    """

    def __init__(self):
        self._connections: Dict[int, str] = {}

    def register(self, user_id: int, connection_id: str) -> None:
        self._connections[user_id] = connection_id

    def unregister(self, user_id: int, connection_id: Optional[str] = None) -> bool:
        """Drop the user's entry.

        With ``connection_id`` given, the entry is only dropped while it
        still points at that connection, so a replaced connection closing
        late does not take its successor offline.
        """
        current = self._connections.get(user_id)
        if current is None:
            return False
        if connection_id is not None and current != connection_id:
            return False
        del self._connections[user_id]
        return True

    def lookup(self, user_id: int) -> Optional[str]:
        return self._connections.get(user_id)

    def online_user_ids(self) -> List[int]:
        return list(self._connections.keys())

    def is_online(self, user_id: int) -> bool:
        return user_id in self._connections

    def __len__(self) -> int:
        return len(self._connections)
