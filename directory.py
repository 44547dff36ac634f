"""In-memory directory of rooms and live connections.

Nothing here is persisted; the store starts empty with the process. Records
are mutated only by the room hub, which serializes access with its own lock.
"""
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict


class User(BaseModel):
    """Identity bound to a connection, rebuilt from token claims on every connect."""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    email: Optional[str] = None
    photo: Optional[str] = None


class Message(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    text: str
    userId: str
    userName: str
    userPhoto: Optional[str] = None
    timestamp: str


class Connection:
    """One live transport session. Holds at most one room reference."""

    def __init__(self, connection_id: str, user: User):
        self.id = connection_id
        self.user = user
        self.room_id: Optional[str] = None

    def __repr__(self):
        return f"Connection(id={self.id!r}, user={self.user.id!r}, room_id={self.room_id!r})"


class Room:
    def __init__(self, room_id: str, name: str):
        self.id = room_id
        self.name = name
        self._messages: List[Message] = []
        # dict keeps join order, used as an ordered set of connection ids
        self._members: Dict[str, None] = {}

    @property
    def messages(self) -> Tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def member_ids(self) -> Tuple[str, ...]:
        return tuple(self._members)

    def has_member(self, connection_id: str) -> bool:
        return connection_id in self._members

    def add_member(self, connection_id: str):
        self._members[connection_id] = None

    def remove_member(self, connection_id: str) -> bool:
        if connection_id not in self._members:
            return False
        del self._members[connection_id]
        return True

    def append_message(self, message: Message):
        self._messages.append(message)

    def __len__(self):
        return len(self._members)

    def __repr__(self):
        return f"Room(id={self.id!r}, name={self.name!r}, members={len(self._members)}, messages={len(self._messages)})"


class DirectoryStore:
    def __init__(self):
        self._rooms: Dict[str, Room] = {}
        self._connections: Dict[str, Connection] = {}

    # Rooms

    def add_room(self, room: Room):
        self._rooms[room.id] = room

    def get_room(self, room_id: str) -> Optional[Room]:
        return self._rooms.get(room_id)

    def rooms(self) -> Tuple[Room, ...]:
        return tuple(self._rooms.values())

    # Connections

    def add_connection(self, connection: Connection):
        self._connections[connection.id] = connection

    def get_connection(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def remove_connection(self, connection_id: str) -> Optional[Connection]:
        return self._connections.pop(connection_id, None)

    def connection_ids(self) -> Tuple[str, ...]:
        return tuple(self._connections)

    def __contains__(self, connection_id: str) -> bool:
        return connection_id in self._connections
