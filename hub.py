"""Room hub: the only code path that mutates rooms, membership and history.

Every operation runs under one process-wide lock and contains no ``await``,
so each one is atomic with respect to the others and the events it hands to
the gateway land in every outbox in the order they were produced. Failing
operations raise before touching any state.
"""
import asyncio
import threading
import uuid
from datetime import datetime, timezone
from typing import List, Optional

from constants import MAX_MESSAGE_LENGTH
from directory import Connection, DirectoryStore, Message, Room, User
from errors import InvalidRequest, NotAuthenticated, NotInRoom, RoomNotFound
from gateway import BroadcastGateway
from logging_config import get_logger
from schemas import events
from schemas.rooms import MemberSummary, RoomDetailsResponse, RoomSummary

logger = get_logger(__name__)


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class RoomHub:
    def __init__(self, gateway: Optional[BroadcastGateway] = None, store: Optional[DirectoryStore] = None,
                 max_message_length: int = MAX_MESSAGE_LENGTH):
        self.gateway = gateway if gateway is not None else BroadcastGateway()
        self._store = store if store is not None else DirectoryStore()
        self._lock = threading.RLock()
        self.max_message_length = max_message_length

    # Lookups

    def _bound_connection(self, connection_id: str) -> Connection:
        connection = self._store.get_connection(connection_id)
        if connection is None:
            raise NotAuthenticated()
        return connection

    def _require_room(self, room_id: str) -> Room:
        room = self._store.get_room(room_id)
        if room is None:
            raise RoomNotFound()
        return room

    def current_room_id(self, connection_id: str) -> Optional[str]:
        with self._lock:
            connection = self._store.get_connection(connection_id)
            return connection.room_id if connection else None

    def is_connected(self, connection_id: str) -> bool:
        with self._lock:
            return connection_id in self._store

    def members(self, room_id: str) -> tuple:
        with self._lock:
            return self._require_room(room_id).member_ids

    def history(self, room_id: str) -> tuple:
        with self._lock:
            return self._require_room(room_id).messages

    # Snapshots

    def _room_summary(self, room: Room) -> RoomSummary:
        users = []
        for connection_id in room.member_ids:
            connection = self._store.get_connection(connection_id)
            if connection is not None:
                users.append(MemberSummary(name=connection.user.name, photo=connection.user.photo))
        return RoomSummary(id=room.id, name=room.name, userCount=len(room), users=users)

    def list_rooms(self) -> List[RoomSummary]:
        with self._lock:
            return [self._room_summary(room) for room in self._store.rooms()]

    def get_room(self, room_id: str) -> RoomDetailsResponse:
        with self._lock:
            room = self._require_room(room_id)
            summary = self._room_summary(room)
            return RoomDetailsResponse(
                id=room.id,
                name=room.name,
                userCount=summary.userCount,
                messageCount=len(room.messages),
                users=summary.users,
            )

    def _broadcast_room_list(self):
        rooms = [summary.model_dump() for summary in self.list_rooms()]
        self.gateway.broadcast(events.ROOMS_UPDATED, rooms)

    def send_room_list(self, connection_id: str):
        with self._lock:
            self._bound_connection(connection_id)
            rooms = [summary.model_dump() for summary in self.list_rooms()]
            self.gateway.unicast(connection_id, events.ROOMS_UPDATED, rooms)

    def report_error(self, connection_id: str, message: str):
        with self._lock:
            self.gateway.unicast(connection_id, events.ERROR, events.ErrorEvent(message=message).model_dump())

    # Operations

    def connect(self, connection_id: str, user: User) -> asyncio.Queue:
        """Bind a verified user to a new connection and greet it. Returns the connection's outbox."""
        with self._lock:
            if connection_id in self._store:
                raise InvalidRequest(f"Connection {connection_id} already registered")
            self._store.add_connection(Connection(connection_id, user))
            outbox = self.gateway.register(connection_id)
            self.gateway.unicast(connection_id, events.LOGIN_SUCCESS, events.LoginSuccess(
                id=user.id, name=user.name, email=user.email, photo=user.photo, connectionId=connection_id,
            ).model_dump())
        logger.info(f"User {user.name} ({user.id}) bound to connection {connection_id}")
        return outbox

    def create_room(self, connection_id: str, name: str) -> Room:
        name = (name or "").strip()
        with self._lock:
            self._bound_connection(connection_id)
            if not name:
                raise InvalidRequest("Room name is required")
            room = Room(f"room_{uuid.uuid4().hex}", name)
            self._store.add_room(room)
            self.gateway.unicast(connection_id, events.ROOM_CREATED, events.RoomCreated(id=room.id, name=room.name).model_dump())
            self._broadcast_room_list()
        logger.info(f"Room created: {room.name} with ID: {room.id}")
        return room

    def _leave_current_room(self, connection: Connection) -> Optional[Room]:
        if connection.room_id is None:
            return None
        room = self._store.get_room(connection.room_id)
        connection.room_id = None
        if room is None:
            return None
        room.remove_member(connection.id)
        self.gateway.room_cast(room.member_ids, events.USER_LEFT, events.UserLeft(
            userId=connection.id, userName=connection.user.name,
        ).model_dump(), exclude=connection.id)
        logger.info(f"User {connection.user.name} left room {room.name} ({room.id})")
        return room

    def join_room(self, connection_id: str, room_id: str) -> Room:
        with self._lock:
            connection = self._bound_connection(connection_id)
            room = self._require_room(room_id)

            rejoin = connection.room_id == room.id
            if not rejoin:
                self._leave_current_room(connection)
                room.add_member(connection.id)
                connection.room_id = room.id

            users = []
            for member_id in room.member_ids:
                member = self._store.get_connection(member_id)
                if member is not None:
                    users.append(events.RoomMember(id=member.id, name=member.user.name, photo=member.user.photo))
            self.gateway.unicast(connection_id, events.ROOM_JOINED, events.RoomJoined(
                roomId=room.id, roomName=room.name, messages=list(room.messages), users=users,
            ).model_dump())

            if not rejoin:
                self.gateway.room_cast(room.member_ids, events.USER_JOINED, events.UserJoined(
                    userId=connection.id, userName=connection.user.name, userPhoto=connection.user.photo,
                ).model_dump(), exclude=connection.id)
                self._broadcast_room_list()
        logger.info(f"User {connection.user.name} joined room {room.name}")
        return room

    def leave_room(self, connection_id: str) -> Room:
        with self._lock:
            connection = self._bound_connection(connection_id)
            if connection.room_id is None:
                raise NotInRoom()
            room = self._leave_current_room(connection)
            self._broadcast_room_list()
        return room

    def send_message(self, connection_id: str, text: str) -> Message:
        with self._lock:
            connection = self._bound_connection(connection_id)
            if connection.room_id is None:
                raise NotInRoom()
            room = self._require_room(connection.room_id)
            if not isinstance(text, str) or not text.strip():
                raise InvalidRequest("Message text is required")
            if len(text) > self.max_message_length:
                raise InvalidRequest(f"Message exceeds {self.max_message_length} characters")

            message = Message(
                id=f"msg_{uuid.uuid4().hex}",
                text=text,
                userId=connection.id,
                userName=connection.user.name,
                userPhoto=connection.user.photo,
                timestamp=utc_timestamp(),
            )
            room.append_message(message)
            # The sender gets the echo too; clients render from it
            self.gateway.room_cast(room.member_ids, events.NEW_MESSAGE, message.model_dump())
        logger.debug(f"Message from {connection.user.name} in room {room.name}: {len(text)} chars")
        return message

    def disconnect(self, connection_id: str) -> bool:
        """Remove a connection and its membership. Returns False if it was already gone."""
        with self._lock:
            connection = self._store.remove_connection(connection_id)
            if connection is None:
                logger.debug(f"Disconnect for unknown connection {connection_id}, nothing to do")
                return False
            self.gateway.unregister(connection_id)
            left = self._leave_current_room(connection)
            if left is not None:
                self._broadcast_room_list()
        logger.info(f"User disconnected: {connection.user.name} ({connection_id})")
        return True


room_hub = RoomHub()
