"""Wire models for the WebSocket protocol.

Inbound frames are JSON objects tagged by ``type``; outbound frames are
``{"event": <name>, "data": <payload>}``.
"""
from pydantic import BaseModel, Field
from typing import Literal, Optional

from directory import Message


# Inbound commands

class CreateRoomCommand(BaseModel):
    type: Literal["create_room"]
    name: str

class JoinRoomCommand(BaseModel):
    type: Literal["join_room"]
    roomId: str

class LeaveRoomCommand(BaseModel):
    type: Literal["leave_room"]

class SendMessageCommand(BaseModel):
    type: Literal["send_message"]
    text: str

class ListRoomsCommand(BaseModel):
    type: Literal["list_rooms"]

COMMANDS = {
    "create_room": CreateRoomCommand,
    "join_room": JoinRoomCommand,
    "leave_room": LeaveRoomCommand,
    "send_message": SendMessageCommand,
    "list_rooms": ListRoomsCommand,
}


# Outbound event payloads

LOGIN_SUCCESS = "login_success"
ROOM_CREATED = "room_created"
ROOM_JOINED = "room_joined"
USER_JOINED = "user_joined"
USER_LEFT = "user_left"
NEW_MESSAGE = "new_message"
ROOMS_UPDATED = "rooms_updated"
ERROR = "error"


class LoginSuccess(BaseModel):
    id: str
    name: str
    email: Optional[str] = None
    photo: Optional[str] = None
    connectionId: str

class RoomCreated(BaseModel):
    id: str
    name: str

class RoomMember(BaseModel):
    id: str
    name: str
    photo: Optional[str] = None

class RoomJoined(BaseModel):
    roomId: str
    roomName: str
    messages: list[Message] = Field(default_factory=list)
    users: list[RoomMember] = Field(default_factory=list)

class UserJoined(BaseModel):
    userId: str
    userName: str
    userPhoto: Optional[str] = None

class UserLeft(BaseModel):
    userId: str
    userName: str

class ErrorEvent(BaseModel):
    message: str
