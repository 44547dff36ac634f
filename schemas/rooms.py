from pydantic import BaseModel
from typing import Optional


class MemberSummary(BaseModel):
    name: str
    photo: Optional[str] = None

class RoomSummary(BaseModel):
    id: str
    name: str
    userCount: int
    users: list[MemberSummary]

class RoomDetailsResponse(BaseModel):
    id: str
    name: str
    userCount: int
    messageCount: int
    users: list[MemberSummary]
