from fastapi import APIRouter, Depends, HTTPException

import hub
from directory import User
from errors import RoomNotFound
from logging_config import get_logger
from routers.auth import get_current_user
from schemas.rooms import RoomDetailsResponse, RoomSummary

logger = get_logger(__name__)

rooms_router = APIRouter(prefix="/api/rooms", tags=["rooms"])


@rooms_router.get("", response_model=list[RoomSummary])
async def list_rooms(user: User = Depends(get_current_user)):
    rooms = hub.room_hub.list_rooms()
    logger.debug(f"Room list requested by {user.id}: {len(rooms)} rooms")
    return rooms


@rooms_router.get("/{room_id}", response_model=RoomDetailsResponse)
async def get_room_details(room_id: str, user: User = Depends(get_current_user)):
    """
    Get room details including online user count.

    Returns:
    - id: Unique room identifier
    - name: Room name
    - userCount: Current number of members
    - messageCount: Number of messages in the room history
    - users: Display name and photo of every member
    """
    try:
        details = hub.room_hub.get_room(room_id)
    except RoomNotFound:
        logger.warning(f"Room details failed: Room {room_id} not found")
        raise HTTPException(status_code=404, detail="Room not found")
    logger.info(f"Room details retrieved for {room_id}: {details.userCount} users online")
    return details
