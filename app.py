from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from pydantic import ValidationError
from routers.auth import auth_router
from routers.rooms import rooms_router
from auth import extract_token, verify_token
from constants import CORS_ORIGINS, LOG_FILE, LOG_LEVEL
from errors import ChatError, InvalidRequest, TokenError
from schemas import events
from schemas.auth import HealthResponse
import hub
import uuid
import json
import asyncio
from datetime import datetime, timezone
from logging_config import get_logger, setup_logging

# Setup logging
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)
logger = get_logger(__name__)

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)
app.include_router(rooms_router)

logger.info("FastAPI application initialized")

# Seconds to let an outbox pump flush queued frames after its connection goes away
PUMP_DRAIN_TIMEOUT = 1.0


@app.get("/api/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="OK", timestamp=datetime.now(timezone.utc).isoformat())


def parse_command(data: str):
    try:
        payload = json.loads(data)
    except json.JSONDecodeError:
        raise InvalidRequest("Malformed message: expected JSON")
    if not isinstance(payload, dict):
        raise InvalidRequest("Malformed message: expected an object")

    command_type = payload.get("type")
    if not isinstance(command_type, str):
        raise InvalidRequest("Malformed message: missing command type")
    model = events.COMMANDS.get(command_type)
    if model is None:
        raise InvalidRequest(f"Unknown command: {command_type}")
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise InvalidRequest(f"Invalid {command_type} command: {e.error_count()} validation error(s)")


def dispatch_command(room_hub: hub.RoomHub, connection_id: str, data: str):
    """Run one inbound frame against the hub. Chat errors go back to the sender only."""
    try:
        command = parse_command(data)
        logger.debug(f"Command {command.type} from connection {connection_id}")
        if isinstance(command, events.CreateRoomCommand):
            room_hub.create_room(connection_id, command.name)
        elif isinstance(command, events.JoinRoomCommand):
            room_hub.join_room(connection_id, command.roomId)
        elif isinstance(command, events.LeaveRoomCommand):
            room_hub.leave_room(connection_id)
        elif isinstance(command, events.SendMessageCommand):
            room_hub.send_message(connection_id, command.text)
        elif isinstance(command, events.ListRoomsCommand):
            room_hub.send_room_list(connection_id)
    except ChatError as e:
        logger.warning(f"Command rejected for connection {connection_id}: {e.message}")
        room_hub.report_error(connection_id, e.message)


def disconnect_on_send_failure(room_hub: hub.RoomHub, connection_id: str, websocket: WebSocket):
    """Done-callback for an outbox pump: a failed send drops the connection from the hub and closes the socket."""
    def _on_done(task: asyncio.Task):
        if task.cancelled() or task.exception() is not None or task.result():
            return
        logger.info(f"Dropping connection {connection_id} after a failed send")
        room_hub.disconnect(connection_id)
        asyncio.ensure_future(close_websocket(websocket, connection_id))
    return _on_done


async def close_websocket(websocket: WebSocket, connection_id: str):
    try:
        await websocket.close()
    except Exception as e:
        # Already closed by the client
        logger.debug(f"Error closing WebSocket for connection {connection_id}: {e}")


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, token: str = None):
    """WebSocket endpoint for room commands and events.

    Query parameters:
    - token: Signed token from /api/auth/login (an Authorization: Bearer header also works)
    """
    room_hub = hub.room_hub
    client_host = websocket.client.host if websocket.client else "unknown"
    logger.info(f"WebSocket connection attempt from {client_host}")

    # Bind identity before accepting; unauthenticated sockets never reach the hub
    try:
        user = verify_token(extract_token(websocket.headers.get("authorization"), token))
    except TokenError as e:
        logger.info(f"WebSocket connection rejected from {client_host}: {e.message}")
        await websocket.close(code=1008, reason=e.message)
        return

    await websocket.accept()
    connection_id = uuid.uuid4().hex
    outbox = room_hub.connect(connection_id, user)
    pump_task = asyncio.create_task(room_hub.gateway.pump(connection_id, outbox, websocket.send_text))
    pump_task.add_done_callback(disconnect_on_send_failure(room_hub, connection_id, websocket))
    logger.info(f"WebSocket connection accepted: {connection_id} ({user.name})")

    message_count = 0
    try:
        while True:
            data = await websocket.receive_text()
            message_count += 1
            logger.debug(f"Received message #{message_count} from connection {connection_id}")
            dispatch_command(room_hub, connection_id, data)
    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected normally for connection {connection_id}")
    except Exception as e:
        logger.error(f"WebSocket error for connection {connection_id}: {e}", exc_info=True)
    finally:
        room_hub.disconnect(connection_id)
        try:
            await asyncio.wait_for(pump_task, timeout=PUMP_DRAIN_TIMEOUT)
        except asyncio.TimeoutError:
            logger.debug(f"Outbox pump for connection {connection_id} did not drain in time")
        await close_websocket(websocket, connection_id)
