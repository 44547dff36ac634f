"""End-to-end tests for the HTTP routes and the WebSocket endpoint."""
import asyncio

import jwt
import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

import hub
from app import app, disconnect_on_send_failure
from auth import issue_token
from constants import JWT_ALGORITHM, JWT_SECRET
from directory import User


@pytest.fixture
def fresh_hub(monkeypatch):
    room_hub = hub.RoomHub()
    monkeypatch.setattr(hub, "room_hub", room_hub)
    return room_hub


@pytest.fixture
def client(fresh_hub):
    with TestClient(app) as test_client:
        yield test_client


def login(client, name):
    response = client.post("/api/auth/login", json={"name": name, "email": f"{name.lower()}@example.com"})
    assert response.status_code == 200
    return response.json()


def receive_until(ws, event):
    """Read frames until one named ``event`` arrives and return its payload."""
    while True:
        frame = ws.receive_json()
        if frame["event"] == event:
            return frame["data"]


def test_health(client):
    response = client.get("/api/health")

    assert response.status_code == 200
    assert response.json()["status"] == "OK"


def test_login_issues_token(client):
    body = login(client, "Alice")

    assert body["success"] is True
    assert body["user"]["name"] == "Alice"
    assert body["user"]["photo"].startswith("https://ui-avatars.com/api/?name=Alice")
    verify = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {body['token']}"})
    assert verify.status_code == 200
    assert verify.json() == {"success": True, "user": body["user"]}
    profile = client.get("/api/auth/profile", headers={"Authorization": f"Bearer {body['token']}"})
    assert profile.json()["user"]["id"] == body["user"]["id"]


@pytest.mark.parametrize("payload", [{"name": "Alice"}, {"email": "a@example.com"}, {"name": " ", "email": "a@example.com"}])
def test_login_requires_name_and_email(client, payload):
    response = client.post("/api/auth/login", json=payload)

    assert response.status_code == 400


@pytest.mark.parametrize("headers", [{}, {"Authorization": "Bearer nonsense"}, {"Authorization": "Token abc"}])
def test_protected_routes_require_valid_token(client, headers):
    assert client.get("/api/auth/verify", headers=headers).status_code == 401
    assert client.get("/api/rooms", headers=headers).status_code == 401


def test_expired_token_is_rejected_over_http(client):
    token = issue_token(User(id="user_1", name="Alice"), ttl_seconds=-60)

    response = client.get("/api/auth/profile", headers={"Authorization": f"Bearer {token}"})

    assert response.status_code == 401


def test_token_with_malformed_profile_claims_is_rejected(client, fresh_hub):
    token = jwt.encode({"userId": "user_1", "name": "Alice", "email": 123}, JWT_SECRET, algorithm=JWT_ALGORITHM)

    response = client.get("/api/auth/verify", headers={"Authorization": f"Bearer {token}"})
    assert response.status_code == 401

    with pytest.raises(WebSocketDisconnect) as exc_info:
        with client.websocket_connect(f"/ws?token={token}"):
            pass
    assert exc_info.value.code == 1008
    assert len(fresh_hub.gateway) == 0


def test_websocket_without_valid_token_is_refused(client, fresh_hub):
    for url in ("/ws", "/ws?token=garbage"):
        with pytest.raises(WebSocketDisconnect) as exc_info:
            with client.websocket_connect(url):
                pass
        assert exc_info.value.code == 1008

    assert len(fresh_hub.gateway) == 0
    assert fresh_hub.list_rooms() == []


def test_websocket_accepts_bearer_header(client):
    body = login(client, "Alice")

    with client.websocket_connect("/ws", headers={"Authorization": f"Bearer {body['token']}"}) as ws:
        greeting = ws.receive_json()

    assert greeting["event"] == "login_success"
    assert greeting["data"]["id"] == body["user"]["id"]


def test_chat_scenario_over_websocket(client, fresh_hub):
    alice = login(client, "Alice")
    bob = login(client, "Bob")
    headers = {"Authorization": f"Bearer {alice['token']}"}

    with client.websocket_connect(f"/ws?token={alice['token']}") as ws1:
        first = receive_until(ws1, "login_success")
        with client.websocket_connect(f"/ws?token={bob['token']}") as ws2:
            second = receive_until(ws2, "login_success")
            assert first["name"] == "Alice"

            ws1.send_json({"type": "create_room", "name": "general"})
            room = receive_until(ws1, "room_created")
            assert room["name"] == "general"

            ws1.send_json({"type": "join_room", "roomId": room["id"]})
            joined = receive_until(ws1, "room_joined")
            assert joined["messages"] == []
            assert [user["id"] for user in joined["users"]] == [first["connectionId"]]

            ws2.send_json({"type": "join_room", "roomId": room["id"]})
            joined = receive_until(ws2, "room_joined")
            assert [user["name"] for user in joined["users"]] == ["Alice", "Bob"]
            assert receive_until(ws1, "user_joined")["userId"] == second["connectionId"]

            rooms = client.get("/api/rooms", headers=headers).json()
            assert rooms == [{"id": room["id"], "name": "general", "userCount": 2, "users": [
                {"name": "Alice", "photo": alice["user"]["photo"]},
                {"name": "Bob", "photo": bob["user"]["photo"]},
            ]}]

            ws1.send_json({"type": "send_message", "text": "hi"})
            for ws in (ws1, ws2):
                message = receive_until(ws, "new_message")
                assert message["text"] == "hi"
                assert message["userId"] == first["connectionId"]
                assert message["userName"] == "Alice"
            assert len(fresh_hub.history(room["id"])) == 1

            details = client.get(f"/api/rooms/{room['id']}", headers=headers).json()
            assert details["messageCount"] == 1

        left = receive_until(ws1, "user_left")
        assert left == {"userId": second["connectionId"], "userName": "Bob"}

    assert fresh_hub.list_rooms()[0].userCount == 0
    assert len(fresh_hub.gateway) == 0


def test_command_errors_are_sent_to_offender_only(client):
    alice = login(client, "Alice")

    with client.websocket_connect(f"/ws?token={alice['token']}") as ws:
        receive_until(ws, "login_success")

        ws.send_json({"type": "send_message", "text": "hi"})
        assert receive_until(ws, "error") == {"message": "User not in a room"}

        ws.send_json({"type": "join_room", "roomId": "room_missing"})
        assert receive_until(ws, "error") == {"message": "Room not found"}

        ws.send_text("not json")
        assert receive_until(ws, "error")["message"].startswith("Malformed message")

        ws.send_json({"type": "dance"})
        assert receive_until(ws, "error") == {"message": "Unknown command: dance"}

        ws.send_json({"type": "join_room"})
        assert receive_until(ws, "error")["message"].startswith("Invalid join_room command")

        ws.send_json({"type": ["create_room"], "name": "x"})
        assert receive_until(ws, "error") == {"message": "Malformed message: missing command type"}

        ws.send_json({"name": "x"})
        assert receive_until(ws, "error") == {"message": "Malformed message: missing command type"}

        # Connection is still usable after errors
        ws.send_json({"type": "list_rooms"})
        assert receive_until(ws, "rooms_updated") == []


def test_get_unknown_room_returns_404(client):
    alice = login(client, "Alice")

    response = client.get("/api/rooms/room_missing", headers={"Authorization": f"Bearer {alice['token']}"})

    assert response.status_code == 404


def test_rooms_updated_is_broadcast_to_everyone(client):
    alice = login(client, "Alice")
    bob = login(client, "Bob")

    with client.websocket_connect(f"/ws?token={alice['token']}") as ws1, \
            client.websocket_connect(f"/ws?token={bob['token']}") as ws2:
        receive_until(ws1, "login_success")
        receive_until(ws2, "login_success")

        ws1.send_json({"type": "create_room", "name": "general"})

        rooms = receive_until(ws2, "rooms_updated")
        assert [(room["name"], room["userCount"]) for room in rooms] == [("general", 0)]


class BrokenSocket:
    """Stands in for a WebSocket whose peer vanished: every send fails."""

    def __init__(self):
        self.closed = False

    async def send_text(self, frame):
        raise ConnectionResetError("peer gone")

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_failed_send_drops_connection_from_hub():
    room_hub = hub.RoomHub()
    websocket = BrokenSocket()
    outbox = room_hub.connect("conn_1", User(id="user_1", name="Alice"))
    room_hub.connect("conn_2", User(id="user_2", name="Bob"))
    room = room_hub.create_room("conn_2", "general")
    room_hub.join_room("conn_1", room.id)
    room_hub.join_room("conn_2", room.id)

    pump_task = asyncio.create_task(room_hub.gateway.pump("conn_1", outbox, websocket.send_text))
    pump_task.add_done_callback(disconnect_on_send_failure(room_hub, "conn_1", websocket))
    assert await asyncio.wait_for(pump_task, timeout=1) is False
    # Let the done-callback and the close it schedules run
    for _ in range(3):
        await asyncio.sleep(0)

    assert not room_hub.is_connected("conn_1")
    assert not room_hub.gateway.is_registered("conn_1")
    assert room_hub.members(room.id) == ("conn_2",)
    assert websocket.closed is True


@pytest.mark.asyncio
async def test_closed_outbox_keeps_connection():
    room_hub = hub.RoomHub()
    websocket = BrokenSocket()
    outbox = room_hub.connect("conn_1", User(id="user_1", name="Alice"))
    outbox.get_nowait()
    room_hub.gateway.unregister("conn_1")

    pump_task = asyncio.create_task(room_hub.gateway.pump("conn_1", outbox, websocket.send_text))
    pump_task.add_done_callback(disconnect_on_send_failure(room_hub, "conn_1", websocket))
    assert await asyncio.wait_for(pump_task, timeout=1) is True
    await asyncio.sleep(0)

    assert room_hub.is_connected("conn_1")
    assert websocket.closed is False
