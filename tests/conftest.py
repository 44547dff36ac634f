"""Shared fixtures: a fresh hub per test plus helpers to read what each connection was sent."""
import json

import pytest

from directory import User
from hub import RoomHub


class Client:
    """A registered connection and its outbox, as the transport would hold them."""

    def __init__(self, room_hub: RoomHub, connection_id: str, user: User):
        self.id = connection_id
        self.user = user
        self.outbox = room_hub.connect(connection_id, user)

    def drain(self):
        frames = []
        while not self.outbox.empty():
            frame = self.outbox.get_nowait()
            if frame is None:
                break
            frames.append(json.loads(frame))
        return frames

    def events(self, name=None):
        frames = self.drain()
        if name is None:
            return frames
        return [frame["data"] for frame in frames if frame["event"] == name]


@pytest.fixture
def room_hub():
    return RoomHub()


@pytest.fixture
def make_user():
    def _make_user(name: str) -> User:
        return User(id=f"user_{name.lower()}", name=name, email=f"{name.lower()}@example.com",
                    photo=f"https://example.com/{name.lower()}.png")
    return _make_user


@pytest.fixture
def connect(room_hub, make_user):
    """Register a connection for a new user, discarding the login greeting."""
    def _connect(name: str, connection_id: str = None) -> Client:
        client = Client(room_hub, connection_id or f"conn_{name.lower()}", make_user(name))
        client.drain()
        return client
    return _connect
