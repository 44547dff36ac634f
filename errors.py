"""Errors raised by the room hub and the session binder.

Every error is recoverable at the connection scope: the transport turns it
into an ``error`` event for the offending connection and shared state is left
untouched.
"""


class ChatError(Exception):
    message = "Chat error"

    def __init__(self, message: str = None):
        self.message = message or self.message
        super().__init__(self.message)


class NotAuthenticated(ChatError):
    message = "User not authenticated"


class RoomNotFound(ChatError):
    message = "Room not found"


class NotInRoom(ChatError):
    message = "User not in a room"


class InvalidRequest(ChatError):
    message = "Invalid request"


class TokenError(ChatError):
    message = "Invalid or expired token"


class InvalidToken(TokenError):
    message = "Invalid token"


class ExpiredToken(TokenError):
    message = "Token expired"
