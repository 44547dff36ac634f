"""Event delivery to live connections.

Each registered connection gets an outbox queue. Delivery only enqueues, so
the hub never waits on a socket; a per-connection ``pump`` task drains the
outbox into the transport. Because the hub enqueues while holding its lock,
every member of a room sees that room's events in production order.
"""
import asyncio
import json
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional

from logging_config import get_logger

logger = get_logger(__name__)

_CLOSE = None


def encode_event(event: str, data: Any) -> str:
    return json.dumps({"event": event, "data": data})


class BroadcastGateway:
    def __init__(self):
        self._outboxes: Dict[str, asyncio.Queue] = {}

    def register(self, connection_id: str) -> asyncio.Queue:
        outbox = asyncio.Queue()
        self._outboxes[connection_id] = outbox
        logger.debug(f"Registered outbox for connection {connection_id} (connections: {len(self._outboxes)})")
        return outbox

    def unregister(self, connection_id: str):
        outbox = self._outboxes.pop(connection_id, None)
        if outbox is not None:
            # Wakes the pump so it can finish after flushing what is queued
            outbox.put_nowait(_CLOSE)
            logger.debug(f"Unregistered outbox for connection {connection_id} (connections: {len(self._outboxes)})")

    def is_registered(self, connection_id: str) -> bool:
        return connection_id in self._outboxes

    def __len__(self):
        return len(self._outboxes)

    def _deliver(self, connection_id: str, frame: str) -> bool:
        outbox = self._outboxes.get(connection_id)
        if outbox is None:
            logger.debug(f"Dropping event for unknown connection {connection_id}")
            return False
        outbox.put_nowait(frame)
        return True

    def unicast(self, connection_id: str, event: str, data: Any) -> int:
        delivered = int(self._deliver(connection_id, encode_event(event, data)))
        logger.debug(f"Unicast {event} to {connection_id}")
        return delivered

    def room_cast(self, member_ids: Iterable[str], event: str, data: Any, exclude: Optional[str] = None) -> int:
        """Deliver to every member of a room, optionally skipping the originating connection."""
        frame = encode_event(event, data)
        delivered = 0
        for connection_id in member_ids:
            if exclude is not None and connection_id == exclude:
                continue
            delivered += self._deliver(connection_id, frame)
        logger.debug(f"Room-cast {event} to {delivered} connections")
        return delivered

    def broadcast(self, event: str, data: Any) -> int:
        frame = encode_event(event, data)
        for outbox in self._outboxes.values():
            outbox.put_nowait(frame)
        logger.debug(f"Broadcast {event} to {len(self._outboxes)} connections")
        return len(self._outboxes)

    async def pump(self, connection_id: str, outbox: asyncio.Queue, send: Callable[[str], Awaitable[Any]]):
        """Write queued frames to the transport until the outbox is closed or a send fails.

        Returns True when the outbox was closed, False when a send failed.
        """
        logger.debug(f"Starting outbox pump for connection {connection_id}")
        while True:
            frame = await outbox.get()
            if frame is _CLOSE:
                logger.debug(f"Outbox closed for connection {connection_id}")
                return True
            try:
                await send(frame)
            except Exception as e:
                logger.warning(f"Error sending to connection {connection_id}: {e}")
                return False
