import asyncio
import random
import string
import threading
from typing import Dict, FrozenSet, Optional, Set, Union

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from constants import CONNECTION_ID_LENGTH, SEND_TIMEOUT
from logging_config import get_logger
from schemas.events import SystemEvent

logger = get_logger(__name__)

Payload = Union[str, bytes]

_ID_ALPHABET = string.ascii_lowercase + string.digits


def generate_connection_id(length: int = CONNECTION_ID_LENGTH) -> str:
    """Short random id used only to attribute join/leave events. Not checked for uniqueness."""
    return ''.join(random.choices(_ID_ALPHABET, k=length))


class Connection:
    """One client's live session: an id, the room it joined and the websocket used to reach it.

    Equality and hashing are by identity, so two sessions that draw the same
    random id are still distinct room members.
    """

    def __init__(self, connection_id: str, room_id: str, websocket: WebSocket):
        self.id = connection_id
        self.room_id = room_id
        self.websocket = websocket

    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, payload: Payload):
        # keep the frame kind: binary stays binary, text stays text
        if isinstance(payload, (bytes, bytearray, memoryview)):
            await self.websocket.send_bytes(bytes(payload))
        else:
            await self.websocket.send_text(payload)

    def __repr__(self) -> str:
        return f"Connection(id={self.id!r}, room_id={self.room_id!r})"


class RoomRegistry:
    """Room id -> member connections.

    A room is present only while it has members: it is created by the first
    join and removed by the leave that empties it. Every method takes the same
    lock and never awaits, so join/leave/members are linearizable whether the
    callers are coroutines on one loop or plain threads.
    """

    def __init__(self):
        self._rooms: Dict[str, Set[Connection]] = {}
        self._lock = threading.Lock()

    def join(self, room_id: str, connection: Connection):
        with self._lock:
            members = self._rooms.get(room_id)
            if members is None:
                members = self._rooms[room_id] = set()
                logger.info(f"Room {room_id!r} created")
            members.add(connection)
            count = len(members)
        logger.debug(f"Connection {connection.id} joined room {room_id!r} ({count} members)")

    def leave(self, room_id: str, connection: Connection) -> bool:
        """Remove a connection from a room. Unknown rooms or connections are a no-op.

        Returns True if the connection was a member.
        """
        with self._lock:
            members = self._rooms.get(room_id)
            if members is None or connection not in members:
                return False
            members.discard(connection)
            emptied = not members
            if emptied:
                del self._rooms[room_id]
        logger.debug(f"Connection {connection.id} left room {room_id!r}")
        if emptied:
            logger.info(f"Room {room_id!r} is empty, removed")
        return True

    def members(self, room_id: str) -> FrozenSet[Connection]:
        """Snapshot of the room's members, empty if the room does not exist."""
        with self._lock:
            return frozenset(self._rooms.get(room_id, ()))

    def has_room(self, room_id: str) -> bool:
        with self._lock:
            return room_id in self._rooms

    def room_count(self) -> int:
        with self._lock:
            return len(self._rooms)

    def clear(self):
        with self._lock:
            dropped = len(self._rooms)
            self._rooms.clear()
        if dropped:
            logger.info(f"Registry cleared, dropped {dropped} rooms")


class Broadcaster:
    def __init__(self, registry: RoomRegistry, send_timeout: float = SEND_TIMEOUT):
        self.registry = registry
        self.send_timeout = send_timeout

    async def _send(self, conn: Connection, payload: Payload):
        await asyncio.wait_for(conn.send(payload), timeout=self.send_timeout)

    async def broadcast(self, room_id: str, payload: Payload, exclude: Optional[Connection] = None) -> int:
        """Send payload to every open member of the room except `exclude`.

        Sends run concurrently and independently, each bounded by
        `send_timeout`; a failure or timeout on one member is logged and does
        not affect the others. Returns the number of members the payload was
        delivered to.
        """
        targets = [
            conn for conn in self.registry.members(room_id)
            if conn is not exclude and conn.is_open()
        ]
        if not targets:
            return 0

        results = await asyncio.gather(*(self._send(conn, payload) for conn in targets), return_exceptions=True)

        delivered = 0
        for conn, result in zip(targets, results):
            if isinstance(result, asyncio.TimeoutError):
                logger.warning(f"Send to connection {conn.id} in room {room_id!r} timed out after {self.send_timeout}s")
            elif isinstance(result, BaseException):
                logger.warning(f"Error sending to connection {conn.id} in room {room_id!r}: {result!r}")
            else:
                delivered += 1
        logger.debug(f"Broadcast to room {room_id!r}: {delivered}/{len(targets)} delivered")
        return delivered

    async def send_event(self, room_id: str, event: SystemEvent, exclude: Optional[Connection] = None) -> int:
        return await self.broadcast(room_id, event.to_wire(), exclude=exclude)
