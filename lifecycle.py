from enum import Enum
from typing import AsyncIterator, Optional

from fastapi import WebSocket

from backend import Broadcaster, Connection, Payload, RoomRegistry, generate_connection_id
from constants import DEFAULT_ROOM
from logging_config import get_logger
from schemas.events import join_event, leave_event

logger = get_logger(__name__)


class ConnectionState(Enum):
    CONNECTING = "connecting"
    ACTIVE = "active"
    CLOSED = "closed"


class RelaySession:
    """Lifecycle of one connection: CONNECTING -> ACTIVE -> CLOSED.

    A session is driven by a single task, so open/relay/close never run
    concurrently for the same connection. CLOSED is terminal.
    """

    def __init__(self, connection: Connection, registry: RoomRegistry, broadcaster: Broadcaster):
        self.connection = connection
        self.registry = registry
        self.broadcaster = broadcaster
        self.state = ConnectionState.CONNECTING

    @property
    def id(self) -> str:
        return self.connection.id

    @property
    def room_id(self) -> str:
        return self.connection.room_id

    async def open(self):
        if self.state is not ConnectionState.CONNECTING:
            return
        self.registry.join(self.room_id, self.connection)
        self.state = ConnectionState.ACTIVE
        logger.info(f"Connection {self.id} joined room {self.room_id!r}")
        # the newcomer has nothing to be told about itself
        await self.broadcaster.send_event(self.room_id, join_event(self.id), exclude=self.connection)

    async def relay(self, payload: Payload):
        if self.state is not ConnectionState.ACTIVE:
            logger.debug(f"Dropping payload from connection {self.id} in state {self.state.value}")
            return
        delivered = await self.broadcaster.broadcast(self.room_id, payload, exclude=self.connection)
        logger.debug(f"Relayed payload from connection {self.id} in room {self.room_id!r} to {delivered} members")

    async def close(self):
        if self.state is ConnectionState.CLOSED:
            return
        was_active = self.state is ConnectionState.ACTIVE
        self.state = ConnectionState.CLOSED
        self.registry.leave(self.room_id, self.connection)
        if not was_active:
            return
        logger.info(f"Connection {self.id} left room {self.room_id!r}")
        # our own transport is already gone, so nobody needs excluding
        await self.broadcaster.send_event(self.room_id, leave_event(self.id))


class RelayController:
    """Wires connections to the room registry and the broadcaster."""

    def __init__(self, registry: RoomRegistry, broadcaster: Optional[Broadcaster] = None,
                 default_room: str = DEFAULT_ROOM):
        self.registry = registry
        self.broadcaster = broadcaster or Broadcaster(registry)
        self.default_room = default_room

    def resolve_room(self, requested: Optional[str]) -> str:
        if not requested or not isinstance(requested, str):
            return self.default_room
        return requested

    def new_session(self, websocket: WebSocket, room_id: str) -> RelaySession:
        connection = Connection(generate_connection_id(), room_id, websocket)
        return RelaySession(connection, self.registry, self.broadcaster)

    async def connect(self, websocket: WebSocket, room_id: str) -> RelaySession:
        session = self.new_session(websocket, room_id)
        await session.open()
        return session

    async def serve(self, websocket: WebSocket, room_id: str, payloads: AsyncIterator[Payload]):
        """Run one connection to completion.

        Each inbound payload is relayed in order; when `payloads` is exhausted
        or raises, the session is closed and the leave is announced.
        """
        session = self.new_session(websocket, room_id)
        message_count = 0
        try:
            # inside the try: a failed or cancelled join announcement still leaves the room
            await session.open()
            async for payload in payloads:
                message_count += 1
                await session.relay(payload)
        except Exception as e:
            logger.error(f"Error receiving from connection {session.id} in room {room_id!r}: {e}", exc_info=True)
        finally:
            logger.debug(f"Connection {session.id} closing after {message_count} messages")
            await session.close()
        return session
