from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware

from backend import Broadcaster, Payload, RoomRegistry
from constants import CORS_ORIGINS, HOST, PORT, PUBLIC_DIR
from lifecycle import RelayController
from logging_config import get_logger
from routers.static import build_static_router

logger = get_logger(__name__)


def room_from_query(websocket: WebSocket) -> Optional[str]:
    """First `room` query parameter, or None when it is absent."""
    values = websocket.query_params.getlist("room")
    return values[0] if values else None


async def receive_payloads(websocket: WebSocket) -> AsyncIterator[Payload]:
    """Yield inbound text/binary payloads until the client disconnects."""
    while True:
        try:
            message = await websocket.receive()
        except WebSocketDisconnect:
            return
        if message["type"] == "websocket.disconnect":
            logger.debug(f"WebSocket disconnected with code {message.get('code')}")
            return
        if message.get("text") is not None:
            yield message["text"]
        elif message.get("bytes") is not None:
            yield message["bytes"]


def create_app(public_dir: str = PUBLIC_DIR, registry: Optional[RoomRegistry] = None) -> FastAPI:
    registry = registry if registry is not None else RoomRegistry()
    broadcaster = Broadcaster(registry)
    controller = RelayController(registry, broadcaster)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Server running at http://localhost:{PORT} (listening on {HOST})")
        logger.info(f"Join a room via: http://localhost:{PORT}/room/my-match")
        yield
        logger.info(f"Shutting down, {registry.room_count()} rooms still open")
        registry.clear()

    app = FastAPI(title="room-relay", lifespan=lifespan)
    app.state.registry = registry
    app.state.broadcaster = broadcaster
    app.state.controller = controller

    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.websocket("/{path:path}")
    async def websocket_endpoint(websocket: WebSocket, path: str):
        """Relay endpoint. Any path upgrades; the room comes from `?room=`."""
        room_id = controller.resolve_room(room_from_query(websocket))
        logger.info(f"WebSocket connection attempt on /{path} for room: {room_id!r}")
        try:
            await websocket.accept()
        except Exception as e:
            logger.error(f"WebSocket handshake failed for room {room_id!r}: {e}", exc_info=True)
            return

        session = await controller.serve(websocket, room_id, receive_payloads(websocket))
        logger.info(f"WebSocket session {session.id} in room {room_id!r} finished")

    app.include_router(build_static_router(public_dir))

    logger.info("FastAPI application initialized")
    return app


app = create_app()
