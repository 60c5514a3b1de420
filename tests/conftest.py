"""
Pytest configuration and fixtures for the relay tests.
"""

import asyncio

import pytest
from unittest.mock import AsyncMock, MagicMock
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState

from app import create_app
from backend import Broadcaster, Connection, RoomRegistry
from lifecycle import RelayController


def make_websocket(open_: bool = True) -> MagicMock:
    """Stand-in for a Starlette WebSocket that records what was sent to it."""
    ws = MagicMock()
    state = WebSocketState.CONNECTED if open_ else WebSocketState.DISCONNECTED
    ws.client_state = state
    ws.application_state = state
    ws.send_text = AsyncMock()
    ws.send_bytes = AsyncMock()
    return ws


def sent_payloads(ws: MagicMock) -> list:
    """Everything sent to a fake websocket, text and bytes, in call order."""
    calls = [c for c in ws.mock_calls if c[0] in ("send_text", "send_bytes")]
    return [c[1][0] for c in calls]


@pytest.fixture
def registry():
    return RoomRegistry()


@pytest.fixture
def broadcaster(registry):
    return Broadcaster(registry)


@pytest.fixture
def controller(registry, broadcaster):
    return RelayController(registry, broadcaster)


@pytest.fixture
def make_connection():
    counter = iter(range(1, 10_000))

    def _make(room_id: str = "lobby", open_: bool = True) -> Connection:
        return Connection(f"c{next(counter)}", room_id, make_websocket(open_))

    return _make


@pytest.fixture
def public_dir(tmp_path):
    public = tmp_path / "public"
    public.mkdir()
    (public / "index.html").write_text("<html>relay</html>")
    (public / "client.js").write_text("console.log('relay');")
    (public / "style.css").write_text("body {}")
    (public / "logo.png").write_bytes(b"\x89PNG")
    (tmp_path / "secret.txt").write_text("top secret")
    return public


@pytest.fixture
def app(public_dir):
    return create_app(public_dir=str(public_dir))


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


def make_stalled_websocket() -> MagicMock:
    """A websocket whose sends never complete, like a peer that stopped reading."""
    ws = make_websocket()
    never = asyncio.Event()

    async def hang(*args, **kwargs):
        await never.wait()

    ws.send_text.side_effect = hang
    ws.send_bytes.side_effect = hang
    return ws
