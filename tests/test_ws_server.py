"""Tests for the reload WebSocket server."""

import asyncio
import json

import pytest
import pytest_asyncio
import websockets

from live_preview.connection import Connection
from live_preview.constants import DEFAULT_HOST
from live_preview.ws_server import WSServer

from conftest import settle, unused_port


@pytest_asyncio.fixture
async def ws_server():
    connection = Connection(None, "", 3000, 3001, DEFAULT_HOST)
    server = WSServer(connection)
    ports = []
    server.on_connected.event(ports.append)
    server.start(unused_port())
    for _ in range(100):
        if ports:
            break
        await asyncio.sleep(0.01)
    yield server
    server.dispose()
    await settle()
    connection.dispose()


def client_uri(server):
    return f"ws://{DEFAULT_HOST}:{server.ws_port}{server.ws_path}"


@pytest.mark.asyncio
async def test_start_picks_random_path(ws_server):
    assert ws_server.ws_port > 0
    assert ws_server.ws_path.startswith("/")
    assert len(ws_server.ws_path) > 8


@pytest.mark.asyncio
async def test_refresh_reaches_connected_browsers(ws_server):
    ws_server.external_host_name = "https://preview.example"
    async with websockets.connect(client_uri(ws_server)) as client:
        for _ in range(100):
            if ws_server.connections:
                break
            await asyncio.sleep(0.01)

        ws_server.refresh_browsers()
        message = json.loads(await asyncio.wait_for(client.recv(), timeout=2))

    assert message == {"command": "reload", "origin": "https://preview.example"}


@pytest.mark.asyncio
async def test_ping_gets_pong(ws_server):
    async with websockets.connect(client_uri(ws_server)) as client:
        await client.send(json.dumps({"command": "ping"}))
        reply = json.loads(await asyncio.wait_for(client.recv(), timeout=2))

    assert reply == {"command": "pong"}


@pytest.mark.asyncio
async def test_wrong_path_is_rejected(ws_server):
    uri = f"ws://{DEFAULT_HOST}:{ws_server.ws_port}/guess"

    with pytest.raises(websockets.exceptions.InvalidStatus):
        async with websockets.connect(uri):
            pass


@pytest.mark.asyncio
async def test_refresh_without_browsers_is_noop(ws_server):
    ws_server.refresh_browsers()
    await settle()

    assert ws_server.connections == set()
