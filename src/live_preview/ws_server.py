"""WebSocket server that tells connected browsers to reload."""

import asyncio
import json
import logging
import secrets
from http import HTTPStatus
from typing import Any, Optional, Set

import websockets

from .binding import BindRetry
from .connection import Connection
from .errors import ServiceStartError
from .events import Disposable, EventEmitter
from .port_finder import find_free_port

logger = logging.getLogger(__name__)


class WSServer(Disposable):
    """Broadcast channel for reload notifications.

    It listens on the first free port after the HTTP server's nominal port,
    and only accepts clients on a random path chosen per start.
    """

    def __init__(self, connection: Connection):
        super().__init__()
        self._connection = connection
        self._server: Optional[Any] = None
        self._start_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()
        self.connections: Set[Any] = set()
        self.external_host_name: Optional[str] = None
        self._ws_port = 0
        self._ws_path = ""

        self.on_connected: EventEmitter[int] = self._register(
            EventEmitter("ws_connected")
        )
        self.on_start_failed: EventEmitter[ServiceStartError] = self._register(
            EventEmitter("ws_start_failed")
        )

    @property
    def ws_port(self) -> int:
        return self._ws_port

    @property
    def ws_path(self) -> str:
        return self._ws_path

    def start(self, port: int) -> None:
        """Begin listening near ``port + 1``; `on_connected` fires once bound."""
        if self._server is not None or (
            self._start_task is not None and not self._start_task.done()
        ):
            logger.debug("WebSocket server already running")
            return
        self._start_task = asyncio.get_running_loop().create_task(
            self._start(port + 1)
        )

    async def _start(self, port: int) -> None:
        self._ws_path = "/" + secrets.token_hex(8)
        free_port = await find_free_port(port, self._connection.host)

        retry = BindRetry("WebSocket", self._connection, free_port)
        while True:
            try:
                self._server = await websockets.serve(
                    self._handler,
                    retry.host,
                    retry.port,
                    process_request=self._process_request,
                )
                break
            except OSError as e:
                try:
                    retry.retry_after(e)
                except ServiceStartError as failure:
                    logger.error(str(failure))
                    self.on_start_failed.fire(failure)
                    return

        self._ws_port = retry.port
        logger.info(f"WebSocket server listening on {retry.host}:{self._ws_port}")
        self.on_connected.fire(self._ws_port)

    def _process_request(self, connection, request):
        if request.path != self._ws_path:
            return connection.respond(HTTPStatus.NOT_FOUND, "Not Found\n")
        return None

    async def _handler(self, websocket):
        self.connections.add(websocket)
        logger.debug(f"Browser connected ({len(self.connections)} total)")
        try:
            async for message in websocket:
                try:
                    data = json.loads(message)
                except json.JSONDecodeError:
                    continue  # Ignore invalid messages
                if isinstance(data, dict) and data.get("command") == "ping":
                    await websocket.send(json.dumps({"command": "pong"}))
        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            self.connections.discard(websocket)

    def refresh_browsers(self) -> None:
        """Tell every connected browser to reload, without waiting on them."""
        if not self.connections:
            return
        message = json.dumps({"command": "reload", "origin": self.external_host_name})
        task = asyncio.get_running_loop().create_task(self._broadcast(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _broadcast(self, message: str) -> None:
        # Send to all connections, ignoring failures
        await asyncio.gather(
            *(ws.send(message) for ws in list(self.connections)),
            return_exceptions=True,
        )

    def close(self) -> None:
        if self._start_task is not None and not self._start_task.done():
            self._start_task.cancel()
        self._start_task = None

        server, self._server = self._server, None
        if server is None:
            return
        server.close()
        task = asyncio.get_running_loop().create_task(server.wait_closed())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        logger.info("WebSocket server closed")

    def dispose(self) -> None:
        self.close()
        super().dispose()
