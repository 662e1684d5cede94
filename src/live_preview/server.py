"""Server: starts the HTTP and WebSocket servers as one unit."""

import asyncio
import dataclasses
import enum
import logging
from dataclasses import dataclass
from typing import Coroutine, Optional, Set, Tuple

from .connection import Connection, ConnectionInfo
from .constants import DONT_SHOW_AGAIN, SERVER_ON_CONTEXT
from .errors import ExternalResolutionError, LivePreviewError, ServiceStartError
from .events import Disposable, EventEmitter
from .http_server import HttpServer, RequestRecord
from .port_finder import find_free_port
from .reload import ReloadPolicy
from .settings import SettingsStore
from .status import UserInterface
from .workspace import Workspace
from .ws_server import WSServer

logger = logging.getLogger(__name__)

MAX_PORT = 65535


class ServiceEvent(enum.Enum):
    HTTP_CONNECTED = "http"
    WS_CONNECTED = "ws"


@dataclass(frozen=True)
class Rendezvous:
    """Which of the two servers have reported that they are listening."""

    http_connected: bool = False
    ws_connected: bool = False

    @property
    def both(self) -> bool:
        return self.http_connected and self.ws_connected

    def advance(self, event: ServiceEvent) -> Tuple["Rendezvous", bool]:
        """Record `event`; the flag is True only on the step that completes both."""
        if event is ServiceEvent.HTTP_CONNECTED:
            after = dataclasses.replace(self, http_connected=True)
        else:
            after = dataclasses.replace(self, ws_connected=True)
        return after, after.both and not self.both


class ServerState(enum.Enum):
    IDLE = "idle"
    STARTING = "starting"
    SERVING = "serving"


class Server(Disposable):
    """Owns one HTTP server and one WebSocket server for a grouping.

    `open_server` returns immediately. Once both servers have reported in,
    the connection announces its externalized addresses and the server is
    serving. If the addresses cannot be externalized the start fails.
    """

    def __init__(
        self,
        connection: Connection,
        settings: SettingsStore,
        workspace: Workspace,
        ui: Optional[UserInterface] = None,
        http_server: Optional[HttpServer] = None,
        ws_server: Optional[WSServer] = None,
    ):
        super().__init__()
        self._connection = connection
        self._settings = settings
        self._ui = ui or UserInterface()
        self._http_server = self._register(http_server or HttpServer(connection))
        self._ws_server = self._register(ws_server or WSServer(connection))

        self._state = ServerState.IDLE
        self._is_server_on = False
        self._rendezvous = Rendezvous()
        self._generation = 0
        self._probe_task: Optional[asyncio.Task] = None
        self._announce_task: Optional[asyncio.Task] = None
        self._pending: Set[asyncio.Task] = set()

        self.on_new_req_processed: EventEmitter[RequestRecord] = self._register(
            EventEmitter("request_processed")
        )

        self._register(
            ReloadPolicy(
                workspace,
                settings,
                self._http_server.has_served_file,
                self._ws_server.refresh_browsers,
            )
        )
        self._register(
            self._http_server.on_new_req_processed.event(self.on_new_req_processed.fire)
        )
        self._register(
            self._ws_server.on_connected.event(
                lambda _port: self._on_service_connected(ServiceEvent.WS_CONNECTED)
            )
        )
        self._register(
            self._http_server.on_connected.event(
                lambda _port: self._on_service_connected(ServiceEvent.HTTP_CONNECTED)
            )
        )
        self._register(self._http_server.on_start_failed.event(self._on_start_failed))
        self._register(self._ws_server.on_start_failed.event(self._on_start_failed))
        self._register(connection.on_connected.event(self._on_connection_connected))

        self._ui.set_context(SERVER_ON_CONTEXT, False)

    @property
    def is_running(self) -> bool:
        return self._is_server_on

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def http_connected(self) -> bool:
        return self._rendezvous.http_connected

    @property
    def ws_connected(self) -> bool:
        return self._rendezvous.ws_connected

    @property
    def http_server(self) -> HttpServer:
        return self._http_server

    @property
    def ws_server(self) -> WSServer:
        return self._ws_server

    def update_configurations(self) -> None:
        self._ui.update_configurations()

    def open_server(self, port: int) -> bool:
        """Start both servers from the first free port at or after `port`.

        Returns False, changing nothing, when there is no running event loop
        to start them on.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.error("Cannot open server: no running event loop")
            return False

        if self._state is not ServerState.IDLE:
            self._stop_services()

        self._rendezvous = Rendezvous()
        self._generation += 1
        self._state = ServerState.STARTING
        self._probe_task = loop.create_task(self._launch(port, self._generation))
        return True

    async def _launch(self, port: int, generation: int) -> None:
        free_port = await find_free_port(port, self._connection.host)
        if not self._is_current(generation):
            return
        if free_port > MAX_PORT:
            self._on_start_failed(
                ServiceStartError(
                    "HTTP", self._connection.host, port, OSError("no free port")
                )
            )
            return

        logger.debug(f"Starting servers from port {free_port}")
        self._http_server.start(free_port)
        # Starting HTTP may already have failed and reset us
        if self._is_current(generation):
            self._ws_server.start(free_port)

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation and self._state is not ServerState.IDLE

    def _on_service_connected(self, event: ServiceEvent) -> None:
        if self._state is not ServerState.STARTING:
            logger.debug(
                f"Ignoring {event.value} connected event while {self._state.value}"
            )
            return
        self._rendezvous, fire = self._rendezvous.advance(event)
        if fire:
            self._announce_task = asyncio.get_running_loop().create_task(
                self._announce(self._generation)
            )

    async def _announce(self, generation: int) -> None:
        # Serving only begins once the addresses resolve for the browser
        try:
            info = await self._connection.connected(
                self._http_server.port, self._ws_server.ws_port, self._ws_server.ws_path
            )
        except ExternalResolutionError as e:
            if self._is_current(generation):
                self._on_start_failed(e)
            return
        if self._is_current(generation):
            self._connected(info)

    def _connected(self, info: ConnectionInfo) -> None:
        self._state = ServerState.SERVING
        self._is_server_on = True
        self._ws_server.external_host_name = info.http_uri
        port = self._http_server.port
        self._ui.server_on(port)

        self._show_server_status_message(f"Server Opened on Port {port}")
        self._ui.set_context(SERVER_ON_CONTEXT, True)

    def _on_connection_connected(self, info: ConnectionInfo) -> None:
        self._http_server.injector_ws_uri = info.ws_uri

    def _on_start_failed(self, error: LivePreviewError) -> None:
        logger.error(f"Server failed to start: {error}")
        self._ui.show_error(str(error))
        self._stop_services()
        self._ui.server_off()
        self._ui.set_context(SERVER_ON_CONTEXT, False)

    def _stop_services(self) -> None:
        if self._probe_task is not None and not self._probe_task.done():
            self._probe_task.cancel()
        self._probe_task = None
        if self._announce_task is not None and not self._announce_task.done():
            self._announce_task.cancel()
        self._announce_task = None
        self._generation += 1

        self._http_server.close()
        self._ws_server.close()
        self._rendezvous = Rendezvous()
        self._is_server_on = False
        self._state = ServerState.IDLE

    def close_server(self) -> None:
        """Stop both servers; safe to call in any state."""
        self._stop_services()
        self._ui.server_off()

        self._show_server_status_message("Server Closed")
        self._ui.set_context(SERVER_ON_CONTEXT, False)

    def _show_server_status_message(self, message: str) -> None:
        logger.info(message)
        if not self._settings.get_config().show_server_status_notifications:
            return
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return
        self._spawn(self._ask_status(message))

    async def _ask_status(self, message: str) -> None:
        selection = await self._ui.show_information(message, DONT_SHOW_AGAIN)
        if selection == DONT_SHOW_AGAIN:
            self._settings.update("show_server_status_notifications", False)

    def _spawn(self, coro: Coroutine) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    def dispose(self) -> None:
        if self.is_disposed:
            return
        self._stop_services()
        for task in list(self._pending):
            task.cancel()
        super().dispose()
