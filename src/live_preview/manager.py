"""ServerGrouping: the coordinated server components for one workspace folder."""

import logging
from typing import Optional

from .address import ExternalUriResolver
from .connection import Connection, ConnectionInfo
from .events import Disposable, EventEmitter
from .path_util import valid_server_root
from .settings import SettingsStore
from .status import UserInterface
from .server import Server
from .workspace import Workspace, WorkspaceFolder

logger = logging.getLogger(__name__)


class ServerGrouping(Disposable):
    """One `Connection` and one `Server` serving a workspace folder.

    Pass ``workspace_folder=None`` to serve single files by absolute path,
    limited to the directories given to `serve_directory`.
    """

    def __init__(
        self,
        workspace_folder: Optional[WorkspaceFolder],
        settings: SettingsStore,
        workspace: Optional[Workspace] = None,
        ui: Optional[UserInterface] = None,
        resolver: Optional[ExternalUriResolver] = None,
    ):
        super().__init__()
        self.settings = settings
        self.workspace = workspace or Workspace()
        self.ui = ui or UserInterface()
        config = settings.get_config()

        root_prefix = (
            valid_server_root(workspace_folder.path, config.server_root)
            if workspace_folder
            else ""
        )
        self.connection = self._register(
            Connection(
                workspace_folder,
                root_prefix,
                config.port,
                config.port + 1,
                config.host,
                resolver=resolver,
                settings=settings,
            )
        )
        self._register(
            self.connection.on_should_reset_init_host.event(self._on_host_reset)
        )
        self._register(self.connection.on_host_warning.event(self._on_host_warning))
        self.server = self._register(
            Server(self.connection, settings, self.workspace, ui=self.ui)
        )

    @property
    def workspace_folder(self) -> Optional[WorkspaceFolder]:
        return self.connection.workspace

    @property
    def on_connected(self) -> EventEmitter[ConnectionInfo]:
        return self.connection.on_connected

    @property
    def is_running(self) -> bool:
        return self.server.is_running

    def open_server(self, port: Optional[int] = None) -> bool:
        if port is None:
            port = self.settings.get_config().port
        return self.server.open_server(port)

    def close_server(self) -> None:
        self.server.close_server()

    def serve_directory(self, path) -> None:
        """Allow files under `path` to be served when there is no workspace."""
        self.server.http_server.allow_directory(path)

    def _on_host_warning(self, hosts) -> None:
        host, default_host = hosts
        self.ui.show_error(
            f'The IP address "{host}" cannot be used to host the server. '
            f"Using default IP {default_host}."
        )

    def _on_host_reset(self, host: str) -> None:
        logger.info(f"Saving host {host} to settings")
        self.settings.update("host", host)
