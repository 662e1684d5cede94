"""Host and port bookkeeping for one server grouping."""

import logging
import pathlib
from dataclasses import dataclass
from typing import Optional, Tuple

from . import address
from .constants import DEFAULT_HOST
from .events import Disposable, EventEmitter
from .path_util import (
    convert_to_posix_path,
    normalize_path,
    path_begins_with,
    valid_server_root,
)
from .settings import ConfigurationChangeEvent, SettingsStore
from .workspace import WorkspaceFolder

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionInfo:
    """Fired to `Connection.on_connected` listeners once servers are up."""

    http_uri: str
    ws_uri: str
    workspace: Optional[WorkspaceFolder]
    root_prefix: Optional[str]
    http_port: int


class Connection(Disposable):
    """Keeps track of the host and ports of the HTTP and WebSocket servers.

    Addresses handed out to listeners are always externalized through the
    resolver first. There is one `Connection` per server grouping; a
    grouping without a workspace serves single files by absolute path.
    """

    def __init__(
        self,
        workspace: Optional[WorkspaceFolder],
        root_prefix: str,
        http_port: int,
        ws_port: int,
        host: str,
        resolver: Optional[address.ExternalUriResolver] = None,
        settings: Optional[SettingsStore] = None,
    ):
        super().__init__()
        self._workspace = workspace
        self._root_prefix = root_prefix
        self.http_port = http_port
        self._ws_port = ws_port
        self._ws_path = ""
        self.host = host
        self._resolver = resolver or address.IdentityResolver()
        self._settings = settings

        self.on_connected: EventEmitter[ConnectionInfo] = self._register(
            EventEmitter("connected")
        )
        self.on_should_reset_init_host: EventEmitter[str] = self._register(
            EventEmitter("should_reset_init_host")
        )
        self.on_host_warning: EventEmitter[Tuple[str, str]] = self._register(
            EventEmitter("host_warning")
        )

        if settings is not None:
            self._register(
                settings.on_did_change_configuration.event(self._on_configuration)
            )

    def _on_configuration(self, e: ConfigurationChangeEvent) -> None:
        if e.affects_configuration("server_root"):
            self._root_prefix = (
                valid_server_root(
                    self._workspace.path, self._settings.get_config().server_root
                )
                if self._workspace
                else ""
            )
            logger.debug(f"Root prefix is now {self._root_prefix!r}")

    @property
    def ws_port(self) -> int:
        return self._ws_port

    @property
    def ws_path(self) -> str:
        return self._ws_path

    @property
    def root_prefix(self) -> str:
        return self._root_prefix

    @property
    def workspace(self) -> Optional[WorkspaceFolder]:
        return self._workspace

    async def connected(
        self, http_port: int, ws_port: int, ws_path: str
    ) -> ConnectionInfo:
        """Record the live ports and announce the externalized addresses.

        Returns the announced `ConnectionInfo`. Raises `ExternalResolutionError`
        without announcing anything when an address cannot be externalized.
        """
        self.http_port = http_port
        self._ws_port = ws_port
        self._ws_path = ws_path

        http_uri = self.construct_local_uri(self.http_port)
        ws_uri = self.construct_local_uri(self._ws_port, self._ws_path)

        external_http_uri = await address.externalize(self._resolver, http_uri)
        external_ws_uri = await address.externalize(self._resolver, ws_uri)
        info = ConnectionInfo(
            http_uri=external_http_uri,
            ws_uri=external_ws_uri,
            workspace=self._workspace,
            root_prefix=self._root_prefix,
            http_port=http_port,
        )
        self.on_connected.fire(info)
        return info

    async def resolve_external_http_uri(self) -> str:
        return await address.externalize(
            self._resolver, self.construct_local_uri(self.http_port)
        )

    async def resolve_external_ws_uri(self) -> str:
        return await address.externalize(
            self._resolver, self.construct_local_uri(self._ws_port, self._ws_path)
        )

    def construct_local_uri(self, port: int, path: Optional[str] = None) -> str:
        return address.local_uri(self.host, port, path)

    @property
    def root_uri(self) -> Optional[pathlib.Path]:
        if self._workspace:
            return self._workspace.path / self._root_prefix
        return None

    @property
    def root_path(self) -> Optional[str]:
        root = self.root_uri
        return str(root) if root is not None else None

    def reset_host_to_default(self) -> None:
        """Fall back to the default host after the chosen one failed to bind."""
        if self.host == DEFAULT_HOST:
            return
        logger.warning(
            f'The IP address "{self.host}" cannot be used to host the server. '
            f"Using default IP {DEFAULT_HOST}."
        )
        self.on_host_warning.fire((self.host, DEFAULT_HOST))
        self.host = DEFAULT_HOST
        self.on_should_reset_init_host.fire(self.host)

    def get_file_relative_to_workspace(self, path: str) -> Optional[str]:
        """Convert an absolute path to one relative to the served root.

        Returns None when there is no workspace or `path` lies outside it.
        The result keeps its leading slash, e.g. ``/docs/index.html``.
        """
        root = self.root_path
        if root and self._abs_path_in_workspace(path):
            relative = normalize_path(path)[len(normalize_path(root)) :]
            return convert_to_posix_path(relative)
        return None

    def _abs_path_in_workspace(self, path: str) -> bool:
        root = self.root_path
        return path_begins_with(path, root) if root else False

    def get_appended_uri(self, path: str) -> pathlib.Path:
        """Join a relative path onto the served root.

        Without a workspace `path` is taken as a file system path.
        """
        root = self.root_uri
        if root is not None:
            return root / convert_to_posix_path(path).lstrip("/")
        return pathlib.Path(path)
