"""Shared fixtures and stand-in servers for live-preview tests."""

import asyncio
import socket
from typing import List, Optional, Tuple

import pytest

from live_preview.connection import Connection
from live_preview.events import Disposable, EventEmitter
from live_preview.settings import Settings, SettingsStore
from live_preview.status import UserInterface
from live_preview.workspace import Workspace, WorkspaceFolder


class FakeHttpServer(Disposable):
    """Records calls instead of listening; tests fire `connect()` by hand."""

    def __init__(self):
        super().__init__()
        self.port = 0
        self.started: List[int] = []
        self.close_count = 0
        self.served: set = set()
        self.injector_ws_uri: Optional[str] = None
        self.on_connected = self._register(EventEmitter("http_connected"))
        self.on_new_req_processed = self._register(EventEmitter("http_request"))
        self.on_start_failed = self._register(EventEmitter("http_start_failed"))

    def start(self, port: int) -> None:
        self.started.append(port)
        self.port = port

    def connect(self) -> None:
        self.on_connected.fire(self.port)

    def close(self) -> None:
        self.close_count += 1

    def has_served_file(self, path: str) -> bool:
        return path in self.served


class FakeWSServer(Disposable):
    def __init__(self):
        super().__init__()
        self.ws_port = 0
        self.ws_path = "/socket"
        self.started: List[int] = []
        self.close_count = 0
        self.refresh_count = 0
        self.external_host_name: Optional[str] = None
        self.on_connected = self._register(EventEmitter("ws_connected"))
        self.on_start_failed = self._register(EventEmitter("ws_start_failed"))

    def start(self, port: int) -> None:
        self.started.append(port)
        self.ws_port = port + 1

    def connect(self) -> None:
        self.on_connected.fire(self.ws_port)

    def close(self) -> None:
        self.close_count += 1

    def refresh_browsers(self) -> None:
        self.refresh_count += 1


class RecordingInterface(UserInterface):
    """Remembers everything shown; answers messages with `answer`."""

    def __init__(self, answer: Optional[str] = None):
        super().__init__()
        self.answer = answer
        self.on_calls: List[int] = []
        self.off_calls = 0
        self.messages: List[Tuple[str, Tuple[str, ...]]] = []
        self.errors: List[str] = []

    def server_on(self, port: int) -> None:
        super().server_on(port)
        self.on_calls.append(port)

    def server_off(self) -> None:
        super().server_off()
        self.off_calls += 1

    async def show_information(self, message: str, *actions: str) -> Optional[str]:
        self.messages.append((message, actions))
        return self.answer

    def show_error(self, message: str) -> None:
        self.errors.append(message)


async def settle(rounds: int = 10) -> None:
    """Let scheduled callbacks and tasks run."""
    for _ in range(rounds):
        await asyncio.sleep(0)


def unused_port() -> int:
    """Ask the OS for a port that is free right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


@pytest.fixture
def settings():
    return SettingsStore(Settings(show_server_status_notifications=True))


@pytest.fixture
def workspace():
    return Workspace()


@pytest.fixture
def site(tmp_path):
    """A small workspace folder with a couple of pages."""
    (tmp_path / "index.html").write_text(
        "<html><body><h1>Home</h1></body></html>"
    )
    (tmp_path / "style.css").write_text("h1 { color: red; }")
    docs = tmp_path / "docs"
    docs.mkdir()
    (docs / "index.html").write_text("<html><body>Docs</body></html>")
    (docs / "guide.html").write_text("<p>Guide</p>")
    return tmp_path


@pytest.fixture
def site_connection(site, settings):
    connection = Connection(
        WorkspaceFolder(site), "", 3000, 3001, "127.0.0.1", settings=settings
    )
    yield connection
    connection.dispose()
