"""Tests for Connection address bookkeeping."""

import os

import pytest

from live_preview.address import ExternalUriResolver, ForwardedPortResolver
from live_preview.connection import Connection
from live_preview.constants import DEFAULT_HOST
from live_preview.errors import ExternalResolutionError
from live_preview.settings import SettingsStore
from live_preview.workspace import WorkspaceFolder


class FailingResolver(ExternalUriResolver):
    async def resolve(self, uri: str) -> str:
        raise RuntimeError("tunnel is down")


def make_connection(workspace="/ws", prefix="", host="127.0.0.1", **kwargs):
    folder = WorkspaceFolder(workspace) if workspace else None
    return Connection(folder, prefix, 3000, 3001, host, **kwargs)


@pytest.mark.asyncio
async def test_connected_announces_local_addresses():
    """Test the connected event for an untunneled workspace server."""
    connection = make_connection()
    events = []
    connection.on_connected.event(events.append)

    await connection.connected(3000, 3001, "")

    assert len(events) == 1
    info = events[0]
    assert info.http_uri == "http://127.0.0.1:3000"
    assert info.ws_uri == "http://127.0.0.1:3001"
    assert info.http_port == 3000
    assert info.root_prefix == ""
    assert info.workspace == connection.workspace


@pytest.mark.asyncio
async def test_connected_updates_ports_and_path():
    connection = make_connection()

    await connection.connected(4100, 4101, "/abc123")

    assert connection.http_port == 4100
    assert connection.ws_port == 4101
    assert connection.ws_path == "/abc123"
    assert await connection.resolve_external_ws_uri() == "http://127.0.0.1:4101/abc123"


@pytest.mark.asyncio
async def test_connected_externalizes_through_resolver():
    resolver = ForwardedPortResolver(
        {3000: "https://web.tunnel.example", 3001: "https://ws.tunnel.example/"}
    )
    connection = make_connection(resolver=resolver)
    events = []
    connection.on_connected.event(events.append)

    await connection.connected(3000, 3001, "/live")

    assert events[0].http_uri == "https://web.tunnel.example"
    assert events[0].ws_uri == "https://ws.tunnel.example/live"


@pytest.mark.asyncio
async def test_external_uri_is_resolved_fresh_each_time():
    """Test that a renegotiated tunnel is picked up without reconnecting."""
    resolver = ForwardedPortResolver({3000: "https://first.example"})
    connection = make_connection(resolver=resolver)

    assert await connection.resolve_external_http_uri() == "https://first.example"

    resolver.forward(3000, "https://second.example")
    assert await connection.resolve_external_http_uri() == "https://second.example"


@pytest.mark.asyncio
async def test_failed_externalization_announces_nothing():
    connection = make_connection(resolver=FailingResolver())
    events = []
    connection.on_connected.event(events.append)

    with pytest.raises(ExternalResolutionError, match="tunnel is down"):
        await connection.connected(3000, 3001, "")

    assert events == []


def test_reset_host_is_noop_for_default_host():
    connection = make_connection(host=DEFAULT_HOST)
    resets, warnings = [], []
    connection.on_should_reset_init_host.event(resets.append)
    connection.on_host_warning.event(warnings.append)

    connection.reset_host_to_default()

    assert connection.host == DEFAULT_HOST
    assert resets == []
    assert warnings == []


def test_reset_host_switches_to_default_once():
    connection = make_connection(host="192.168.1.50")
    resets, warnings = [], []
    connection.on_should_reset_init_host.event(resets.append)
    connection.on_host_warning.event(warnings.append)

    connection.reset_host_to_default()
    connection.reset_host_to_default()

    assert connection.host == DEFAULT_HOST
    assert resets == [DEFAULT_HOST]
    assert warnings == [("192.168.1.50", DEFAULT_HOST)]
    assert connection.construct_local_uri(3000) == f"http://{DEFAULT_HOST}:3000"


def test_local_uri_without_path():
    connection = make_connection(host="localhost")

    assert connection.construct_local_uri(8080) == "http://localhost:8080"
    assert connection.construct_local_uri(8080, "") == "http://localhost:8080"
    assert connection.construct_local_uri(8080, "/ws") == "http://localhost:8080/ws"


class TestWorkspacePaths:
    def test_relative_path_inside_workspace(self):
        connection = make_connection()

        assert connection.get_file_relative_to_workspace("/ws/a.html") == "/a.html"
        assert (
            connection.get_file_relative_to_workspace("/ws/docs/../docs/b.html")
            == "/docs/b.html"
        )

    def test_paths_outside_workspace(self):
        connection = make_connection()

        assert connection.get_file_relative_to_workspace("/other/a.html") is None
        # A sibling sharing the prefix is not inside
        assert connection.get_file_relative_to_workspace("/wsx/a.html") is None

    def test_root_prefix_narrows_workspace(self):
        connection = make_connection(prefix="site")

        assert connection.root_path == os.path.normpath("/ws/site")
        assert connection.get_file_relative_to_workspace("/ws/site/a.html") == "/a.html"
        assert connection.get_file_relative_to_workspace("/ws/a.html") is None
        assert str(connection.get_appended_uri("/a.html")) == os.path.normpath(
            "/ws/site/a.html"
        )

    def test_no_workspace_is_never_contained(self):
        connection = make_connection(workspace=None)

        assert connection.root_uri is None
        assert connection.root_path is None
        assert connection.get_file_relative_to_workspace("/ws/a.html") is None

    def test_no_workspace_appends_raw_path(self):
        connection = make_connection(workspace=None)

        assert str(connection.get_appended_uri("/tmp/page.html")) == "/tmp/page.html"

    @pytest.mark.parametrize(
        "path", ["/ws/a.html", "/ws/docs/guide.html", "/ws/deep/er/x.css", "/ws"]
    )
    def test_relative_then_appended_round_trips(self, path):
        connection = make_connection()

        relative = connection.get_file_relative_to_workspace(path)
        assert relative is not None
        assert str(connection.get_appended_uri(relative)) == os.path.normpath(path)


def test_server_root_setting_updates_prefix(tmp_path):
    (tmp_path / "public").mkdir()
    settings = SettingsStore()
    connection = Connection(
        WorkspaceFolder(tmp_path), "", 3000, 3001, DEFAULT_HOST, settings=settings
    )

    settings.update("server_root", "public")
    assert connection.root_prefix == "public"
    assert connection.root_path == str(tmp_path.resolve() / "public")

    # Not a directory: fall back to the workspace root
    settings.update("server_root", "missing")
    assert connection.root_prefix == ""

    connection.dispose()
    settings.update("server_root", "public")
    assert connection.root_prefix == ""
