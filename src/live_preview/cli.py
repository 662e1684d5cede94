"""CLI interface for live-preview."""

import asyncio
import json
import logging
import pathlib
import threading
import webbrowser
from typing import Optional

import click

from .connection import ConnectionInfo
from .constants import SETTINGS_FILE_NAME
from .errors import SettingsError
from .http_server import RequestRecord
from .manager import ServerGrouping
from .settings import AutoRefreshMode, SettingsStore
from .status import ConsoleInterface
from .workspace import FileWatcher, Workspace, WorkspaceFolder

logger = logging.getLogger(__name__)


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # websockets logs every handshake at INFO
    logging.getLogger("websockets").setLevel(logging.WARNING)


def _settings_path(path: pathlib.Path, settings_file: Optional[pathlib.Path]):
    if settings_file is not None:
        return settings_file
    folder = path if path.is_dir() else path.parent
    return folder / SETTINGS_FILE_NAME


def page_url(info: ConnectionInfo, start_file: Optional[pathlib.Path]) -> str:
    """URL of the page to open first.

    Without a workspace the server addresses files by absolute path.
    """
    if start_file is None:
        return info.http_uri + "/"
    posix = start_file.as_posix()
    if not posix.startswith("/"):
        posix = "/" + posix
    return info.http_uri + posix


async def run_server(
    path: pathlib.Path, settings: SettingsStore, open_url: bool = True
) -> None:
    """Serve `path` until cancelled, reloading browsers on changes."""
    if path.is_dir():
        folder: Optional[WorkspaceFolder] = WorkspaceFolder(path)
        watch_root = path
        start_file = None
    else:
        folder = None
        watch_root = path.parent
        start_file = path

    workspace = Workspace()
    grouping = ServerGrouping(folder, settings, workspace, ui=ConsoleInterface())
    watcher = FileWatcher(workspace, watch_root)
    if folder is None:
        grouping.serve_directory(watch_root)

    def on_connected(info: ConnectionInfo) -> None:
        url = page_url(info, start_file)
        click.echo(f"Serving {path} at {url}")
        if open_url:
            threading.Timer(1, lambda: webbrowser.open(url)).start()

    def on_request(record: RequestRecord) -> None:
        logger.debug(f"{record.method} {record.path} -> {record.status}")

    grouping.on_connected.event(on_connected)
    grouping.server.on_new_req_processed.event(on_request)

    if not grouping.open_server():
        raise click.ClickException("Could not start the server")

    try:
        await watcher.watch()
    finally:
        watcher.stop()
        grouping.close_server()
        grouping.dispose()
        workspace.dispose()


@click.group()
@click.version_option(package_name="live-preview")
def main():
    """Local live-preview server with browser auto-reload."""
    pass


@main.command()
@click.argument(
    "path",
    type=click.Path(exists=True, path_type=pathlib.Path),
    default=".",
)
@click.option(
    "--port",
    "-p",
    type=click.IntRange(1, 65535),
    help="Port to start searching for a free port from",
)
@click.option("--host", type=str, help="Host address to listen on")
@click.option(
    "--root",
    type=str,
    help="Folder inside the workspace to serve from",
)
@click.option(
    "--reload",
    "reload_mode",
    type=click.Choice([m.value for m in AutoRefreshMode]),
    help="When to reload connected browsers",
)
@click.option(
    "--settings",
    "settings_file",
    type=click.Path(dir_okay=False, path_type=pathlib.Path),
    help=f"Settings file (default: {SETTINGS_FILE_NAME} in the served folder)",
)
@click.option(
    "--open/--no-open",
    "open_url",
    default=True,
    help="Open the browser once the server is up (default: open)",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
def serve(
    path: pathlib.Path,
    port: Optional[int],
    host: Optional[str],
    root: Optional[str],
    reload_mode: Optional[str],
    settings_file: Optional[pathlib.Path],
    open_url: bool,
    verbose: bool,
):
    """Serve a folder (or a single file) with live reload."""
    _configure_logging(verbose)
    path = path.resolve()

    try:
        store = SettingsStore.load(_settings_path(path, settings_file))
    except SettingsError as e:
        raise click.ClickException(str(e))

    # Command line values apply to this run only
    overrides = {
        "port": port,
        "host": host,
        "server_root": root,
        "auto_refresh_mode": reload_mode,
    }
    for key, value in overrides.items():
        if value is not None:
            store.override(key, value)

    try:
        asyncio.run(run_server(path, store, open_url=open_url))
    except KeyboardInterrupt:
        click.echo("Stopped")


@main.command("set")
@click.argument("key")
@click.argument("value")
@click.option(
    "--settings",
    "settings_file",
    type=click.Path(dir_okay=False, path_type=pathlib.Path),
    default=SETTINGS_FILE_NAME,
    help=f"Settings file to update (default: {SETTINGS_FILE_NAME})",
)
def set_setting(key: str, value: str, settings_file: pathlib.Path):
    """Persist one setting, e.g. `live-preview set port 8080`."""
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError:
        parsed = value

    try:
        store = SettingsStore.load(settings_file)
        store.update(key, parsed)
        store.save()
    except SettingsError as e:
        raise click.ClickException(str(e))
    click.echo(f"{key} = {json.dumps(store.get_config().to_dict()[key])}")


if __name__ == "__main__":
    main()
