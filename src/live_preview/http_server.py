"""HTTP content server for workspace files."""

import asyncio
import json
import logging
import os
import pathlib
import socket
import threading
from dataclasses import dataclass
from typing import FrozenSet, Optional, Set

from werkzeug.exceptions import HTTPException
from werkzeug.security import safe_join
from werkzeug.serving import (
    LISTEN_QUEUE,
    BaseWSGIServer,
    make_server,
    select_address_family,
)
from werkzeug.utils import send_file
from werkzeug.wrappers import Request, Response

from .address import to_websocket_uri
from .binding import BindRetry
from .connection import Connection
from .errors import ServiceStartError
from .events import Disposable, EventEmitter
from .path_util import normalize_path, path_begins_with

logger = logging.getLogger(__name__)

HTML_SUFFIXES = {".html", ".htm", ".xhtml"}

RELOAD_SCRIPT = """<script type="text/javascript">
(function () {{
  var socket = new WebSocket({ws_uri});
  socket.onmessage = function (event) {{
    var data = JSON.parse(event.data);
    if (data.command === "reload") {{
      window.location.reload();
    }}
  }};
}})();
</script>"""


@dataclass(frozen=True)
class RequestRecord:
    """One request handled by the content server."""

    method: str
    path: str
    status: int


def inject_script(html: bytes, ws_uri: str) -> bytes:
    """Insert the reload client before ``</body>``, or append it."""
    script = RELOAD_SCRIPT.format(ws_uri=json.dumps(to_websocket_uri(ws_uri)))
    encoded = script.encode("utf-8")
    index = html.lower().rfind(b"</body>")
    if index == -1:
        return html + encoded
    return html[:index] + encoded + html[index:]


def bind_socket(host: str, port: int) -> socket.socket:
    """Open a listening socket, letting bind errors propagate as `OSError`."""
    sock = socket.socket(select_address_family(host, port), socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind((host, port))
        sock.listen(LISTEN_QUEUE)
    except BaseException:
        sock.close()
        raise
    return sock


class HttpServer(Disposable):
    """Serves files below the connection's root and remembers what it served.

    Without a workspace, files are addressed by absolute path and only those
    inside a directory passed to `allow_directory` are served.
    """

    def __init__(self, connection: Connection):
        super().__init__()
        self._connection = connection
        self._server: Optional[BaseWSGIServer] = None
        self._thread: Optional[threading.Thread] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._served_files: Set[str] = set()
        self._served_lock = threading.Lock()
        self._allowed_dirs: FrozenSet[str] = frozenset()
        self.injector_ws_uri: Optional[str] = None
        self.port = 0

        self.on_connected: EventEmitter[int] = self._register(
            EventEmitter("http_connected")
        )
        self.on_new_req_processed: EventEmitter[RequestRecord] = self._register(
            EventEmitter("http_request")
        )
        self.on_start_failed: EventEmitter[ServiceStartError] = self._register(
            EventEmitter("http_start_failed")
        )

    @property
    def is_listening(self) -> bool:
        return self._server is not None

    def allow_directory(self, path) -> None:
        self._allowed_dirs = self._allowed_dirs | {normalize_path(str(path))}

    def start(self, port: int) -> None:
        """Bind near `port` and serve from a background thread."""
        if self._server is not None:
            logger.debug("HTTP server already running")
            return
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

        retry = BindRetry("HTTP", self._connection, port)
        try:
            while True:
                try:
                    sock = bind_socket(retry.host, retry.port)
                    break
                except OSError as e:
                    retry.retry_after(e)

            try:
                self._server = make_server(
                    retry.host, retry.port, self.app, threaded=True, fd=sock.fileno()
                )
            except OSError as e:
                raise ServiceStartError("HTTP", retry.host, retry.port, e) from e
            finally:
                # make_server duplicates the descriptor
                sock.close()
        except ServiceStartError as failure:
            logger.error(str(failure))
            self.on_start_failed.fire(failure)
            return

        self.port = self._server.socket.getsockname()[1]
        self._thread = threading.Thread(
            target=self._serve, name="live-preview-http", daemon=True
        )
        self._thread.start()
        logger.info(f"HTTP server listening on {retry.host}:{self.port}")
        self.on_connected.fire(self.port)

    def _serve(self) -> None:
        server = self._server
        if server is None:
            return
        try:
            server.serve_forever()
        except Exception:
            logger.exception("HTTP server thread crashed")

    def close(self) -> None:
        server, self._server = self._server, None
        if server is None:
            return
        server.shutdown()
        server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=1)
            self._thread = None
        with self._served_lock:
            self._served_files.clear()
        logger.info("HTTP server closed")

    def dispose(self) -> None:
        self.close()
        super().dispose()

    def has_served_file(self, path: str) -> bool:
        with self._served_lock:
            return normalize_path(path) in self._served_files

    def _record(self, record: RequestRecord) -> None:
        loop = self._loop
        if loop is not None and not loop.is_closed():
            loop.call_soon_threadsafe(self.on_new_req_processed.fire, record)
        else:
            self.on_new_req_processed.fire(record)

    def app(self, environ, start_response):
        """WSGI entry point."""
        request = Request(environ)
        response = self._respond(request)
        self._record(RequestRecord(request.method, request.path, response.status_code))
        return response(environ, start_response)

    def _resolve(self, url_path: str) -> Optional[pathlib.Path]:
        """Map a request path to a file path, or None if it may not be served."""
        root = self._connection.root_path
        if root is not None:
            if safe_join(root, url_path.lstrip("/")) is None:
                return None
            return pathlib.Path(
                normalize_path(str(self._connection.get_appended_uri(url_path)))
            )

        file_path = normalize_path(str(self._connection.get_appended_uri(url_path)))
        if any(path_begins_with(file_path, d) for d in self._allowed_dirs):
            return pathlib.Path(file_path)
        return None

    def _respond(self, request: Request) -> Response:
        if request.method not in ("GET", "HEAD"):
            return Response("Method Not Allowed", status=405)

        file_path = self._resolve(request.path)
        if file_path is None:
            return Response("Forbidden", status=403, mimetype="text/plain")

        if file_path.is_dir():
            if not request.path.endswith("/"):
                return Response(
                    status=301, headers={"Location": request.path + "/"}
                )
            file_path = file_path / "index.html"

        if not file_path.is_file():
            return Response("File not found", status=404, mimetype="text/plain")

        try:
            if file_path.suffix.lower() in HTML_SUFFIXES and self.injector_ws_uri:
                data = inject_script(file_path.read_bytes(), self.injector_ws_uri)
                response = Response(data, mimetype="text/html")
            else:
                response = send_file(file_path, request.environ)
        except HTTPException as e:
            return e.get_response(request.environ)
        except OSError as e:
            logger.warning(f"Could not read {file_path}: {e}")
            return Response("Could not read file", status=500, mimetype="text/plain")

        with self._served_lock:
            self._served_files.add(os.path.normpath(str(file_path)))

        response.headers["Cache-Control"] = "no-store"
        return response
