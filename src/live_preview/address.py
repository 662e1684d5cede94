"""Local and externally reachable server addresses.

A preview server always listens on a loopback-local address. When the editor
runs behind a tunnel, port forward or container boundary, the browser has to
use a different address. `ExternalUriResolver` implementations perform that
translation and are consulted on every request, since a tunnel can be
renegotiated while a server is running.
"""

import logging
from typing import Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from .errors import ExternalResolutionError

logger = logging.getLogger(__name__)

SCHEME = "http"

_WEBSOCKET_SCHEMES = {"http": "ws", "https": "wss"}


def local_uri(host: str, port: int, path: Optional[str] = None) -> str:
    """Build the loopback URI for a server; `path` defaults to empty."""
    return f"{SCHEME}://{host}:{port}{path or ''}"


def to_websocket_uri(uri: str) -> str:
    """Swap an http(s) scheme for the matching ws(s) scheme."""
    parts = urlsplit(uri)
    scheme = _WEBSOCKET_SCHEMES.get(parts.scheme, parts.scheme)
    return urlunsplit(parts._replace(scheme=scheme))


class ExternalUriResolver:
    """Hook translating a local URI into one the user's browser can reach."""

    async def resolve(self, uri: str) -> str:
        raise NotImplementedError


class IdentityResolver(ExternalUriResolver):
    """No tunnel: the local address is the external address."""

    async def resolve(self, uri: str) -> str:
        return uri


class ForwardedPortResolver(ExternalUriResolver):
    """Rewrite local ports using a table of forwarded public base URLs.

    `forwards` maps a local port to the base URL that reaches it, e.g.
    ``{3000: "https://abc-3000.tunnel.example"}``. The request path and query
    are kept. Ports without an entry resolve to themselves unless `strict` is
    set, in which case they are an error.
    """

    def __init__(self, forwards: Optional[Dict[int, str]] = None, strict: bool = False):
        self.forwards: Dict[int, str] = dict(forwards or {})
        self.strict = strict

    def forward(self, port: int, base_url: str) -> None:
        self.forwards[port] = base_url

    def remove(self, port: int) -> None:
        self.forwards.pop(port, None)

    async def resolve(self, uri: str) -> str:
        parts = urlsplit(uri)
        try:
            port = parts.port
        except ValueError as e:
            raise ExternalResolutionError(uri, str(e)) from e

        base = self.forwards.get(port) if port is not None else None
        if base is None:
            if self.strict:
                raise ExternalResolutionError(uri, f"port {port} is not forwarded")
            return uri

        target = urlsplit(base)
        if not target.scheme or not target.netloc:
            raise ExternalResolutionError(uri, f"invalid forward target {base!r}")

        path = target.path.rstrip("/") + parts.path
        resolved = urlunsplit(
            (target.scheme, target.netloc, path, parts.query, parts.fragment)
        )
        logger.debug(f"Resolved {uri} -> {resolved}")
        return resolved


async def externalize(resolver: ExternalUriResolver, uri: str) -> str:
    """Resolve `uri` through `resolver`, reporting any failure uniformly."""
    try:
        return await resolver.resolve(uri)
    except ExternalResolutionError:
        raise
    except Exception as e:
        raise ExternalResolutionError(uri, str(e)) from e
