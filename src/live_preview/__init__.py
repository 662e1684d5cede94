"""Local live-preview server with browser auto-reload."""

__version__ = "2025.4.1"

# Re-export the public API for easy access
from .address import ForwardedPortResolver, IdentityResolver, local_uri
from .connection import Connection, ConnectionInfo
from .manager import ServerGrouping
from .port_finder import find_free_port
from .reload import ReloadPolicy
from .server import Server
from .settings import AutoRefreshMode, Settings, SettingsStore

__all__ = [
    "__version__",
    # Core API
    "ServerGrouping",
    "Server",
    "Connection",
    "ConnectionInfo",
    "ReloadPolicy",
    "find_free_port",
    # Addressing
    "local_uri",
    "IdentityResolver",
    "ForwardedPortResolver",
    # Settings
    "AutoRefreshMode",
    "Settings",
    "SettingsStore",
]
