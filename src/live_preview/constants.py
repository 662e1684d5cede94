"""Shared constants for live-preview."""

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 3000

# Seconds to wait on a probe connection before treating the port as free
PORT_PROBE_TIMEOUT = 0.5

# How many successive ports a service tries when its bind hits EADDRINUSE
MAX_BIND_ATTEMPTS = 10

DONT_SHOW_AGAIN = "Don't show again"
SERVER_ON_CONTEXT = "LivePreviewServerOn"
SETTINGS_FILE_NAME = ".live-preview.json"
