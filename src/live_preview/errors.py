"""Exceptions raised by live-preview."""


class LivePreviewError(Exception):
    """Base class for live-preview errors."""


class ExternalResolutionError(LivePreviewError):
    """A local URI could not be translated into an externally reachable one."""

    def __init__(self, uri: str, reason: str = ""):
        self.uri = uri
        self.reason = reason
        message = f"Could not resolve external address for {uri}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


class ServiceStartError(LivePreviewError):
    """A server could not bind to any port it tried."""

    def __init__(self, service: str, host: str, port: int, cause: Exception):
        self.service = service
        self.host = host
        self.port = port
        self.cause = cause
        super().__init__(f"{service} server could not listen on {host}:{port}: {cause}")


class SettingsError(LivePreviewError):
    """Unknown setting name or a value of the wrong kind."""
