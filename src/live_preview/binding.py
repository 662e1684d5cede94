"""Retry policy for servers whose listening socket fails to bind."""

import errno
import logging
import socket

from .constants import DEFAULT_HOST, MAX_BIND_ATTEMPTS
from .errors import ServiceStartError

logger = logging.getLogger(__name__)


def is_address_in_use(error: OSError) -> bool:
    return error.errno == errno.EADDRINUSE


def is_host_unavailable(error: OSError) -> bool:
    return isinstance(error, socket.gaierror) or error.errno == errno.EADDRNOTAVAIL


class BindRetry:
    """Walks the (host, port) candidates a server tries when binding.

    A busy port moves on to the next port, up to `max_attempts` ports in all.
    An unusable host resets the connection to the default host once. Any
    other failure, or running out of attempts, raises `ServiceStartError`.

    Usage::

        retry = BindRetry("HTTP", connection, port)
        while True:
            try:
                sock = bind(retry.host, retry.port)
                break
            except OSError as e:
                retry.retry_after(e)
    """

    def __init__(
        self,
        service: str,
        connection,
        port: int,
        max_attempts: int = MAX_BIND_ATTEMPTS,
    ):
        self.service = service
        self.connection = connection
        self.port = port
        self.max_attempts = max_attempts
        self.attempts = 1
        self._host_reset = False

    @property
    def host(self) -> str:
        return self.connection.host

    def retry_after(self, error: OSError) -> None:
        if is_address_in_use(error) and self.attempts < self.max_attempts:
            logger.info(
                f"{self.service} port {self.port} is in use, trying {self.port + 1}"
            )
            self.port += 1
            self.attempts += 1
            return

        if (
            is_host_unavailable(error)
            and not self._host_reset
            and self.connection.host != DEFAULT_HOST
        ):
            self._host_reset = True
            self.connection.reset_host_to_default()
            return

        raise ServiceStartError(self.service, self.host, self.port, error) from error
