"""Find the first port that nothing is listening on."""

import asyncio
import logging

from .constants import DEFAULT_HOST, PORT_PROBE_TIMEOUT

logger = logging.getLogger(__name__)


async def _is_port_taken(host: str, port: int, timeout: float) -> bool:
    """Probe `host:port` with a short-lived connection.

    A refused or failed connection and a timeout both count as free. The
    probe socket is closed on every path before returning.
    """
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout=timeout
        )
    except (OSError, asyncio.TimeoutError):
        return False

    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True


async def find_free_port(
    start_port: int, host: str = DEFAULT_HOST, timeout: float = PORT_PROBE_TIMEOUT
) -> int:
    """Return the first port >= `start_port` not accepting connections on `host`.

    Ports are probed one at a time. No upper bound is enforced; the result is
    optimistic, so binding it can still fail if another process takes it first.
    """
    port = start_port
    while await _is_port_taken(host, port, timeout):
        logger.debug(f"Port {port} on {host} is in use")
        port += 1
    return port
