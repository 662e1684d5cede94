"""Status reporting: server on/off indicators and user messages."""

import logging
from typing import Any, Dict, Optional

import click

logger = logging.getLogger(__name__)


class UserInterface:
    """Sink for server status; the base class only logs.

    `show_information` returns the action the user picked, if any. Context
    flags are kept in `contexts` so front ends can query them.
    """

    def __init__(self):
        self.contexts: Dict[str, Any] = {}
        self.port: Optional[int] = None

    def server_on(self, port: int) -> None:
        self.port = port

    def server_off(self) -> None:
        self.port = None

    async def show_information(self, message: str, *actions: str) -> Optional[str]:
        logger.info(message)
        return None

    def show_error(self, message: str) -> None:
        logger.error(message)

    def set_context(self, key: str, value: Any) -> None:
        self.contexts[key] = value

    def update_configurations(self) -> None:
        pass


class ConsoleInterface(UserInterface):
    """Reports status on the terminal."""

    def server_on(self, port: int) -> None:
        super().server_on(port)
        click.secho(f"Live preview server on port {port}", fg="green")

    def server_off(self) -> None:
        if self.port is not None:
            click.secho("Live preview server off", fg="yellow")
        super().server_off()

    async def show_information(self, message: str, *actions: str) -> Optional[str]:
        click.echo(message)
        return None

    def show_error(self, message: str) -> None:
        click.secho(message, fg="red", err=True)
