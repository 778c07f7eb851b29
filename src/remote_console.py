"""
remote_console.py
Authenticated command channel to the game server (Source RCON).

Wraps rcon.source.Client so the rest of the shield only deals with
RemoteConsoleError and a session that is safe to close more than once.
"""

import logging
from typing import Callable, Optional

from rcon.exceptions import EmptyResponse, SessionTimeout, WrongPassword
from rcon.source import Client

logger = logging.getLogger(__name__)

# ValueError covers UnicodeDecodeError from payload decoding and malformed packets.
RCON_ERRORS = (OSError, ValueError, EmptyResponse, SessionTimeout, WrongPassword)


class RemoteConsoleError(Exception):
    """Raised when the remote console cannot be reached or a command fails."""


class RconSession:
    """An open, authenticated remote console session."""

    def __init__(self, client: Client, address: str):
        self._client = client
        self.address = address
        self._closed = False

    def execute(self, command: str) -> str:
        """Run a console command and return its text response."""
        if self._closed:
            raise RemoteConsoleError(f"session to {self.address} is closed")
        try:
            return self._client.run(command)
        except RCON_ERRORS as e:
            raise RemoteConsoleError(f"command {command!r} failed: {e}") from e

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._client.close()
        except OSError as e:
            logger.debug(f"Error closing RCON session to {self.address}: {e}")

    def __enter__(self) -> "RconSession":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


RconDial = Callable[[str, int, str], RconSession]


def dial(host: str, port: int, password: str,
         timeout: Optional[float] = None) -> RconSession:
    """
    Open and authenticate a session.

    Raises:
        RemoteConsoleError: connection refused, timed out or wrong password
    """
    address = f"{host}:{port}"
    logger.info(f"Dialing RCON at {address}...")
    client = Client(host, port, timeout=timeout, passwd=password)
    try:
        client.connect(login=True)
    except RCON_ERRORS as e:
        client.close()
        raise RemoteConsoleError(f"failed to connect to RCON at {address}: {e}") from e
    return RconSession(client, address)


def say_command(message: str) -> str:
    """Console command broadcasting message in the game chat."""
    text = message.replace('"', "'")
    return f'say "{text}"'
