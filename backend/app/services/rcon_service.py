"""RCON channel to the Minecraft server

Thin async wrapper over the blocking rcon.source.Client. Every call runs in
a worker thread so a slow server never stalls the event loop.
"""
import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from rcon.exceptions import WrongPassword
from rcon.source import Client

from app.core.config import settings
from app.core.logging import rcon_logger

logger = rcon_logger


class RconChannelError(Exception):
    """Connection, authentication or transport failure on the RCON channel"""

    def __init__(self, cause: str, message: Optional[str] = None):
        self.cause = cause
        super().__init__(message or cause)


class RconSession:
    """An authenticated RCON connection. Close it when done."""

    def __init__(self, client: Client):
        self._client = client
        self._closed = False

    async def send(self, command: str) -> str:
        try:
            return await asyncio.to_thread(self._client.run, command)
        except Exception as e:
            raise RconChannelError("send", f"Sending {command!r} failed: {e}") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await asyncio.to_thread(self._client.close)
        except OSError as e:
            logger.warning(f"Error closing RCON connection: {e}")


class RconChannel:
    """Factory for RCON sessions against one server"""

    def __init__(self, host: str, port: int, password: str, timeout: Optional[float] = None):
        self.host = host
        self.port = port
        self.password = password
        self.timeout = timeout

    @classmethod
    def from_settings(cls) -> "RconChannel":
        return cls(
            settings.RCON_HOST,
            settings.RCON_PORT,
            settings.RCON_PASSWORD,
            timeout=settings.RCON_TIMEOUT,
        )

    async def connect(self) -> RconSession:
        """Open and authenticate a connection.

        Raises:
            RconChannelError: cause 'auth' for a rejected password,
                'connection' for anything else
        """
        client = Client(self.host, self.port, timeout=self.timeout, passwd=self.password)
        try:
            await asyncio.to_thread(client.connect, True)
        except WrongPassword as e:
            await asyncio.to_thread(client.close)
            raise RconChannelError("auth", f"RCON password rejected by {self.host}:{self.port}") from e
        except Exception as e:
            await asyncio.to_thread(client.close)
            raise RconChannelError("connection", f"Cannot connect to {self.host}:{self.port}: {e}") from e
        logger.debug(f"RCON connected to {self.host}:{self.port}")
        return RconSession(client)

    @asynccontextmanager
    async def session(self) -> AsyncIterator[RconSession]:
        """Connect, yield the session and always close it"""
        rcon_session = await self.connect()
        try:
            yield rcon_session
        finally:
            await rcon_session.close()
