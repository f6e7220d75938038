"""Connection wrapper: one dedicated session per TCP connection"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional, Tuple
import logging

from ..errors import NetworkError

logger = logging.getLogger(__name__)


class Connection:
    """An accepted or dialed TCP connection carrying exactly one session"""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        self.reader = reader
        self.writer = writer
        self._in_session = False
        self._closed = False

    @property
    def peer(self) -> Optional[Tuple]:
        return self.writer.get_extra_info('peername')

    @property
    def closed(self) -> bool:
        return self._closed

    @asynccontextmanager
    async def session(self):
        """
        Claim the connection for one session
        The connection is closed when the session ends, however it ends
        """
        if self._in_session:
            raise NetworkError(f"Connection to {self.peer} is already carrying a session")
        if self._closed:
            raise NetworkError(f"Connection to {self.peer} is closed")

        self._in_session = True
        try:
            yield self
        finally:
            await self.close()

    async def close(self):
        """Close the connection; safe to call more than once"""
        if self._closed:
            return
        self._closed = True

        self.writer.close()
        try:
            await self.writer.wait_closed()
        except (ConnectionError, OSError) as e:
            logger.debug(f"Error while closing connection to {self.peer}: {e}")


async def open_connection(host: str, port: int, timeout: float = 10.0) -> Connection:
    """Dial a peer"""
    logger.info(f"Connecting to {host}:{port}")
    try:
        reader, writer = await asyncio.wait_for(
            asyncio.open_connection(host, port), timeout
        )
    except asyncio.TimeoutError as e:
        raise NetworkError(f"Timed out connecting to {host}:{port}") from e
    except OSError as e:
        raise NetworkError(f"Unable to connect to {host}:{port}: {e}") from e

    logger.info(f"✓ Connected to {host}:{port}")
    return Connection(reader, writer)
