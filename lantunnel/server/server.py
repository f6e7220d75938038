"""Sender side: listen, advertise, hand the first connection to the sender driver"""

import asyncio
from pathlib import Path
from typing import Optional
import logging

from ..config import TransferConfig
from ..discovery.mdns import advertise
from ..errors import NetworkError, TransferIOError
from ..network.transport import Connection
from ..transfer.cancel import CancelToken, race
from ..transfer.progress import ProgressLogger
from ..transfer.sender import FileSender, TransferResult

logger = logging.getLogger(__name__)


class TunnelServer:
    """
    Serves one file to exactly one receiver
    Connections arriving after the first one are closed straight away
    """

    def __init__(self, path: Path, config: TransferConfig,
                 token: Optional[CancelToken] = None, advertise: bool = True):
        self.path = Path(path)
        self.config = config
        self.token = token
        self.advertise = advertise

        self._server: Optional[asyncio.AbstractServer] = None
        self._connection: Optional[asyncio.Future] = None
        self.sender: Optional[FileSender] = None

    @property
    def port(self) -> int:
        """Actual listening port (useful when configured with port 0)"""
        if self._server is None or not self._server.sockets:
            return self.config.port
        return self._server.sockets[0].getsockname()[1]

    async def start(self):
        """Bind the listening socket"""
        if not self.path.is_file():
            raise TransferIOError(f"File does not exist: {self.path}")

        self._connection = asyncio.get_running_loop().create_future()
        try:
            self._server = await asyncio.start_server(
                self._handle_client, self.config.host, self.config.port
            )
        except OSError as e:
            raise NetworkError(
                f"Unable to listen on {self.config.host}:{self.config.port}: {e}"
            ) from e

        logger.info(f"Waiting for receiver on {self.config.host}:{self.port}")

    async def _handle_client(self, reader: asyncio.StreamReader,
                             writer: asyncio.StreamWriter):
        """Accept the first connection; refuse the rest"""
        addr = writer.get_extra_info('peername')

        if self._connection.done():
            logger.warning(f"Rejecting {addr}: a transfer is already in progress")
            await Connection(reader, writer).close()
            return

        logger.info(f"New connection from {addr}")
        self._connection.set_result(Connection(reader, writer))

    async def _wait_for_receiver(self, advert_task: Optional[asyncio.Task]) -> Connection:
        if advert_task is not None:
            done, _ = await asyncio.wait({self._connection, advert_task},
                                         return_when=asyncio.FIRST_COMPLETED)
            if advert_task in done and self._connection not in done:
                # Receivers can still dial --host directly
                error = advert_task.exception()
                logger.warning(f"Peer discovery unavailable, still waiting for a direct "
                               f"connection on port {self.port}: {error}")

        return await asyncio.shield(self._connection)

    async def serve(self) -> TransferResult:
        """Wait for the receiver and run one session"""
        if self._server is None:
            await self.start()

        advert_token = CancelToken()
        advert_task = None
        if self.advertise:
            advert_task = asyncio.ensure_future(
                advertise(self.config.service_name, self.port, advert_token)
            )

        connection = None
        try:
            connection = await race(
                self._wait_for_receiver(advert_task), self.token, "waiting for receiver"
            )
        finally:
            # Single session: stop listening and advertising either way
            self._server.close()
            advert_token.cancel("receiver connected")
            if advert_task is not None:
                outcome, = await asyncio.gather(advert_task, return_exceptions=True)
                if isinstance(outcome, Exception) and connection is not None:
                    logger.debug(f"mDNS advertisement ended with error: {outcome}")
            if connection is None and self._connection.done() and not self._connection.cancelled():
                await self._connection.result().close()

        try:
            async with connection.session():
                progress = None if self.config.verbose else ProgressLogger("Sending")
                self.sender = FileSender(self.config, self.token, progress)
                return await self.sender.send(self.path, connection.reader, connection.writer)
        finally:
            await self._server.wait_closed()

    async def run(self) -> TransferResult:
        await self.start()
        return await self.serve()
