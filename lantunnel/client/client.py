"""Receiver side: find the sender, dial it, hand the connection to the receiver driver"""

from pathlib import Path
from typing import Optional
import logging

from ..config import TransferConfig
from ..discovery.mdns import discover
from ..network.transport import open_connection
from ..transfer.cancel import CancelToken, race
from ..transfer.progress import ProgressLogger
from ..transfer.receiver import FileReceiver
from ..transfer.sender import TransferResult

logger = logging.getLogger(__name__)


class TunnelClient:
    """Receives one file into dest_dir"""

    def __init__(self, config: TransferConfig, dest_dir: Path = Path("."),
                 token: Optional[CancelToken] = None):
        self.config = config
        self.dest_dir = Path(dest_dir)
        self.token = token
        self.receiver: Optional[FileReceiver] = None

    async def run(self, host: Optional[str] = None,
                  port: Optional[int] = None) -> TransferResult:
        """Connect to host:port, or discover the sender when no host is given"""
        if host is None:
            peer = await race(
                discover(self.config.service_name, self.config.discovery_timeout),
                self.token, "discovery"
            )
            host, port = peer.host, peer.port

        if port is None:
            port = self.config.port

        connection = await race(
            open_connection(host, port, self.config.connect_timeout),
            self.token, "connect"
        )

        async with connection.session():
            progress = None if self.config.verbose else ProgressLogger("Receiving")
            self.receiver = FileReceiver(self.config, self.dest_dir, self.token, progress)
            return await self.receiver.receive(connection.reader, connection.writer)
