"""
Receiver driver
Reads the header, decrypts straight into the destination file while hashing
in the same pass, verifies and replies with ACK or NACK
"""

import asyncio
import hashlib
import os
import time
from enum import Enum
from pathlib import Path
from typing import Optional, Tuple
import logging

import aiofiles

from ..config import TransferConfig
from ..crypto.cipher import CipherReader, StreamCipher
from ..errors import (CancellationError, IntegrityError, NetworkError,
                      TransferError, TransferIOError)
from .cancel import CancelToken, race
from .header import Metadata, decode
from .sender import ACK, NACK, ProgressCallback, TransferResult

logger = logging.getLogger(__name__)


class ReceiverState(Enum):
    IDLE = "idle"
    HEADER_READ = "header_read"
    FILE_OPEN = "file_open"
    STREAMING_HASHING = "streaming_hashing"
    VERIFY = "verify"
    ACKED = "acked"
    NACKED = "nacked"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


class FileReceiver:
    """Receives one file into `dest_dir`"""

    def __init__(self, config: TransferConfig, dest_dir: Path = Path("."),
                 token: Optional[CancelToken] = None,
                 progress: Optional[ProgressCallback] = None):
        self.config = config
        self.dest_dir = Path(dest_dir)
        self.token = token
        self.progress = progress
        self.state = ReceiverState.IDLE
        self.metadata: Optional[Metadata] = None
        self.bytes_written = 0

    async def receive(self, reader: asyncio.StreamReader,
                      writer: asyncio.StreamWriter) -> TransferResult:
        """Run the whole receiver state machine; raises a TransferError on failure"""
        started = time.monotonic()

        try:
            metadata = await race(
                decode(reader, self.config.max_header_size, self.config.max_file_size),
                self.token, "header"
            )
            self.metadata = metadata
            self.state = ReceiverState.HEADER_READ
            logger.info(f"Incoming file: {metadata.file_name} ({metadata.size} bytes)")

            destination = self._destination(metadata.file_name)
            actual_size, actual_checksum = await race(
                self._receive_into(destination, reader, metadata),
                self.token, "streaming"
            )

            # Cancellation is only honoured up to this point: no control byte
            # is written once it has fired
            if self.token is not None:
                self.token.raise_if_cancelled("verify")

            self.state = ReceiverState.VERIFY
            ok = actual_size == metadata.size and actual_checksum == metadata.checksum
            await self._send_control(writer, ACK if ok else NACK)

            if not ok:
                self.state = ReceiverState.NACKED
                raise IntegrityError(
                    f"Corruption: expected {metadata.size} bytes ({metadata.checksum}), "
                    f"got {actual_size} bytes ({actual_checksum})",
                    expected_size=metadata.size,
                    actual_size=actual_size,
                    expected_checksum=metadata.checksum,
                    actual_checksum=actual_checksum
                )
            self.state = ReceiverState.ACKED

        except CancellationError:
            self.state = ReceiverState.CANCELLED
            logger.warning("Transfer cancelled; partial file left on disk is incomplete")
            raise
        except TransferError:
            self.state = ReceiverState.FAILED
            raise

        self.state = ReceiverState.DONE
        logger.info(f"✓ Integrity verified: {actual_size} bytes received")

        return TransferResult(
            file_name=metadata.file_name,
            path=destination,
            size=actual_size,
            checksum=actual_checksum,
            elapsed=time.monotonic() - started
        )

    def _destination(self, file_name: str) -> Path:
        """Resolve the output path and make sure it stays inside dest_dir"""
        root = self.dest_dir.resolve()
        destination = (root / file_name).resolve()
        if destination.parent != root:
            raise TransferIOError(f"Refusing to write outside {root}: {file_name!r}")
        return destination

    async def _receive_into(self, destination: Path, reader: asyncio.StreamReader,
                            metadata: Metadata) -> Tuple[int, str]:
        """Decrypt exactly metadata.size bytes into the file; returns (written, digest)"""
        try:
            f = await aiofiles.open(destination, 'wb')
        except OSError as e:
            raise TransferIOError(f"Cannot create {destination}: {e}") from e
        self.state = ReceiverState.FILE_OPEN

        hasher = hashlib.sha256()
        cipher_reader = CipherReader(reader, StreamCipher(self.config.key, metadata.iv),
                                     limit=metadata.size)

        try:
            self.state = ReceiverState.STREAMING_HASHING
            while True:
                try:
                    chunk = await cipher_reader.read(self.config.chunk_size)
                except (ConnectionError, OSError) as e:
                    raise NetworkError(f"Failed to receive data: {e}") from e
                if not chunk:
                    break

                try:
                    await f.write(chunk)
                except OSError as e:
                    raise TransferIOError(f"Failed writing {destination}: {e}") from e
                hasher.update(chunk)

                self.bytes_written += len(chunk)
                if self.config.verbose:
                    logger.debug(f"{'NET-RX':<10} | Chunk: {len(chunk):<6} | Cumulative: {self.bytes_written}")
                if self.progress:
                    self.progress(self.bytes_written, metadata.size)

            # Durable before any verdict is sent
            try:
                await f.flush()
                await asyncio.get_running_loop().run_in_executor(None, os.fsync, f.fileno())
            except OSError as e:
                raise TransferIOError(f"Failed to sync {destination}: {e}") from e
        finally:
            await f.close()

        logger.info(f"Bytes received: {self.bytes_written}")
        return self.bytes_written, hasher.hexdigest()

    async def _send_control(self, writer: asyncio.StreamWriter, byte: bytes):
        try:
            writer.write(byte)
            await writer.drain()
        except (ConnectionError, OSError) as e:
            raise NetworkError(f"Failed to send control byte: {e}") from e
