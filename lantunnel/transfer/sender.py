"""Sender driver: hash, send header, stream ciphertext, await ACK"""

import asyncio
import hashlib
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, Tuple
import logging

import aiofiles

from ..config import TransferConfig
from ..crypto.cipher import CipherWriter, StreamCipher, new_iv
from ..errors import (AckTimeoutError, CancellationError, IntegrityError,
                      NetworkError, TransferError, TransferIOError)
from .cancel import CancelToken, race
from .header import Metadata, encode

logger = logging.getLogger(__name__)

ACK = b'\x01'
NACK = b'\x00'

ProgressCallback = Callable[[int, int], None]  # (bytes_done, total)


class SenderState(Enum):
    IDLE = "idle"
    HASHING = "hashing"
    HEADER_SENT = "header_sent"
    STREAMING = "streaming"
    AWAIT_ACK = "await_ack"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class TransferResult:
    """Outcome of a successful send or receive"""
    file_name: str
    path: Path
    size: int
    checksum: str
    elapsed: float


async def file_checksum(path: Path, chunk_size: int = 64 * 1024) -> Tuple[str, int]:
    """SHA-256 hex digest and byte count of a file, read once"""
    hasher = hashlib.sha256()
    size = 0

    try:
        f = await aiofiles.open(path, 'rb')
    except OSError as e:
        raise TransferIOError(f"Cannot open {path}: {e}") from e

    try:
        while chunk := await f.read(chunk_size):
            hasher.update(chunk)
            size += len(chunk)
    except OSError as e:
        raise TransferIOError(f"Failed reading {path}: {e}") from e
    finally:
        await f.close()

    return hasher.hexdigest(), size


class FileSender:
    """
    Sends one file over an established connection
    One instance per session
    """

    def __init__(self, config: TransferConfig, token: Optional[CancelToken] = None,
                 progress: Optional[ProgressCallback] = None):
        self.config = config
        self.token = token
        self.progress = progress
        self.state = SenderState.IDLE
        self.bytes_sent = 0

    async def send(self, path: Path, reader: asyncio.StreamReader,
                   writer: asyncio.StreamWriter) -> TransferResult:
        """Run the whole sender state machine; raises a TransferError on failure"""
        path = Path(path)
        started = time.monotonic()

        try:
            # Hash
            self.state = SenderState.HASHING
            logger.info(f"Calculating SHA-256 checksum of {path}")
            checksum, size = await race(
                file_checksum(path, self.config.chunk_size), self.token, "hashing"
            )
            logger.info(f"✓ Checksum {checksum} ({size} bytes)")

            # Header
            metadata = Metadata(file_name=path.name, size=size,
                                checksum=checksum, iv=new_iv())
            await race(self._send_header(writer, metadata), self.token, "header")
            self.state = SenderState.HEADER_SENT

            # Ciphertext
            self.state = SenderState.STREAMING
            cipher_writer = CipherWriter(writer, StreamCipher(self.config.key, metadata.iv))
            await race(self._stream(path, cipher_writer, size), self.token, "streaming")
            logger.info(f"Bytes sent: {self.bytes_sent}")

            # Control byte
            self.state = SenderState.AWAIT_ACK
            await race(self._await_ack(reader), self.token, "await_ack")

        except CancellationError:
            self.state = SenderState.CANCELLED
            raise
        except TransferError:
            self.state = SenderState.FAILED
            raise

        self.state = SenderState.DONE
        logger.info("✓ Receiver confirmed receipt")

        return TransferResult(
            file_name=metadata.file_name,
            path=path,
            size=size,
            checksum=checksum,
            elapsed=time.monotonic() - started
        )

    async def _send_header(self, writer: asyncio.StreamWriter, metadata: Metadata):
        frame = encode(metadata)
        try:
            writer.write(frame)
            await writer.drain()
        except (ConnectionError, OSError) as e:
            raise NetworkError(f"Failed to send header: {e}") from e
        logger.debug(f"Header sent ({len(frame)} bytes)")

    async def _stream(self, path: Path, cipher_writer: CipherWriter, size: int):
        """Copy exactly `size` plaintext bytes through the cipher"""
        try:
            f = await aiofiles.open(path, 'rb')
        except OSError as e:
            raise TransferIOError(f"Cannot open {path}: {e}") from e

        try:
            while self.bytes_sent < size:
                want = min(self.config.chunk_size, size - self.bytes_sent)
                try:
                    chunk = await f.read(want)
                except OSError as e:
                    raise TransferIOError(f"Failed reading {path}: {e}") from e
                if not chunk:
                    raise TransferIOError(
                        f"{path} shrank during transfer: {self.bytes_sent} of {size} bytes"
                    )

                try:
                    cipher_writer.write(chunk)
                    await cipher_writer.drain()
                except (ConnectionError, OSError) as e:
                    raise NetworkError(f"Failed to send data: {e}") from e

                self.bytes_sent += len(chunk)
                if self.config.verbose:
                    logger.debug(f"{'NET-TX':<10} | Chunk: {len(chunk):<6} | Cumulative: {self.bytes_sent}")
                if self.progress:
                    self.progress(self.bytes_sent, size)
        finally:
            await f.close()

        # Final flush of anything still buffered in the transport
        try:
            await cipher_writer.drain()
        except (ConnectionError, OSError) as e:
            raise NetworkError(f"Failed to flush data: {e}") from e

    async def _await_ack(self, reader: asyncio.StreamReader):
        try:
            reply = await asyncio.wait_for(reader.readexactly(1), self.config.ack_timeout)
        except asyncio.TimeoutError as e:
            raise AckTimeoutError(
                f"No acknowledgement from receiver within {self.config.ack_timeout}s"
            ) from e
        except asyncio.IncompleteReadError as e:
            raise NetworkError("Connection closed before acknowledgement") from e
        except (ConnectionError, OSError) as e:
            raise NetworkError(f"Failed to read acknowledgement: {e}") from e

        if reply != ACK:
            raise IntegrityError(f"Receiver rejected the transfer (control byte {reply[0]})")
