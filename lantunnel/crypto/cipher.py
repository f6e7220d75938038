"""
Cipher stream adapter
AES-CTR keystream applied incrementally to asyncio streams
"""

import asyncio
import secrets
from typing import Optional, Union
import logging

from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

logger = logging.getLogger(__name__)

IV_SIZE = 16


def new_iv() -> bytes:
    """Fresh random IV for one session"""
    return secrets.token_bytes(IV_SIZE)


class StreamCipher:
    """
    Keystream XOR bound to one key + IV
    Encryption and decryption are the same operation; state advances with
    every byte so chunk sizes never need to line up with the AES block
    """

    def __init__(self, key: bytes, iv: bytes):
        if len(key) not in (16, 24, 32):
            raise ValueError(f"Invalid AES key length: {len(key)}")
        if len(iv) != IV_SIZE:
            raise ValueError(f"IV must be {IV_SIZE} bytes, got {len(iv)}")

        cipher = Cipher(algorithms.AES(key), modes.CTR(iv))
        self._context = cipher.encryptor()
        self.offset = 0

    def update(self, data: bytes) -> bytes:
        """Transform the next len(data) bytes of the stream"""
        out = self._context.update(data)
        self.offset += len(data)
        return out


class CipherWriter:
    """Encrypts everything written to the wrapped StreamWriter"""

    def __init__(self, writer: asyncio.StreamWriter, cipher: StreamCipher):
        self._writer = writer
        self._cipher = cipher
        self.bytes_written = 0

    def write(self, data: bytes):
        self._writer.write(self._cipher.update(data))
        self.bytes_written += len(data)

    async def drain(self):
        await self._writer.drain()


class CipherReader:
    """
    Decrypts data read from the wrapped StreamReader
    With a limit, never consumes more than `limit` bytes from the stream
    """

    def __init__(self, reader: asyncio.StreamReader, cipher: StreamCipher,
                 limit: Optional[int] = None):
        self._reader = reader
        self._cipher = cipher
        self.limit = limit
        self.bytes_read = 0

    @property
    def remaining(self) -> Optional[int]:
        if self.limit is None:
            return None
        return self.limit - self.bytes_read

    async def read(self, n: int = -1) -> bytes:
        """Read up to n bytes; b'' at the limit or at EOF"""
        remaining = self.remaining
        if remaining is not None:
            if remaining <= 0:
                return b''
            n = remaining if n < 0 else min(n, remaining)

        data = await self._reader.read(n)
        self.bytes_read += len(data)
        return self._cipher.update(data)


def wrap(raw_stream, key: bytes, iv: bytes,
         limit: Optional[int] = None) -> Union[CipherWriter, CipherReader]:
    """Wrap a writable stream for encryption or a readable one for decryption"""
    cipher = StreamCipher(key, iv)

    if hasattr(raw_stream, 'write'):
        return CipherWriter(raw_stream, cipher)
    if hasattr(raw_stream, 'read'):
        return CipherReader(raw_stream, cipher, limit)

    raise TypeError(f"Cannot wrap {type(raw_stream).__name__}: not a stream")
