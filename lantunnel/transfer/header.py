"""
Header codec
One JSON record terminated by a newline, sent before any ciphertext
"""

import asyncio
import json
import re
from dataclasses import dataclass
from typing import Any, Dict
import logging

from ..config import MAX_WIRE_SIZE
from ..crypto.cipher import IV_SIZE
from ..errors import HeaderError, NetworkError

logger = logging.getLogger(__name__)

HEADER_DELIMITER = b'\n'
CHECKSUM_RE = re.compile(r'^[0-9a-f]{64}$')
FORBIDDEN_NAME_CHARS = ('\n', '/', '\x00')
# Path separator on Windows receivers; only refused on the way in
INBOUND_FORBIDDEN_NAME_CHARS = FORBIDDEN_NAME_CHARS + ('\\',)


@dataclass(frozen=True)
class Metadata:
    """Session metadata carried by the header frame"""
    file_name: str
    size: int
    checksum: str
    iv: bytes


def validate_file_name(name: Any, forbidden=FORBIDDEN_NAME_CHARS) -> str:
    """Reject anything that is not a bare file name"""
    if not isinstance(name, str) or not name:
        raise HeaderError("file_name must be a non-empty string")
    if any(c in name for c in forbidden):
        raise HeaderError(f"file_name contains a forbidden character: {name!r}")
    if name in ('.', '..'):
        raise HeaderError(f"file_name is not a file: {name!r}")
    return name


def _validate(file_name: Any, size: Any, checksum: Any, iv: Any,
              max_file_size: int = MAX_WIRE_SIZE, forbidden=FORBIDDEN_NAME_CHARS):
    validate_file_name(file_name, forbidden)

    # bool is an int subclass; JSON true must not pass as a size
    if not isinstance(size, int) or isinstance(size, bool):
        raise HeaderError(f"size must be an integer, got {size!r}")
    if size < 0:
        raise HeaderError(f"size must be non-negative, got {size}")
    if size > max_file_size:
        raise HeaderError(f"Declared size {size} exceeds maximum {max_file_size}")

    if not isinstance(checksum, str) or not CHECKSUM_RE.match(checksum):
        raise HeaderError("checksum must be a lowercase SHA-256 hex digest")

    if not isinstance(iv, (bytes, bytearray)) or len(iv) != IV_SIZE:
        raise HeaderError(f"iv must be {IV_SIZE} bytes")


def encode(metadata: Metadata) -> bytes:
    """Serialize metadata into a delimited header frame"""
    _validate(metadata.file_name, metadata.size, metadata.checksum, metadata.iv)

    record = {
        'file_name': metadata.file_name,
        'size': metadata.size,
        'checksum': metadata.checksum,
        'iv': metadata.iv.hex()
    }
    return json.dumps(record).encode('utf-8') + HEADER_DELIMITER


def parse(frame: bytes, max_file_size: int = MAX_WIRE_SIZE) -> Metadata:
    """Parse one header frame, with or without its trailing delimiter"""
    if frame.endswith(HEADER_DELIMITER):
        frame = frame[:-len(HEADER_DELIMITER)]

    try:
        record = json.loads(frame.decode('utf-8'))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise HeaderError(f"Malformed header: {e}") from e

    if not isinstance(record, dict):
        raise HeaderError("Header must be a JSON object")

    missing = {'file_name', 'size', 'checksum', 'iv'} - set(record)
    if missing:
        raise HeaderError(f"Header missing field(s): {', '.join(sorted(missing))}")

    iv = _parse_iv(record)
    _validate(record['file_name'], record['size'], record['checksum'], iv,
              max_file_size, INBOUND_FORBIDDEN_NAME_CHARS)

    return Metadata(
        file_name=record['file_name'],
        size=record['size'],
        checksum=record['checksum'],
        iv=iv
    )


def _parse_iv(record: Dict[str, Any]) -> bytes:
    iv_hex = record['iv']
    if not isinstance(iv_hex, str):
        raise HeaderError("iv must be a hex string")
    try:
        return bytes.fromhex(iv_hex)
    except ValueError as e:
        raise HeaderError(f"iv is not valid hex: {e}") from e


async def decode(reader: asyncio.StreamReader, max_header_size: int,
                 max_file_size: int = MAX_WIRE_SIZE) -> Metadata:
    """
    Read and parse the header frame from the stream
    The read stops at the delimiter so the ciphertext that follows stays
    buffered in the reader
    """
    try:
        frame = await reader.readuntil(HEADER_DELIMITER)
    except asyncio.LimitOverrunError as e:
        raise HeaderError(f"No header delimiter within {e.consumed} bytes") from e
    except asyncio.IncompleteReadError as e:
        raise HeaderError(
            f"Connection closed after {len(e.partial)} header bytes, before the delimiter"
        ) from e
    except (ConnectionError, OSError) as e:
        raise NetworkError(f"Failed to read header: {e}") from e

    if len(frame) > max_header_size:
        raise HeaderError(f"Header is {len(frame)} bytes, maximum is {max_header_size}")

    metadata = parse(frame, max_file_size)
    logger.debug(f"Decoded header: {metadata.file_name} ({metadata.size} bytes)")
    return metadata
