"""Transfer configuration"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional
import logging

import yaml

from .crypto.keys import derive_key, load_key

logger = logging.getLogger(__name__)

DEFAULT_PORT = 8080
DEFAULT_SERVICE_NAME = "lantunnel"
MAX_WIRE_SIZE = 2 ** 63 - 1  # size travels as a 64-bit signed integer


@dataclass
class TransferConfig:
    """
    Settings shared by both ends of a session
    Key material is injected here and threaded through every driver
    """
    key: bytes
    chunk_size: int = 64 * 1024
    ack_timeout: float = 60.0  # seconds
    connect_timeout: float = 10.0
    max_header_size: int = 4096
    max_file_size: int = 2 ** 40
    host: str = "0.0.0.0"
    port: int = DEFAULT_PORT
    service_name: str = DEFAULT_SERVICE_NAME
    discovery_timeout: float = 10.0
    verbose: bool = False

    def __post_init__(self):
        if not isinstance(self.key, (bytes, bytearray)) or len(self.key) not in (16, 24, 32):
            raise ValueError("key must be 16, 24 or 32 bytes")
        if self.chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if self.ack_timeout <= 0 or self.connect_timeout <= 0 or self.discovery_timeout <= 0:
            raise ValueError("timeouts must be positive")
        if self.max_header_size < 64:
            raise ValueError("max_header_size is too small to hold a header")
        if not 0 <= self.max_file_size <= MAX_WIRE_SIZE:
            raise ValueError(f"max_file_size must be between 0 and {MAX_WIRE_SIZE}")
        if not 0 <= self.port <= 65535:
            raise ValueError(f"Invalid port: {self.port}")
        self.key = bytes(self.key)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], **overrides) -> "TransferConfig":
        """Build a config from a plain mapping (e.g. parsed YAML)"""
        merged = dict(data)
        merged.update({k: v for k, v in overrides.items() if v is not None})

        # Key material: raw bytes, hex string, or a passphrase to derive from
        passphrase = merged.pop('passphrase', None)
        key = merged.get('key')
        if isinstance(key, int):
            # YAML turns an all-digit hex string into a number
            raise ValueError("key must be a quoted hex string")
        if isinstance(key, str):
            merged['key'] = load_key(key)
        elif key is None and passphrase:
            merged['key'] = derive_key(passphrase)

        if merged.get('key') is None:
            raise ValueError("No key material configured (set 'key' or 'passphrase')")

        known = {f.name for f in fields(cls)}
        unknown = set(merged) - known
        if unknown:
            raise ValueError(f"Unknown config option(s): {', '.join(sorted(unknown))}")

        return cls(**merged)


def load_config(path: Optional[Path]) -> Dict[str, Any]:
    """Load a YAML config file; a missing path yields an empty mapping"""
    if path is None:
        return {}

    path = Path(path)
    with open(path, 'r') as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")

    logger.debug(f"Loaded config from {path}")
    return data
