"""
Key provisioning helpers
The transfer engine only ever sees the resulting bytes
"""

import binascii
import secrets
import logging

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

logger = logging.getLogger(__name__)

KEY_SIZE = 32
VALID_KEY_SIZES = (16, 24, 32)
DEFAULT_SALT = b'lantunnel-aes-key'
PBKDF2_ITERATIONS = 200_000


def generate_key() -> bytes:
    """Generate a random AES-256 key"""
    return secrets.token_bytes(KEY_SIZE)


def load_key(key_hex: str) -> bytes:
    """Parse a hex-encoded key"""
    try:
        key = bytes.fromhex(key_hex.strip())
    except (ValueError, binascii.Error) as e:
        raise ValueError(f"Key is not valid hex: {e}") from e

    if len(key) not in VALID_KEY_SIZES:
        raise ValueError(f"Key must be 16, 24 or 32 bytes, got {len(key)}")
    return key


def derive_key(passphrase: str, salt: bytes = DEFAULT_SALT) -> bytes:
    """
    Derive an AES-256 key from a shared passphrase
    Both peers must use the same salt to end up with the same key
    """
    if not passphrase:
        raise ValueError("Passphrase must not be empty")

    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_SIZE,
        salt=salt,
        iterations=PBKDF2_ITERATIONS,
    )
    key = kdf.derive(passphrase.encode('utf-8'))
    logger.debug("Derived session key from passphrase")
    return key
