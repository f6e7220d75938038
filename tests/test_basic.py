"""Basic sanity tests"""

import pytest


def test_imports():
    """Test that all modules can be imported"""
    from lantunnel import config, errors
    from lantunnel.crypto import cipher, keys
    from lantunnel.transfer import header, cancel, sender, receiver
    from lantunnel.network import transport
    from lantunnel.discovery import mdns
    from lantunnel.server import server
    from lantunnel.client import client
    assert True


def test_python_version():
    """Test Python version is adequate"""
    import sys
    assert sys.version_info >= (3, 10)


def test_cryptography_import():
    """Test that the AES backend is available"""
    try:
        from cryptography.hazmat.primitives.ciphers import algorithms
        assert algorithms.AES.block_size == 128
    except ImportError as e:
        pytest.fail(f"cryptography not available: {e}")


def test_error_exit_codes_are_distinct():
    """Every error kind maps to its own exit code"""
    from lantunnel.errors import (HeaderError, TransferIOError, NetworkError,
                                  AckTimeoutError, IntegrityError, CancellationError)

    codes = [cls.exit_code for cls in (HeaderError, TransferIOError, NetworkError,
                                       AckTimeoutError, IntegrityError, CancellationError)]
    assert len(set(codes)) == len(codes)
    assert 0 not in codes
