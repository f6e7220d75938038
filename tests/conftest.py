"""Pytest configuration and fixtures"""

import asyncio
import contextlib
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

import pytest
import pytest_asyncio

from lantunnel.config import TransferConfig


@dataclass
class LoopbackPair:
    """Both ends of one TCP connection on 127.0.0.1"""
    sender_reader: asyncio.StreamReader
    sender_writer: asyncio.StreamWriter
    receiver_reader: asyncio.StreamReader
    receiver_writer: asyncio.StreamWriter


@pytest.fixture
def temp_dir():
    """Create temporary directory for tests"""
    tmpdir = tempfile.mkdtemp()
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def dest_dir(temp_dir):
    """Directory the receiver writes into"""
    path = temp_dir / "received"
    path.mkdir()
    return path


@pytest.fixture
def key():
    return bytes(range(32))


@pytest.fixture
def config(key):
    return TransferConfig(key=key, ack_timeout=5.0, host="127.0.0.1", port=0)


@pytest_asyncio.fixture
async def loopback():
    """Connected sender/receiver stream pair over a real socket"""
    accepted = asyncio.get_running_loop().create_future()

    async def on_connect(reader, writer):
        accepted.set_result((reader, writer))

    server = await asyncio.start_server(on_connect, '127.0.0.1', 0)
    port = server.sockets[0].getsockname()[1]

    receiver_reader, receiver_writer = await asyncio.open_connection('127.0.0.1', port)
    sender_reader, sender_writer = await accepted

    yield LoopbackPair(sender_reader, sender_writer, receiver_reader, receiver_writer)

    for writer in (sender_writer, receiver_writer):
        writer.close()
        with contextlib.suppress(ConnectionError, OSError):
            await writer.wait_closed()
    server.close()
    await server.wait_closed()
