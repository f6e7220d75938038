"""Sender-side server and receiver-side client over loopback"""

import asyncio
import hashlib
import os
import socket

import pytest

from lantunnel.client.client import TunnelClient
from lantunnel.errors import CancellationError, NetworkError, TransferIOError
from lantunnel.transfer.cancel import CancelToken
from lantunnel.transfer.header import decode
from lantunnel.transfer.sender import ACK


def free_port():
    with socket.socket() as s:
        s.bind(('127.0.0.1', 0))
        return s.getsockname()[1]


class TestTunnel:

    @pytest.mark.asyncio
    async def test_send_and_receive(self, config, temp_dir, dest_dir):
        from lantunnel.server.server import TunnelServer

        content = os.urandom(300_000)
        source = temp_dir / "photo.jpg"
        source.write_bytes(content)

        server = TunnelServer(source, config, advertise=False)
        await server.start()
        assert server.port != 0

        client = TunnelClient(config, dest_dir)
        sent, received = await asyncio.gather(
            server.serve(),
            client.run(host='127.0.0.1', port=server.port),
        )

        assert (dest_dir / "photo.jpg").read_bytes() == content
        assert sent.checksum == received.checksum == hashlib.sha256(content).hexdigest()

    @pytest.mark.asyncio
    async def test_second_connection_rejected(self, config, temp_dir):
        from lantunnel.server.server import TunnelServer

        source = temp_dir / "a.bin"
        source.write_bytes(os.urandom(1000))

        server = TunnelServer(source, config, advertise=False)
        await server.start()
        serving = asyncio.ensure_future(server.serve())

        reader, writer = await asyncio.open_connection('127.0.0.1', server.port)
        metadata = await decode(reader, 4096)
        await reader.readexactly(metadata.size)

        # The session is underway; a second peer is turned away
        try:
            reader2, writer2 = await asyncio.open_connection('127.0.0.1', server.port)
        except OSError:
            pass  # listener already closed
        else:
            assert await asyncio.wait_for(reader2.read(), 5) == b""
            writer2.close()

        writer.write(ACK)
        await writer.drain()
        result = await asyncio.wait_for(serving, 5)
        assert result.size == 1000
        writer.close()

    @pytest.mark.asyncio
    async def test_cancel_while_waiting(self, config, temp_dir):
        from lantunnel.server.server import TunnelServer

        source = temp_dir / "a.bin"
        source.write_bytes(b"data")
        token = CancelToken()

        server = TunnelServer(source, config, token=token, advertise=False)
        asyncio.get_running_loop().call_later(0.1, token.cancel, "user abort")

        with pytest.raises(CancellationError):
            await server.run()

    @pytest.mark.asyncio
    async def test_missing_file(self, config, temp_dir):
        from lantunnel.server.server import TunnelServer

        server = TunnelServer(temp_dir / "missing.bin", config, advertise=False)
        with pytest.raises(TransferIOError):
            await server.start()

    @pytest.mark.asyncio
    async def test_client_connection_refused(self, config, dest_dir):
        client = TunnelClient(config, dest_dir)
        with pytest.raises(NetworkError):
            await client.run(host='127.0.0.1', port=free_port())


class BrokenZeroconf:
    """AsyncZeroconf stand-in for hosts without a multicast interface"""

    def __init__(self, *args, **kwargs):
        raise OSError("no multicast-capable interface")


class TestDiscoveryFailure:
    """Sending keeps working when mDNS is unavailable"""

    @pytest.mark.asyncio
    async def test_advertise_error_is_typed(self, monkeypatch):
        from lantunnel.discovery import mdns
        from lantunnel.errors import DiscoveryError

        monkeypatch.setattr(mdns, "AsyncZeroconf", BrokenZeroconf)
        with pytest.raises(DiscoveryError):
            await mdns.advertise("lantunnel", 8080, CancelToken())

    @pytest.mark.asyncio
    async def test_discover_error_is_typed(self, monkeypatch):
        from lantunnel.discovery import mdns
        from lantunnel.errors import DiscoveryError

        monkeypatch.setattr(mdns, "AsyncZeroconf", BrokenZeroconf)
        with pytest.raises(DiscoveryError):
            await mdns.discover("lantunnel", timeout=1)

    @pytest.mark.asyncio
    async def test_direct_dial_after_advertise_failure(self, monkeypatch, caplog,
                                                       config, temp_dir, dest_dir):
        from lantunnel.discovery import mdns
        from lantunnel.server.server import TunnelServer

        monkeypatch.setattr(mdns, "AsyncZeroconf", BrokenZeroconf)
        content = os.urandom(50_000)
        source = temp_dir / "doc.pdf"
        source.write_bytes(content)

        server = TunnelServer(source, config, advertise=True)
        await server.start()
        port = server.port
        serving = asyncio.ensure_future(server.serve())

        # Let the advertisement fail before the receiver shows up
        await asyncio.sleep(0.3)
        assert not serving.done()

        received = await TunnelClient(config, dest_dir).run(host='127.0.0.1', port=port)
        sent = await asyncio.wait_for(serving, 5)

        assert (dest_dir / "doc.pdf").read_bytes() == content
        assert sent.checksum == received.checksum
        assert "Peer discovery unavailable" in caplog.text
