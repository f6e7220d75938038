"""Discovery helper tests (no multicast traffic)"""

import pytest

from lantunnel.discovery.mdns import PeerAddress, _peer_from_info, service_type


class FakeServiceInfo:
    """Just enough of zeroconf's ServiceInfo"""

    def __init__(self, addresses, port=8080, name="host._lantunnel._tcp.local."):
        self._addresses = addresses
        self.port = port
        self.name = name

    def parsed_addresses(self, version=None):
        return list(self._addresses)


class TestServiceType:

    @pytest.mark.parametrize("name, expected", [
        ("lantunnel", "_lantunnel._tcp.local."),
        ("_lantunnel", "_lantunnel._tcp.local."),
        (" files ", "_files._tcp.local."),
    ])
    def test_service_type(self, name, expected):
        assert service_type(name) == expected

    def test_empty_name(self):
        with pytest.raises(ValueError):
            service_type("_")


class TestPeerFromInfo:

    def test_first_lan_address(self):
        info = FakeServiceInfo(["127.0.0.1", "192.168.1.20", "10.0.0.5"])
        assert _peer_from_info(info) == PeerAddress("192.168.1.20", 8080, info.name)

    def test_loopback_only(self):
        assert _peer_from_info(FakeServiceInfo(["127.0.0.1"])) is None

    def test_missing_port(self):
        assert _peer_from_info(FakeServiceInfo(["192.168.1.20"], port=0)) is None
