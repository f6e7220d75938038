"""
mDNS discovery using Zeroconf

The sender registers `_<service>._tcp.local.` for as long as it waits for a
receiver; the receiver browses for it and dials the first usable address.
Errors are raised to the caller, which alone decides whether to exit.
"""

import asyncio
import ipaddress
import socket
from dataclasses import dataclass
from typing import Optional, Set
import logging

from zeroconf import IPVersion, ServiceStateChange
from zeroconf.asyncio import AsyncServiceBrowser, AsyncServiceInfo, AsyncZeroconf

from ..errors import DiscoveryError
from ..transfer.cancel import CancelToken

logger = logging.getLogger(__name__)

RESOLVE_TIMEOUT_MS = 3000


@dataclass(frozen=True)
class PeerAddress:
    """Resolved address of an advertised sender"""
    host: str
    port: int
    name: str = ""


def service_type(service_name: str) -> str:
    """'lantunnel' -> '_lantunnel._tcp.local.'"""
    name = service_name.strip().strip('_')
    if not name:
        raise ValueError("service name must not be empty")
    return f"_{name}._tcp.local."


def _local_ip() -> str:
    """Best guess at the LAN address of this host"""
    try:
        # No packet is sent; this only selects the outbound route
        with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as s:
            s.connect(("8.8.8.8", 80))
            return s.getsockname()[0]
    except OSError:
        return "127.0.0.1"


def _peer_from_info(info) -> Optional[PeerAddress]:
    """First non-loopback IPv4 address of a resolved service"""
    if not info.port:
        return None

    for address in info.parsed_addresses(IPVersion.V4Only):
        if ipaddress.ip_address(address).is_loopback:
            continue
        return PeerAddress(host=address, port=info.port, name=info.name)
    return None


async def advertise(service_name: str, port: int, token: CancelToken,
                    instance_name: Optional[str] = None):
    """Keep the service registered until the token fires"""
    stype = service_type(service_name)
    hostname = socket.gethostname()
    local_ip = _local_ip()
    instance = instance_name or hostname.split('.')[0]

    info = AsyncServiceInfo(
        stype,
        f"{instance}.{stype}",
        addresses=[socket.inet_aton(local_ip)],
        port=port,
        properties={'app': 'lantunnel'},
        server=f"{hostname.split('.')[0]}.local.",
    )

    zc = None
    registered = False
    try:
        try:
            zc = AsyncZeroconf(ip_version=IPVersion.V4Only)
            await zc.async_register_service(info)
        except Exception as e:
            raise DiscoveryError(f"Failed to register mDNS service {stype}: {e}") from e
        registered = True
        logger.info(f"Peer discovery active: {instance}.{stype} at {local_ip}:{port}")

        await token.wait()
    finally:
        if zc is not None:
            if registered:
                await zc.async_unregister_service(info)
            await zc.async_close()
        logger.debug("mDNS advertisement stopped")


async def discover(service_name: str, timeout: float = 10.0) -> PeerAddress:
    """
    Browse for the service and return the first resolvable peer
    The browser keeps re-querying until a peer answers or the timeout expires
    """
    stype = service_type(service_name)
    found: asyncio.Future = asyncio.get_running_loop().create_future()
    pending: Set[asyncio.Task] = set()

    try:
        zc = AsyncZeroconf(ip_version=IPVersion.V4Only)
    except Exception as e:
        raise DiscoveryError(f"Failed to start mDNS: {e}") from e

    async def resolve(name: str):
        info = AsyncServiceInfo(stype, name)
        if not await info.async_request(zc.zeroconf, RESOLVE_TIMEOUT_MS):
            logger.debug(f"mDNS: could not resolve {name}")
            return

        peer = _peer_from_info(info)
        if peer is None:
            logger.debug(f"mDNS: {name} has no usable address")
        elif not found.done():
            found.set_result(peer)

    def on_resolved(task: asyncio.Task):
        pending.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"mDNS resolution failed: {task.exception()}")

    def on_service_state_change(zeroconf, service_type, name, state_change):
        if state_change in (ServiceStateChange.Added, ServiceStateChange.Updated):
            task = asyncio.ensure_future(resolve(name))
            pending.add(task)
            task.add_done_callback(on_resolved)

    logger.info(f"Searching for peers on local network ({stype})")
    browser = None
    try:
        try:
            browser = AsyncServiceBrowser(zc.zeroconf, stype,
                                          handlers=[on_service_state_change])
        except Exception as e:
            raise DiscoveryError(f"Failed to browse for {stype}: {e}") from e
        peer = await asyncio.wait_for(found, timeout)
    except asyncio.TimeoutError as e:
        raise DiscoveryError(f"No peers found within {timeout}s") from e
    finally:
        for task in list(pending):
            task.cancel()
        if browser is not None:
            await browser.async_cancel()
        await zc.async_close()

    logger.info(f"✓ Verified peer found: {peer.name} at {peer.host}:{peer.port}")
    return peer
