from .mdns import PeerAddress, advertise, discover, service_type

__all__ = [
    'PeerAddress',
    'advertise',
    'discover',
    'service_type'
]
