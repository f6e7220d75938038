from .client import TunnelClient

__all__ = ['TunnelClient']
