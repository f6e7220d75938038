from .transport import Connection, open_connection

__all__ = [
    'Connection',
    'open_connection'
]
