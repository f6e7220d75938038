"""lantunnel - encrypted point-to-point file transfer on a local network"""

__version__ = "1.0.0"
