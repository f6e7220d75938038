"""Error taxonomy for a transfer session"""

from typing import Optional


class TransferError(Exception):
    """Base class for every failure surfaced by the transfer engine"""

    exit_code = 1


class HeaderError(TransferError):
    """Malformed, oversized or undelimited header frame"""

    exit_code = 3


class TransferIOError(TransferError):
    """Local file open/create/read/write/sync failure"""

    exit_code = 4


class NetworkError(TransferError):
    """Connection reset or socket read/write failure"""

    exit_code = 5


class DiscoveryError(NetworkError):
    """No peer could be resolved"""


class AckTimeoutError(TransferError):
    """Receiver did not send its control byte in time"""

    exit_code = 6


class IntegrityError(TransferError):
    """
    Size or digest mismatch on the receiver, or a NACK seen by the sender
    Expected/actual values are None when the side reporting it cannot know them
    """

    exit_code = 7

    def __init__(self, message: str,
                 expected_size: Optional[int] = None,
                 actual_size: Optional[int] = None,
                 expected_checksum: Optional[str] = None,
                 actual_checksum: Optional[str] = None):
        super().__init__(message)
        self.expected_size = expected_size
        self.actual_size = actual_size
        self.expected_checksum = expected_checksum
        self.actual_checksum = actual_checksum


class CancellationError(TransferError):
    """External cancellation fired mid-session; the transfer is incomplete, not corrupt"""

    exit_code = 130

    def __init__(self, step: str, reason: str = "cancelled"):
        super().__init__(f"Transfer cancelled during {step}: {reason}")
        self.step = step
        self.reason = reason
