from .header import Metadata, encode, parse, decode, HEADER_DELIMITER
from .cancel import CancelToken, race
from .sender import FileSender, SenderState, TransferResult, file_checksum, ACK, NACK
from .receiver import FileReceiver, ReceiverState

__all__ = [
    'Metadata',
    'encode',
    'parse',
    'decode',
    'HEADER_DELIMITER',
    'CancelToken',
    'race',
    'FileSender',
    'SenderState',
    'TransferResult',
    'file_checksum',
    'ACK',
    'NACK',
    'FileReceiver',
    'ReceiverState'
]
