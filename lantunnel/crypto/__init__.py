from .cipher import StreamCipher, CipherReader, CipherWriter, wrap, new_iv, IV_SIZE
from .keys import generate_key, load_key, derive_key

__all__ = [
    'StreamCipher',
    'CipherReader',
    'CipherWriter',
    'wrap',
    'new_iv',
    'IV_SIZE',
    'generate_key',
    'load_key',
    'derive_key'
]
