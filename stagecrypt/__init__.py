"""
Client-side envelope encryption for staged files
"""
from .cipher import BlockCipherTransform, CryptMode  # noqa
from .exceptions import (  # noqa
    CryptoKeyError,
    FormatError,
    ResourceError,
    StagecryptException,
)
from .material import EncryptionMetadata, MasterKeyMaterial  # noqa
from .provider import (  # noqa
    decrypt_buffer,
    decrypt_file,
    decrypt_stream,
    encrypt_buffer,
    encrypt_file,
    encrypt_stream,
)
from .stream import EncryptionStream  # noqa
from .transfer import Strategy, decrypt_path, encrypt_path, select_strategy  # noqa
