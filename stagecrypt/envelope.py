"""
Envelope setup shared by the stream and buffer paths

Both execution strategies start a transform here, so a given data key and IV
always produce the same ciphertext whichever path is used.
"""
import os
from typing import Optional

from .cipher import IV_SIZE, BlockCipherTransform, BytesLike, CryptMode, wipe
from .exceptions import FormatError
from .keywrap import DEFAULT_KEY_WRAP, generate_data_key, get_key_wrapper
from .material import EncryptionMetadata, MasterKeyMaterial, build_descriptor


def start_encrypt(
    material: MasterKeyMaterial,
    metadata: EncryptionMetadata,
    key_wrap: str = DEFAULT_KEY_WRAP,
    data_key: Optional[BytesLike] = None,
    iv: Optional[bytes] = None,
) -> BlockCipherTransform:
    """
    Generate a data key and IV, wrap the key into ``metadata`` and return an
    encrypting transform

    ``data_key`` and ``iv`` can be passed in to make the output repeatable;
    otherwise they are generated fresh. The caller's ``data_key`` is copied,
    never zeroed.
    """
    wrapper = get_key_wrapper(key_wrap)
    master_key = material.decode_key()
    try:
        if data_key is None:
            key = generate_data_key(len(master_key))
        else:
            key = bytearray(data_key)
        try:
            if iv is None:
                iv = os.urandom(IV_SIZE)

            metadata.clear()
            metadata.key = wrapper.wrap(master_key, key)
            metadata.iv = iv
            metadata.mat_desc = build_descriptor(material, wrapper.name)
            return BlockCipherTransform(key, iv, CryptMode.ENCRYPT)
        finally:
            wipe(key)
    finally:
        wipe(master_key)


def finish_encrypt(
    transform: BlockCipherTransform, metadata: EncryptionMetadata
) -> bytes:
    """
    Finalise an encrypting transform and record its tag in ``metadata``
    """
    tail = transform.finalize()
    metadata.mac = transform.tag
    return tail


def start_decrypt(
    material: MasterKeyMaterial, metadata: EncryptionMetadata
) -> BlockCipherTransform:
    """
    Unwrap the data key held in ``metadata`` and return a decrypting transform
    """
    if metadata is None:
        raise FormatError("Encryption metadata is required to decrypt")
    metadata.validate()
    key_wrap = metadata.descriptor.get("keyWrap") or DEFAULT_KEY_WRAP
    if not isinstance(key_wrap, str):
        raise FormatError("The key wrap algorithm in the descriptor must be a string")
    wrapper = get_key_wrapper(key_wrap)

    master_key = material.decode_key()
    try:
        key = wrapper.unwrap(master_key, metadata.key)
    finally:
        wipe(master_key)

    try:
        return BlockCipherTransform(key, metadata.iv, CryptMode.DECRYPT, metadata.mac)
    finally:
        wipe(key)
