"""
Whole-buffer encryption

Reads the entire payload into memory and transforms it in one call. This is
faster than streaming for small and medium payloads, at the cost of holding
the payload and its transformed copy in memory at the same time.
"""
import logging
from pathlib import Path
from typing import IO, Optional, Tuple

from .cipher import BytesLike
from .envelope import finish_encrypt, start_decrypt, start_encrypt
from .files import PathLike, make_temp_file, remove
from .keywrap import DEFAULT_KEY_WRAP
from .material import EncryptionMetadata, MasterKeyMaterial


logger = logging.getLogger(__name__)


def encrypt_buffer(
    buffer: BytesLike,
    material: MasterKeyMaterial,
    metadata: Optional[EncryptionMetadata] = None,
    key_wrap: str = DEFAULT_KEY_WRAP,
    data_key: Optional[BytesLike] = None,
    iv: Optional[bytes] = None,
) -> Tuple[bytes, EncryptionMetadata]:
    """
    Encrypt ``buffer`` and return the ciphertext with its metadata

    If ``metadata`` is given it is populated in place and returned.
    """
    if metadata is None:
        metadata = EncryptionMetadata()
    transform = start_encrypt(
        material, metadata, key_wrap=key_wrap, data_key=data_key, iv=iv
    )
    ciphertext = transform.update(buffer) + finish_encrypt(transform, metadata)
    logger.debug(
        "Encrypted buffer, %d bytes in, %d bytes out", len(buffer), len(ciphertext)
    )
    return ciphertext, metadata


def encrypt_stream(
    source: IO[bytes],
    material: MasterKeyMaterial,
    metadata: Optional[EncryptionMetadata] = None,
    **kwargs,
) -> Tuple[bytes, EncryptionMetadata]:
    return encrypt_buffer(source.read(), material, metadata, **kwargs)


def encrypt_file(
    path: PathLike,
    material: MasterKeyMaterial,
    metadata: Optional[EncryptionMetadata] = None,
    **kwargs,
) -> Tuple[bytes, EncryptionMetadata]:
    with Path(path).open("rb") as source:
        return encrypt_stream(source, material, metadata, **kwargs)


def decrypt_buffer(
    ciphertext: BytesLike, material: MasterKeyMaterial, metadata: EncryptionMetadata
) -> bytes:
    """
    Decrypt ``ciphertext``, raising ``FormatError`` if it fails validation

    Nothing is returned unless the whole buffer authenticated and unpadded.
    """
    transform = start_decrypt(material, metadata)
    plaintext = transform.transform(ciphertext)
    logger.debug(
        "Decrypted buffer, %d bytes in, %d bytes out", len(ciphertext), len(plaintext)
    )
    return plaintext


def decrypt_stream(
    source: IO[bytes], material: MasterKeyMaterial, metadata: EncryptionMetadata
) -> bytes:
    return decrypt_buffer(source.read(), material, metadata)


def decrypt_file(
    path: PathLike,
    material: MasterKeyMaterial,
    metadata: EncryptionMetadata,
    temp_dir: Optional[PathLike] = None,
) -> Path:
    """
    Decrypt the file at ``path`` into a new temporary file and return its path

    The caller owns the new file and must remove it. If decryption or the
    write fails, no file is left behind.
    """
    with Path(path).open("rb") as source:
        plaintext = decrypt_stream(source, material, metadata)

    destination = make_temp_file(temp_dir)
    try:
        destination.write_bytes(plaintext)
    except Exception:
        remove(destination)
        raise
    return destination
