"""
Block cipher transform

File contents are encrypted with AES-CBC and PKCS7 padding using the per-file
data key, then authenticated with HMAC-SHA256 over ``iv || ciphertext``. The
MAC key is derived from the data key, so a wrong key, a modified IV or
modified ciphertext are all caught when the transform is finalised.

The same transform serves both the chunked stream and the whole buffer: a
series of ``update`` calls followed by ``finalize`` produces the same bytes as
a single ``transform`` call, however the input is split.
"""
from enum import Enum
from typing import Optional, Union

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .exceptions import CryptoKeyError, FormatError


# AES block size, in bytes
BLOCK_SIZE = 16

# CBC IV is one block
IV_SIZE = BLOCK_SIZE

# Valid AES key lengths, in bytes
KEY_SIZES = (16, 24, 32)

MAC_SIZE = 32
MAC_INFO = b"stagecrypt-mac"

BytesLike = Union[bytes, bytearray, memoryview]


class CryptMode(Enum):
    ENCRYPT = "encrypt"
    DECRYPT = "decrypt"


def wipe(buffer: bytearray) -> None:
    """
    Zero a key buffer in place
    """
    buffer[:] = bytes(len(buffer))


def derive_mac_key(data_key: BytesLike) -> bytes:
    hkdf = HKDF(algorithm=hashes.SHA256(), length=MAC_SIZE, salt=None, info=MAC_INFO)
    return hkdf.derive(data_key)


def check_key(data_key: BytesLike, name: str = "data key") -> None:
    if len(data_key) not in KEY_SIZES:
        raise CryptoKeyError(
            f"The {name} must be 128, 192 or 256 bits, not {len(data_key) * 8}"
        )


class BlockCipherTransform:
    """
    Encrypt or decrypt one logical stream

    Partial blocks are carried between ``update`` calls. On encryption the
    final padded block is emitted by ``finalize``, which also sets ``tag``.
    On decryption the last block is held back until ``finalize`` has checked
    the MAC and the padding, so padding is never returned as plaintext.

    A transform is single use and must not be shared between threads.
    """

    mode: CryptMode
    tag: bytes
    finalized: bool

    def __init__(
        self,
        data_key: BytesLike,
        iv: bytes,
        mode: CryptMode,
        mac: Optional[bytes] = None,
    ) -> None:
        check_key(data_key)
        if len(iv) != IV_SIZE:
            raise FormatError(
                f"The IV must be {IV_SIZE} bytes, not {len(iv)}", short="bad iv"
            )
        if mode is CryptMode.DECRYPT and not mac:
            raise FormatError("A MAC is required to decrypt")

        self.mode = mode
        self.tag = b""
        self.finalized = False
        self._expected_mac = mac

        # The cipher contexts take their own copy of the key when created
        key = bytearray(data_key)
        try:
            cipher = Cipher(algorithms.AES(key), modes.CBC(iv))
            if mode is CryptMode.ENCRYPT:
                self._context = cipher.encryptor()
                self._padding = padding.PKCS7(BLOCK_SIZE * 8).padder()
            else:
                self._context = cipher.decryptor()
                self._padding = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
            self._hmac = hmac.HMAC(derive_mac_key(key), hashes.SHA256())
        finally:
            wipe(key)
        self._hmac.update(iv)

    def update(self, chunk: BytesLike) -> bytes:
        if self.finalized:
            raise FormatError("The transform has already been finalised")

        if self.mode is CryptMode.ENCRYPT:
            ciphertext = self._context.update(self._padding.update(chunk))
            self._hmac.update(ciphertext)
            return ciphertext

        self._hmac.update(chunk)
        return self._padding.update(self._context.update(chunk))

    def finalize(self) -> bytes:
        if self.finalized:
            raise FormatError("The transform has already been finalised")
        self.finalized = True

        if self.mode is CryptMode.ENCRYPT:
            ciphertext = self._context.update(self._padding.finalize())
            ciphertext += self._context.finalize()
            self._hmac.update(ciphertext)
            self.tag = self._hmac.finalize()
            return ciphertext

        try:
            self._hmac.verify(self._expected_mac)
        except InvalidSignature as e:
            raise FormatError(
                "Authentication failed; wrong key or IV, or corrupted ciphertext",
                short="bad mac",
            ) from e

        try:
            remainder = self._context.finalize()
        except ValueError as e:
            raise FormatError(
                "The ciphertext is not a multiple of the block size",
                short="bad alignment",
            ) from e

        try:
            return self._padding.update(remainder) + self._padding.finalize()
        except ValueError as e:
            raise FormatError("Invalid padding", short="bad padding") from e

    def transform(self, data: BytesLike) -> bytes:
        """
        Single-shot transform of a whole buffer
        """
        return self.update(data) + self.finalize()
