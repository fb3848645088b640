"""
Key wrappers

A fresh data key is generated for every file and wrapped with the master key
before it leaves the process. Wrapping algorithms register themselves by
lower-cased class name so the one in use can be chosen by config, and the one
used for a file is recorded in its material descriptor.
"""
from __future__ import annotations

import os
from typing import Dict, Type

from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.keywrap import (
    InvalidUnwrap,
    aes_key_unwrap,
    aes_key_wrap,
)

from .cipher import BLOCK_SIZE, BytesLike, check_key
from .exceptions import CryptoKeyError


DEFAULT_KEY_WRAP = "aeskw"

key_wrapper_registry: Dict[str, Type[KeyWrapper]] = {}


class KeyWrapperType(type):
    def __init__(cls, name, bases, attrs):
        super().__init__(name, bases, attrs)
        if attrs.get("abstract", False):
            return
        key_wrapper_registry[name.lower()] = cls


class KeyWrapper(metaclass=KeyWrapperType):

    abstract = True

    @property
    def name(self) -> str:
        return type(self).__name__.lower()

    def wrap(self, master_key: BytesLike, data_key: BytesLike) -> bytes:
        check_key(master_key, "master key")
        check_key(data_key)
        try:
            return self.wrap_key(master_key, data_key)
        except ValueError as e:
            raise CryptoKeyError(f"Unable to wrap data key: {e}") from e

    def unwrap(self, master_key: BytesLike, wrapped: bytes) -> bytearray:
        check_key(master_key, "master key")
        data_key = bytearray(self.unwrap_key(master_key, wrapped))
        check_key(data_key)
        return data_key

    def wrap_key(self, master_key: BytesLike, data_key: BytesLike) -> bytes:
        raise NotImplementedError(
            "KeyWrapper.wrap_key must be implemented by subclasses"
        )  # pragma: no cover

    def unwrap_key(self, master_key: BytesLike, wrapped: bytes) -> bytes:
        """
        Return the data key, or raise CryptoKeyError if it fails a check
        """
        raise NotImplementedError(
            "KeyWrapper.unwrap_key must be implemented by subclasses"
        )  # pragma: no cover


class AesKw(KeyWrapper):
    """
    RFC 3394 AES key wrap

    Unwrapping checks the integrity value, so a corrupted wrapped key or the
    wrong master key is always detected here.
    """

    def wrap_key(self, master_key: BytesLike, data_key: BytesLike) -> bytes:
        return aes_key_wrap(master_key, data_key)

    def unwrap_key(self, master_key: BytesLike, wrapped: bytes) -> bytes:
        try:
            return aes_key_unwrap(master_key, wrapped)
        except InvalidUnwrap as e:
            raise CryptoKeyError(
                "Unable to unwrap data key; wrong master key or corrupted metadata",
                short="unwrap failed",
            ) from e
        except ValueError as e:
            raise CryptoKeyError(
                f"Invalid wrapped key: {e}", short="unwrap failed"
            ) from e


class AesEcb(KeyWrapper):
    """
    Legacy wrap: the data key encrypted with the master key using AES-ECB and
    PKCS7 padding

    There is no integrity value, so a corrupted wrapped key may unwrap to the
    wrong data key; that is caught later by the content MAC.
    """

    def _cipher(self, master_key: BytesLike) -> Cipher:
        return Cipher(algorithms.AES(master_key), modes.ECB())

    def wrap_key(self, master_key: BytesLike, data_key: BytesLike) -> bytes:
        padder = padding.PKCS7(BLOCK_SIZE * 8).padder()
        padded = padder.update(data_key) + padder.finalize()
        encryptor = self._cipher(master_key).encryptor()
        return encryptor.update(padded) + encryptor.finalize()

    def unwrap_key(self, master_key: BytesLike, wrapped: bytes) -> bytes:
        if not wrapped or len(wrapped) % BLOCK_SIZE:
            raise CryptoKeyError(
                "Invalid wrapped key: not a multiple of the block size",
                short="unwrap failed",
            )
        decryptor = self._cipher(master_key).decryptor()
        padded = decryptor.update(wrapped) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_SIZE * 8).unpadder()
        try:
            return unpadder.update(padded) + unpadder.finalize()
        except ValueError as e:
            raise CryptoKeyError(
                "Unable to unwrap data key; wrong master key or corrupted metadata",
                short="unwrap failed",
            ) from e


def get_key_wrapper(name: str = DEFAULT_KEY_WRAP) -> KeyWrapper:
    wrapper_cls = key_wrapper_registry.get(name.lower())
    if not wrapper_cls:
        raise CryptoKeyError(f"The key wrap algorithm '{name}' is not recognised")
    return wrapper_cls()


def generate_data_key(size: int) -> bytearray:
    """
    Return a fresh random data key of ``size`` bytes
    """
    check_key(bytes(size))
    return bytearray(os.urandom(size))


def wrap(
    master_key: BytesLike, data_key: BytesLike, name: str = DEFAULT_KEY_WRAP
) -> bytes:
    return get_key_wrapper(name).wrap(master_key, data_key)


def unwrap(
    master_key: BytesLike, wrapped: bytes, name: str = DEFAULT_KEY_WRAP
) -> bytearray:
    return get_key_wrapper(name).unwrap(master_key, wrapped)
