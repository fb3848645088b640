"""
Key material and per-file encryption metadata
"""
from __future__ import annotations

import binascii
import json
import os
from base64 import b64decode, b64encode
from dataclasses import dataclass
from typing import Any, Dict, Optional

from .cipher import IV_SIZE, KEY_SIZES, wipe
from .exceptions import CryptoKeyError, FormatError


# Keys used when metadata is stored alongside the ciphertext
METADATA_IV = "iv"
METADATA_KEY = "key"
METADATA_MATDESC = "matdesc"
METADATA_MAC = "mac"


def decode_b64(value: str, error_cls=FormatError, name: str = "value") -> bytes:
    try:
        return b64decode(value, validate=True)
    except (binascii.Error, TypeError, ValueError) as e:
        raise error_cls(f"The {name} is not valid base64") from e


@dataclass(frozen=True)
class MasterKeyMaterial:
    """
    Master key supplied by the caller for a transfer session

    The key is held base64-encoded, as it arrives from the service. It is
    only decoded when a data key needs wrapping or unwrapping.
    """

    query_stage_master_key: str
    query_id: Optional[str] = None
    smk_id: Optional[int] = None

    @classmethod
    def generate(cls, key_size: int = 256, **kwargs: Any) -> MasterKeyMaterial:
        if key_size // 8 not in KEY_SIZES or key_size % 8:
            raise CryptoKeyError(f"Unsupported key size {key_size}")
        key = b64encode(os.urandom(key_size // 8)).decode("ascii")
        return cls(query_stage_master_key=key, **kwargs)

    def decode_key(self) -> bytearray:
        """
        Return the raw master key as a mutable buffer the caller can zero
        """
        if not self.query_stage_master_key:
            raise CryptoKeyError("The master key is empty")
        key = bytearray(
            decode_b64(
                self.query_stage_master_key, error_cls=CryptoKeyError, name="master key"
            )
        )
        if len(key) not in KEY_SIZES:
            raise CryptoKeyError(
                f"The master key must be 128, 192 or 256 bits, not {len(key) * 8}"
            )
        return key

    @property
    def key_size(self) -> int:
        key = self.decode_key()
        size = len(key) * 8
        wipe(key)
        return size

    def __repr__(self) -> str:
        # Keep the key out of tracebacks and logs
        return (
            f"MasterKeyMaterial(query_id={self.query_id!r}, smk_id={self.smk_id!r})"
        )


def build_descriptor(material: MasterKeyMaterial, key_wrap: str) -> str:
    """
    Describe which master key wrapped the data key, and how
    """
    return json.dumps(
        {
            "queryId": material.query_id,
            "smkId": "" if material.smk_id is None else str(material.smk_id),
            "keySize": str(material.key_size),
            "keyWrap": key_wrap,
        },
        sort_keys=True,
    )


@dataclass
class EncryptionMetadata:
    """
    Encryption material which must travel with the ciphertext

    Populated by an encrypt operation, then required by the matching decrypt.
    The ``mac`` is only set once encryption has been finalised.
    """

    iv: bytes = b""
    key: bytes = b""
    mat_desc: str = ""
    mac: bytes = b""

    def clear(self) -> None:
        self.iv = b""
        self.key = b""
        self.mat_desc = ""
        self.mac = b""

    @property
    def descriptor(self) -> Dict[str, str]:
        if not self.mat_desc:
            return {}
        try:
            descriptor = json.loads(self.mat_desc)
        except (TypeError, ValueError) as e:
            raise FormatError("The material descriptor is not valid JSON") from e
        if not isinstance(descriptor, dict):
            raise FormatError("The material descriptor must be a JSON object")
        return descriptor

    def validate(self) -> None:
        """
        Check the metadata is complete enough to decrypt with
        """
        if len(self.iv) != IV_SIZE:
            raise FormatError(
                f"The IV must be {IV_SIZE} bytes, not {len(self.iv)}", short="bad iv"
            )
        if not self.key:
            raise FormatError("The metadata does not contain a wrapped key")
        if not self.mac:
            raise FormatError("The metadata does not contain a MAC")

    def to_dict(self) -> Dict[str, str]:
        return {
            METADATA_IV: b64encode(self.iv).decode("ascii"),
            METADATA_KEY: b64encode(self.key).decode("ascii"),
            METADATA_MATDESC: self.mat_desc,
            METADATA_MAC: b64encode(self.mac).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> EncryptionMetadata:
        required = (METADATA_IV, METADATA_KEY, METADATA_MAC)
        missing = [name for name in required if not data.get(name)]
        if missing:
            raise FormatError(f"The metadata is missing {', '.join(missing)}")
        mat_desc = data.get(METADATA_MATDESC, "")
        if not isinstance(mat_desc, str):
            raise FormatError("The material descriptor must be a string")
        return cls(
            iv=decode_b64(data[METADATA_IV], name="IV"),
            key=decode_b64(data[METADATA_KEY], name="wrapped key"),
            mat_desc=mat_desc,
            mac=decode_b64(data[METADATA_MAC], name="MAC"),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, sort_keys=True)

    @classmethod
    def from_json(cls, raw: str) -> EncryptionMetadata:
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise FormatError("The metadata is not valid JSON") from e
        if not isinstance(data, dict):
            raise FormatError("The metadata must be a JSON object")
        return cls.from_dict(data)
