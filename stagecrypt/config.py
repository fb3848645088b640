"""
Config parsing
"""
from __future__ import annotations

import re
from configparser import ConfigParser, SectionProxy
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Type, TypeVar

from .exceptions import CryptoKeyError
from .keywrap import DEFAULT_KEY_WRAP, key_wrapper_registry
from .material import MasterKeyMaterial
from .stream import CHUNK_SIZE
from .transfer import DEFAULT_THRESHOLD, Strategy


T = TypeVar("T", bound="SectionConfig")

SIZE_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3}


def parse_size(raw: str, name: str) -> int:
    """
    Parse a byte count with an optional K, M or G suffix, eg ``64M``
    """
    match = re.fullmatch(r"\s*(\d+)\s*([KMG]?)B?\s*", raw, flags=re.IGNORECASE)
    if not match:
        raise ValueError(f"The {name} must be a number of bytes, not '{raw}'")
    number, unit = match.groups()
    return int(number) * SIZE_UNITS[unit.upper()]


@dataclass
class SectionConfig:
    """
    Base for section config objects
    """

    @classmethod
    def from_config(cls: Type[T], config: SectionProxy) -> T:
        kwargs: Dict[str, Any] = cls.parse_config(config)
        # mypy has a problem with dataclasses, so ignore the typing error
        return cls(**kwargs)  # type: ignore

    @classmethod
    def parse_config(self, section: SectionProxy) -> Dict[str, Any]:
        raise NotImplementedError()  # pragma: no cover


@dataclass
class EncryptionConfig(SectionConfig):
    """
    Encryption config container
    """

    strategy: Strategy = Strategy.AUTO
    threshold: int = DEFAULT_THRESHOLD
    chunk_size: int = CHUNK_SIZE
    key_wrap: str = DEFAULT_KEY_WRAP
    temp_dir: Optional[Path] = None

    @classmethod
    def parse_config(self, section: SectionProxy) -> Dict[str, Any]:
        strategy_raw = section.get("strategy", Strategy.AUTO.value)
        try:
            strategy = Strategy(strategy_raw.strip().lower())
        except ValueError:
            raise ValueError(
                f"The encryption strategy '{strategy_raw}' is not recognised"
            )

        threshold = parse_size(
            section.get("threshold", str(DEFAULT_THRESHOLD)), "threshold"
        )
        chunk_size = parse_size(
            section.get("chunk_size", str(CHUNK_SIZE)), "chunk size"
        )
        if chunk_size <= 0:
            raise ValueError("The chunk size must be greater than zero")

        key_wrap = section.get("key_wrap", DEFAULT_KEY_WRAP).strip().lower()
        if key_wrap not in key_wrapper_registry:
            raise ValueError(f"The key wrap algorithm '{key_wrap}' is not recognised")

        temp_dir: Optional[Path] = None
        temp_dir_raw = section.get("temp_dir", "")
        if temp_dir_raw:
            temp_dir = Path(temp_dir_raw)
            if not temp_dir.is_dir():
                raise ValueError("The temporary directory does not exist")

        return {
            "strategy": strategy,
            "threshold": threshold,
            "chunk_size": chunk_size,
            "key_wrap": key_wrap,
            "temp_dir": temp_dir,
        }


@dataclass
class KeyConfig(SectionConfig):
    """
    Master key config container
    """

    master_key: str
    query_id: Optional[str] = None
    smk_id: Optional[int] = None

    @classmethod
    def parse_config(self, section: SectionProxy) -> Dict[str, Any]:
        master_key = section.get("master_key", "").strip()
        query_id = section.get("query_id", "").strip() or None
        smk_id_raw = section.get("smk_id", "").strip()

        if not master_key:
            raise ValueError("The key section must declare a master_key")

        smk_id: Optional[int] = None
        if smk_id_raw:
            try:
                smk_id = int(smk_id_raw)
            except ValueError:
                raise ValueError("The smk_id must be an integer")

        # Check the key decodes now rather than at the first transfer
        try:
            MasterKeyMaterial(master_key).key_size
        except CryptoKeyError as e:
            raise ValueError(str(e)) from e

        return {"master_key": master_key, "query_id": query_id, "smk_id": smk_id}

    @property
    def material(self) -> MasterKeyMaterial:
        return MasterKeyMaterial(
            query_stage_master_key=self.master_key,
            query_id=self.query_id,
            smk_id=self.smk_id,
        )


class Config:
    """
    Configuration file loader
    """

    sections = ["encryption"]
    optional_sections = ["key"]
    encryption: EncryptionConfig
    key: Optional[KeyConfig]

    def __init__(self, filename: str = None) -> None:
        self.encryption = EncryptionConfig()
        self.key = None
        if filename:
            self.load(filename)

    def load(self, filename: str) -> None:
        parser = ConfigParser()

        # Let parsing errors go through unchanged
        parser.read(filename)

        found = parser.sections()
        allowed = self.sections + self.optional_sections
        if any(name not in found for name in self.sections) or any(
            name not in allowed for name in found
        ):
            raise ValueError(
                "Invalid config file; must contain an encryption section and "
                f"optionally a key section; instead found {', '.join(found)}"
            )

        self.encryption = EncryptionConfig.from_config(parser["encryption"])
        if parser.has_section("key"):
            self.key = KeyConfig.from_config(parser["key"])
