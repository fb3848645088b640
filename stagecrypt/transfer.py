"""
Strategy selection for file transfers

Whole-buffer processing has lower latency and is used for payloads up to the
configured threshold. Above it, or when the size is not known in advance,
the payload is streamed so memory use is bounded by the chunk size rather than
the file size. Both strategies produce the same bytes.
"""
from __future__ import annotations

import logging
import shutil
from enum import Enum
from pathlib import Path
from typing import IO, TYPE_CHECKING, Optional, Type

from . import provider
from .cipher import CryptMode
from .files import PathLike, atomic_write
from .material import EncryptionMetadata, MasterKeyMaterial
from .reporter import NullReporter, Reporter
from .stream import EncryptionStream


if TYPE_CHECKING:
    from .config import EncryptionConfig  # pragma: no cover


logger = logging.getLogger(__name__)

# Largest payload to process in memory when the strategy is automatic - 64M
DEFAULT_THRESHOLD = 64 * 1024 * 1024


class Strategy(Enum):
    STREAM = "stream"
    BUFFER = "buffer"
    AUTO = "auto"


def select_strategy(
    strategy: Strategy, size: Optional[int], threshold: int = DEFAULT_THRESHOLD
) -> Strategy:
    """
    Resolve ``AUTO`` to a concrete strategy for a payload of ``size`` bytes
    """
    if strategy is not Strategy.AUTO:
        return strategy
    if size is None or size > threshold:
        return Strategy.STREAM
    return Strategy.BUFFER


def encrypt_fileobj(
    source: IO[bytes],
    destination: IO[bytes],
    material: MasterKeyMaterial,
    settings: EncryptionConfig,
    size: Optional[int] = None,
    report_class: Type[Reporter] = NullReporter,
    label: str = "",
) -> EncryptionMetadata:
    """
    Encrypt ``source`` into ``destination`` and return the metadata to store
    with it

    Neither file object is closed.
    """
    strategy = select_strategy(settings.strategy, size, settings.threshold)
    logger.debug("Encrypting %s using %s strategy", label, strategy.value)
    report = report_class(label, "encrypting")

    metadata = EncryptionMetadata()
    if strategy is Strategy.BUFFER:
        ciphertext, _ = provider.encrypt_stream(
            source, material, metadata, key_wrap=settings.key_wrap
        )
        destination.write(ciphertext)
    else:
        with EncryptionStream.create(
            source,
            CryptMode.ENCRYPT,
            material,
            metadata,
            leave_open=True,
            chunk_size=settings.chunk_size,
            key_wrap=settings.key_wrap,
        ) as encrypted:
            encrypted.copy_to(destination)

    report.complete(f"encrypted ({strategy.value})")
    return metadata


def decrypt_fileobj(
    source: IO[bytes],
    destination: IO[bytes],
    material: MasterKeyMaterial,
    metadata: EncryptionMetadata,
    settings: EncryptionConfig,
    size: Optional[int] = None,
    report_class: Type[Reporter] = NullReporter,
    label: str = "",
) -> None:
    """
    Decrypt ``source`` into ``destination``

    When streaming, plaintext is written before the final authentication
    check; write to a location that is discarded on error, such as the one
    provided by :func:`decrypt_path`.
    """
    strategy = select_strategy(settings.strategy, size, settings.threshold)
    logger.debug("Decrypting %s using %s strategy", label, strategy.value)
    report = report_class(label, "decrypting")

    if strategy is Strategy.BUFFER:
        destination.write(provider.decrypt_stream(source, material, metadata))
    else:
        with EncryptionStream.create(
            source,
            CryptMode.DECRYPT,
            material,
            metadata,
            leave_open=True,
            chunk_size=settings.chunk_size,
        ) as decrypted:
            shutil.copyfileobj(decrypted, destination, settings.chunk_size)

    report.complete(f"decrypted ({strategy.value})")


def encrypt_path(
    source: PathLike,
    destination: PathLike,
    material: MasterKeyMaterial,
    settings: EncryptionConfig,
    report_class: Type[Reporter] = NullReporter,
) -> EncryptionMetadata:
    """
    Encrypt a local file; ``destination`` only appears if encryption succeeds
    """
    source = Path(source)
    with source.open("rb") as src, atomic_write(destination) as dest:
        return encrypt_fileobj(
            src,
            dest,
            material,
            settings,
            size=source.stat().st_size,
            report_class=report_class,
            label=str(source),
        )


def decrypt_path(
    source: PathLike,
    destination: PathLike,
    material: MasterKeyMaterial,
    metadata: EncryptionMetadata,
    settings: EncryptionConfig,
    report_class: Type[Reporter] = NullReporter,
) -> None:
    """
    Decrypt a local file; ``destination`` only appears if the ciphertext
    authenticates, so partial plaintext is never left behind
    """
    source = Path(source)
    with source.open("rb") as src, atomic_write(destination) as dest:
        decrypt_fileobj(
            src,
            dest,
            material,
            metadata,
            settings,
            size=source.stat().st_size,
            report_class=report_class,
            label=str(source),
        )
