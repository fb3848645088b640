"""
Streaming encryption

Wraps a readable source so that reading from the wrapper returns the source
encrypted or decrypted, one bounded chunk at a time.
"""
from __future__ import annotations

import io
import logging
import shutil
from typing import IO, Optional

from .cipher import BLOCK_SIZE, BlockCipherTransform, BytesLike, CryptMode
from .envelope import finish_encrypt, start_decrypt, start_encrypt
from .keywrap import DEFAULT_KEY_WRAP
from .material import EncryptionMetadata, MasterKeyMaterial


logger = logging.getLogger(__name__)

# Number of bytes pulled from the source per transform step - 64K
CHUNK_SIZE = 64 * 1024


class EncryptionStream(io.RawIOBase):
    """
    Readable stream which transforms its source as it is read

    At most one chunk is read from the source per read call, into a buffer
    which is reused for the life of the stream. The transformed output waiting
    to be returned is never more than a chunk and a block.

    On encryption ``metadata`` is populated when the stream is created, apart
    from ``metadata.mac`` which is set once the source has been read to the
    end. On decryption the final read raises ``FormatError`` instead of
    returning EOF if the ciphertext fails authentication or padding checks.

    If a copy is interrupted, ``bytes_in``, ``bytes_out``, ``finalized`` and
    ``error`` describe how far it got. A transform cannot be resumed.
    """

    crypt_mode: CryptMode
    metadata: EncryptionMetadata
    leave_open: bool
    chunk_size: int
    bytes_in: int
    bytes_out: int
    finalized: bool
    error: Optional[Exception]

    def __init__(
        self,
        source: IO[bytes],
        transform: BlockCipherTransform,
        metadata: EncryptionMetadata,
        leave_open: bool = False,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        super().__init__()
        self.leave_open = leave_open
        if chunk_size <= 0:
            raise ValueError("The chunk size must be positive")
        self.crypt_mode = transform.mode
        self.metadata = metadata
        self.chunk_size = chunk_size
        self.bytes_in = 0
        self.bytes_out = 0
        self.finalized = False
        self.error = None

        self._source: Optional[IO[bytes]] = source
        self._transform: Optional[BlockCipherTransform] = transform
        self._chunk = bytearray(chunk_size)
        self._pending: bytes = b""
        self._offset = 0

    @classmethod
    def create(
        cls,
        source: IO[bytes],
        mode: CryptMode,
        material: MasterKeyMaterial,
        metadata: Optional[EncryptionMetadata] = None,
        leave_open: bool = False,
        chunk_size: int = CHUNK_SIZE,
        key_wrap: str = DEFAULT_KEY_WRAP,
        data_key: Optional[BytesLike] = None,
        iv: Optional[bytes] = None,
    ) -> EncryptionStream:
        """
        Wrap ``source`` to encrypt or decrypt it

        Unless ``leave_open`` is set the stream takes ownership of ``source``
        and closes it when closed, or if it cannot be created.
        """
        try:
            if mode is CryptMode.ENCRYPT:
                if metadata is None:
                    metadata = EncryptionMetadata()
                transform = start_encrypt(
                    material, metadata, key_wrap=key_wrap, data_key=data_key, iv=iv
                )
            else:
                transform = start_decrypt(material, metadata)
            stream = cls(
                source,
                transform,
                metadata,
                leave_open=leave_open,
                chunk_size=chunk_size,
            )
        except Exception:
            if not leave_open:
                source.close()
            raise

        logger.debug("Created %s stream, chunk size %d", mode.value, chunk_size)
        return stream

    def readable(self) -> bool:
        return True

    @property
    def complete(self) -> bool:
        return self.finalized and self.error is None

    def readinto(self, buffer) -> int:
        if self.closed:
            raise ValueError("I/O operation on closed stream")
        if self.error is not None:
            raise self.error

        while self._offset >= len(self._pending):
            if self.finalized:
                return 0
            self._fill()

        size = min(len(buffer), len(self._pending) - self._offset)
        buffer[:size] = self._pending[self._offset : self._offset + size]
        self._offset += size
        self.bytes_out += size
        return size

    def _read_source(self, view: memoryview) -> int:
        if self._source is None:
            raise ValueError("I/O operation on closed stream")
        if hasattr(self._source, "readinto"):
            count = self._source.readinto(view)
            if count is None:
                raise BlockingIOError("Non-blocking sources are not supported")
            return count

        data = self._source.read(self.chunk_size)
        view[: len(data)] = data
        return len(data)

    def _fill(self) -> None:
        """
        Pull the next chunk from the source through the transform
        """
        if self._transform is None:
            raise ValueError("I/O operation on closed stream")
        view = memoryview(self._chunk)
        count = self._read_source(view)
        self._offset = 0

        if count:
            self.bytes_in += count
            self._pending = self._transform.update(view[:count])
            return

        self.finalized = True
        try:
            if self.crypt_mode is CryptMode.ENCRYPT:
                self._pending = finish_encrypt(self._transform, self.metadata)
            else:
                self._pending = self._transform.finalize()
        except Exception as e:
            self._pending = b""
            self.error = e
            raise
        logger.debug(
            "Finalised %s stream, %d bytes in, %d bytes out",
            self.crypt_mode.value,
            self.bytes_in,
            self.bytes_out + len(self._pending),
        )

    def copy_to(self, destination: IO[bytes]) -> int:
        """
        Copy the rest of the stream to ``destination``, returning bytes written
        """
        start = self.bytes_out
        shutil.copyfileobj(self, destination, self.chunk_size + BLOCK_SIZE)
        return self.bytes_out - start

    def close(self) -> None:
        """
        Release the source, unless ``leave_open`` is set, and the transform

        Closing before the source has been read to the end does not finalise
        the transform: no final block is produced, ``metadata.mac`` stays empty
        and the metadata cannot be used to decrypt.
        """
        if self.closed:
            return
        # May be called from __del__ after a failed __init__
        source = getattr(self, "_source", None)
        try:
            if source is not None and not self.leave_open:
                source.close()
        finally:
            self._source = None
            self._transform = None
            self._pending = b""
            super().close()


create = EncryptionStream.create
