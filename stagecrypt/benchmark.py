"""
Compare the streaming and whole-buffer strategies

Each run round-trips a random payload through temporary files with a fresh
master key, the way a staged upload followed by a download would, and checks
the result matches.

The buffer strategy holds several copies of the payload in memory at once;
the stream strategy holds roughly one chunk.
"""
import io
import logging
import os
import tracemalloc
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from time import perf_counter
from typing import Callable, Iterator, List, Optional, Type

from .cipher import CryptMode
from .exceptions import FormatError
from .files import PathLike, remove, temporary_file
from .material import EncryptionMetadata, MasterKeyMaterial
from .provider import decrypt_file, encrypt_stream
from .reporter import NullReporter, Reporter
from .stream import CHUNK_SIZE, EncryptionStream


logger = logging.getLogger(__name__)


@dataclass
class BenchmarkResult:
    name: str
    size: int
    seconds: float
    peak_memory: Optional[int] = None

    @property
    def throughput(self) -> float:
        """
        Megabytes per second, counting both directions
        """
        if not self.seconds:
            return 0.0
        return (self.size * 2) / (1024 * 1024) / self.seconds


class Measurement:
    seconds: float = 0.0
    peak_memory: Optional[int] = None


@contextmanager
def measure(trace_memory: bool = False) -> Iterator[Measurement]:
    measurement = Measurement()
    if trace_memory:
        tracemalloc.start()
    start = perf_counter()
    try:
        yield measurement
    finally:
        measurement.seconds = perf_counter() - start
        if trace_memory:
            _, measurement.peak_memory = tracemalloc.get_traced_memory()
            tracemalloc.stop()


def check_round_trip(name: str, original: bytes, result: bytes) -> None:
    if result != original:
        raise FormatError(
            f"The {name} round trip did not reproduce the payload", short="mismatch"
        )


def run_stream(
    payload: bytes,
    chunk_size: int = CHUNK_SIZE,
    temp_dir: Optional[PathLike] = None,
    trace_memory: bool = False,
) -> BenchmarkResult:
    """
    Encrypt through a stream into a file, then decrypt through a stream into
    a second file

    Only the two transforms are measured; the read-back check is not.
    """
    material = MasterKeyMaterial.generate()
    metadata = EncryptionMetadata()
    source = io.BytesIO(payload)

    with temporary_file(temp_dir) as crypt_path, temporary_file(
        temp_dir
    ) as plain_path:
        with measure(trace_memory) as measurement:
            with EncryptionStream.create(
                source,
                CryptMode.ENCRYPT,
                material,
                metadata,
                chunk_size=chunk_size,
            ) as encrypted, crypt_path.open("wb") as dest:
                encrypted.copy_to(dest)

            with plain_path.open("wb") as dest, EncryptionStream.create(
                crypt_path.open("rb"),
                CryptMode.DECRYPT,
                material,
                metadata,
                chunk_size=chunk_size,
            ) as decrypted:
                decrypted.copy_to(dest)

        result = plain_path.read_bytes()

    check_round_trip("stream", payload, result)
    return BenchmarkResult(
        "stream", len(payload), measurement.seconds, measurement.peak_memory
    )


def run_buffer(
    payload: bytes,
    temp_dir: Optional[PathLike] = None,
    trace_memory: bool = False,
) -> BenchmarkResult:
    """
    Encrypt the whole payload in memory and write it to a file, then decrypt
    that file into a new one
    """
    material = MasterKeyMaterial.generate()
    metadata = EncryptionMetadata()
    source = io.BytesIO(payload)

    with temporary_file(temp_dir) as crypt_path:
        plain_path: Optional[Path] = None
        try:
            with measure(trace_memory) as measurement:
                ciphertext, _ = encrypt_stream(source, material, metadata)
                crypt_path.write_bytes(ciphertext)
                del ciphertext
                plain_path = decrypt_file(
                    crypt_path, material, metadata, temp_dir=temp_dir
                )
            result = plain_path.read_bytes()
        finally:
            if plain_path is not None:
                remove(plain_path)

    check_round_trip("buffer", payload, result)
    return BenchmarkResult(
        "buffer", len(payload), measurement.seconds, measurement.peak_memory
    )


def benchmark(
    size: int,
    runs: int = 1,
    chunk_size: int = CHUNK_SIZE,
    temp_dir: Optional[PathLike] = None,
    trace_memory: bool = False,
    report_class: Type[Reporter] = NullReporter,
) -> List[BenchmarkResult]:
    """
    Run both strategies ``runs`` times against the same random payload
    """
    payload = os.urandom(size)
    strategies: List[Callable[[], BenchmarkResult]] = [
        lambda: run_stream(payload, chunk_size, temp_dir, trace_memory),
        lambda: run_buffer(payload, temp_dir, trace_memory),
    ]

    results: List[BenchmarkResult] = []
    for run in range(1, runs + 1):
        for name, strategy in zip(("stream", "buffer"), strategies):
            report = report_class(f"{name} #{run}", "running")
            try:
                result = strategy()
            except Exception:
                report.fail("failed")
                raise
            report.complete(f"{result.seconds:.3f}s")
            logger.debug("%s run %d took %.3fs", name, run, result.seconds)
            results.append(result)
    return results
