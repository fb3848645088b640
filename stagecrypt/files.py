"""
Temporary and partially-written file handling

Every file created here is removed again on any exit path, unless ownership
is explicitly handed to the caller.
"""
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import IO, Iterator, Optional, Union

from .exceptions import ResourceError


TEMP_PREFIX = "stagecrypt-"

PathLike = Union[str, Path]


def make_temp_file(directory: Optional[PathLike] = None, suffix: str = "") -> Path:
    """
    Create an empty temporary file and return its path

    The caller owns the file and is responsible for removing it.
    """
    try:
        handle, name = tempfile.mkstemp(
            suffix=suffix,
            prefix=TEMP_PREFIX,
            dir=None if directory is None else str(directory),
        )
    except OSError as e:
        raise ResourceError(f"Unable to create temporary file: {e}") from e
    os.close(handle)
    return Path(name)


def remove(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:
        pass


@contextmanager
def temporary_file(
    directory: Optional[PathLike] = None, suffix: str = ""
) -> Iterator[Path]:
    path = make_temp_file(directory, suffix)
    try:
        yield path
    finally:
        remove(path)


@contextmanager
def atomic_write(destination: PathLike) -> Iterator[IO[bytes]]:
    """
    Write to a temporary file beside ``destination``, then move it into place

    If the block raises, the partial file is removed and ``destination`` is
    left untouched.
    """
    destination = Path(destination)
    path = make_temp_file(destination.parent, suffix=".part")
    committed = False
    try:
        with path.open("wb") as handle:
            yield handle
        os.replace(str(path), str(destination))
        committed = True
    finally:
        if not committed:
            remove(path)
