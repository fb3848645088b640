"""
Mock objects
"""
import io
from base64 import b64encode
from pathlib import Path
from typing import List

from stagecrypt.material import MasterKeyMaterial


# Fixed key material so output can be compared between strategies
MASTER_KEY_BYTES = bytes(range(32))
MASTER_KEY = b64encode(MASTER_KEY_BYTES).decode("ascii")
OTHER_MASTER_KEY = b64encode(bytes(range(32, 64))).decode("ascii")
DATA_KEY = bytes(range(100, 132))
IV = bytes(range(16))

# Deterministic payload which is not a multiple of the block size
PAYLOAD = bytes(range(256)) * 40 + b"tail"


def gen_material(key: str = MASTER_KEY, **kwargs) -> MasterKeyMaterial:
    attrs = dict(query_id="01a2b3c4", smk_id=1)
    attrs.update(kwargs)
    return MasterKeyMaterial(query_stage_master_key=key, **attrs)


def flip(data: bytes, index: int) -> bytes:
    """
    Return ``data`` with one bit of the byte at ``index`` flipped
    """
    raw = bytearray(data)
    raw[index] ^= 0x01
    return bytes(raw)


class BaseTest:
    """
    Abstract base for base test classes

    Simplifies using multiple base test classes on a single test class
    """

    def setup_method(self):
        pass

    def teardown_method(self):
        pass


class FilesystemTest(BaseTest):
    """
    Base for test classes which use the file system
    """

    def mock_fs(self, fs):
        """
        Create mock filesystem ready for testing against
        """
        fs.create_file("/src/small.txt", contents="small")
        fs.create_file("/src/payload.bin", contents=PAYLOAD)
        fs.create_file("/src/empty.bin", contents=b"")
        fs.create_dir("/dest")
        fs.create_dir("/scratch")

    def list_dir(self, path: str) -> List[str]:
        return sorted(p.name for p in Path(path).iterdir())


class RecordingSource(io.BytesIO):
    """
    Source which records the size of every read request and whether it closed
    """

    def __init__(self, data: bytes):
        super().__init__(data)
        self.requests: List[int] = []
        self.was_closed = False

    def readinto(self, buffer) -> int:
        self.requests.append(len(buffer))
        return super().readinto(buffer)

    def read(self, size=-1) -> bytes:
        self.requests.append(size)
        return super().read(size)

    def close(self):
        self.was_closed = True
        super().close()


class ReadOnlySource:
    """
    Minimal source with no readinto, returning short reads
    """

    def __init__(self, data: bytes, max_read: int = 7):
        self.data = data
        self.max_read = max_read
        self.position = 0
        self.closed = False

    def read(self, size: int = -1) -> bytes:
        if size < 0 or size > self.max_read:
            size = self.max_read
        chunk = self.data[self.position : self.position + size]
        self.position += len(chunk)
        return chunk

    def close(self):
        self.closed = True


class FlawedDestination(io.BytesIO):
    """
    A destination which is intentionally flawed and will fail part way through
    """

    def __init__(self, fail_after: int):
        super().__init__()
        self.fail_after = fail_after

    def write(self, data) -> int:
        if self.tell() + len(data) > self.fail_after:
            raise OSError("No space left on device")
        return super().write(data)


SAMPLE_CONFIG = """# Sample config file

[encryption]
# Choose between stream, buffer and auto
strategy = {strategy}

# Largest file to process in memory when automatic
threshold = 1M

# Bytes to read from the source per step
chunk_size = 16K

# Key wrap algorithm
key_wrap = aeskw

{key}
"""

SAMPLE_KEY = f"""[key]
# Master key from the stage
master_key = {MASTER_KEY}
query_id = 01a2b3c4
smk_id = 42
"""
