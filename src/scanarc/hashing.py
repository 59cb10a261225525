"""
Streaming content digests.

Files are read in fixed-size chunks so that multi-gigabyte master scans
never have to fit in memory.
"""

from __future__ import annotations

from pathlib import Path
from blake3 import blake3

DIGEST_ALGORITHM = "blake3"
CHUNK_SIZE = 64 * 1024


def hash_file(path: Path, *, chunk_size: int = CHUNK_SIZE) -> str:
    """
    Compute the content digest of a file.

    Parameters:
        path: File to hash
        chunk_size: Read size in bytes

    Returns:
        Lowercase hex BLAKE3 digest (64 characters)

    Raises:
        OSError: If the file cannot be opened or read

    Example:
        >>> hash_file(Path("output/batchA/0001.ac.jp2"))
        '9f86d081884c7d659a2feaa0c55ad015a3bf4f1b2b0b822cd15d6c15b0f00a08'
    """
    hasher = blake3()
    with Path(path).open("rb") as f:
        while True:
            chunk = f.read(chunk_size)
            if not chunk:
                break
            hasher.update(chunk)
    return hasher.hexdigest()
