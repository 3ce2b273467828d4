"""
Deterministic hashing utilities.

Provides content-based hashing for pinned artifacts.
"""

from pathlib import Path

import xxhash


def hash_file_content(path: Path, chunk_size: int = 8192) -> str:
    """
    Compute hash of file contents.

    Args:
        path: Path to file.
        chunk_size: Chunk size for reading.

    Returns:
        Hex digest string.

    Raises:
        FileNotFoundError: If the file does not exist.
    """
    hasher = xxhash.xxh128()
    with Path(path).open("rb") as f:
        while chunk := f.read(chunk_size):
            hasher.update(chunk)
    return hasher.hexdigest()
