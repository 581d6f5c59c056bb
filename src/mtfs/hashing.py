"""SHA-256 digests and chunked file hashing."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from pathlib import Path

from . import MAX_CHUNK_SIZE, MIN_CHUNK_SIZE
from .errors import FileAccessError, InvalidChunkSize


@dataclass
class FileDigest:
    """Result of hashing a file's content in chunks."""

    content_hash: str
    size: int
    chunk_hashes: list[str] = field(default_factory=list)


def digest(data: bytes | str) -> str:
    """SHA-256 hex digest. Strings are hashed as UTF-8."""
    if isinstance(data, str):
        data = data.encode("utf-8", "surrogateescape")
    return hashlib.sha256(data).hexdigest()


def validate_chunk_size(chunk_size: int) -> int:
    """Return *chunk_size* unchanged, or raise InvalidChunkSize."""
    if chunk_size < MIN_CHUNK_SIZE or chunk_size > MAX_CHUNK_SIZE:
        raise InvalidChunkSize(chunk_size, MIN_CHUNK_SIZE, MAX_CHUNK_SIZE)
    return chunk_size


def hash_file_content(filepath: Path, chunk_size: int) -> FileDigest:
    """
    Hash a file in fixed-size windows.

    Every non-empty window gets its own digest, in file order. The
    whole-content digest is fed incrementally, so it matches hashing the
    full content at once without holding it in memory.

    Args:
        filepath: File to read
        chunk_size: Window size in bytes

    Returns:
        FileDigest with content hash, byte count and per-chunk hashes

    Raises:
        InvalidChunkSize: chunk_size is out of bounds
        FileAccessError: the file cannot be opened or a read fails
    """
    validate_chunk_size(chunk_size)

    try:
        f = open(filepath, "rb")
    except OSError as e:
        raise FileAccessError(filepath, f"Cannot open file ({e.strerror or e})") from e

    content = hashlib.sha256()
    chunk_hashes: list[str] = []
    size = 0
    with f:
        try:
            for chunk in iter(lambda: f.read(chunk_size), b""):
                content.update(chunk)
                chunk_hashes.append(digest(chunk))
                size += len(chunk)
        except OSError as e:
            raise FileAccessError(filepath, f"Error reading file ({e.strerror or e})") from e

    return FileDigest(content_hash=content.hexdigest(), size=size, chunk_hashes=chunk_hashes)
