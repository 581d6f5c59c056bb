"""Exceptions raised by the Merkle tree engine."""

from pathlib import Path


class MTFSError(Exception):
    """Base exception for Merkle tree errors."""

    pass


class InvalidChunkSize(MTFSError, ValueError):
    """Chunk size outside the allowed bounds."""

    def __init__(self, chunk_size: int, minimum: int, maximum: int):
        self.chunk_size = chunk_size
        super().__init__(
            f"Invalid chunk size {chunk_size}. "
            f"Must be between {minimum} and {maximum} bytes"
        )


class PathNotFound(MTFSError):
    """Path does not exist (including broken symlinks)."""

    def __init__(self, path: Path | str):
        self.path = str(path)
        super().__init__(f"Path does not exist: {path}")


class PathNotDirectory(MTFSError):
    """Path exists but is not a directory."""

    def __init__(self, path: Path | str):
        self.path = str(path)
        super().__init__(f"Path is not a directory: {path}")


class FileAccessError(MTFSError):
    """A file could not be opened or read, or is not a regular file."""

    def __init__(self, path: Path | str, reason: str):
        self.path = str(path)
        super().__init__(f"{reason}: {path}")


class DirectoryReadError(MTFSError):
    """A directory's entries could not be enumerated."""

    def __init__(self, path: Path | str, reason: str):
        self.path = str(path)
        super().__init__(f"Error reading directory {path}: {reason}")


class InvalidInsertError(MTFSError):
    """Structural misuse of the node API (e.g. adding a child to a file)."""

    pass


class ExportFormatError(MTFSError):
    """A previously exported tree does not have the export structure."""

    def __init__(self, path: str, reason: str):
        self.path = path
        super().__init__(f"Malformed export at {path}: {reason}")
