"""MTFS - Merkle Tree File System: hash-linked snapshots of directory trees."""

__version__ = "0.1.0"

# Chunk size bounds (bytes)
DEFAULT_CHUNK_SIZE = 1024 * 1024
MIN_CHUNK_SIZE = 1024
MAX_CHUNK_SIZE = 100 * 1024 * 1024

# Config file looked up in the working directory when --config is not given
CONFIG_FILE = "mtfs.json"
