"""Configuration management for MTFS."""

import json
import os
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from . import CONFIG_FILE, DEFAULT_CHUNK_SIZE
from .hashing import validate_chunk_size


class MTFSConfig(BaseModel):
    """Configuration for building Merkle trees."""

    version: int = 1
    chunk_size: int = DEFAULT_CHUNK_SIZE
    exclude_patterns: list[str] = Field(default_factory=list)
    follow_symlinks: bool = False
    max_depth: int | None = Field(default=None, ge=0)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "WARNING"

    @field_validator("chunk_size")
    @classmethod
    def _check_chunk_size(cls, value: int) -> int:
        return validate_chunk_size(value)


def get_config_path(config_path: Path | None = None) -> Path:
    """Get the config file path (explicit, or mtfs.json in the working directory)."""
    if config_path is not None:
        return config_path
    return Path.cwd() / CONFIG_FILE


def load_config(config_path: Path | None = None) -> MTFSConfig:
    """Load configuration from a JSON config file.

    Falls back to defaults if the file doesn't exist.
    Environment variables can override config values.
    """
    path = get_config_path(config_path)

    if path.exists():
        with open(path) as f:
            data = json.load(f)
        config = MTFSConfig.model_validate(data)
    else:
        config = MTFSConfig()

    return _apply_env_overrides(config)


def save_config(config: MTFSConfig, config_path: Path | None = None) -> Path:
    """Save configuration as indented JSON. Returns the written path."""
    path = get_config_path(config_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        json.dump(config.model_dump(), f, indent=2)

    return path


def _apply_env_overrides(config: MTFSConfig) -> MTFSConfig:
    """Apply environment variable overrides to config."""
    data = config.model_dump()

    # MTFS_CHUNK_SIZE
    if chunk_size := os.environ.get("MTFS_CHUNK_SIZE"):
        data["chunk_size"] = chunk_size

    # MTFS_LOG_LEVEL
    if level := os.environ.get("MTFS_LOG_LEVEL"):
        data["log_level"] = level.upper()

    return MTFSConfig.model_validate(data)
