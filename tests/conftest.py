"""Shared test fixtures for mtfs."""

import shutil
from pathlib import Path

import pytest
from click.testing import CliRunner


@pytest.fixture
def cli_runner():
    """Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def sample_project():
    """Path to the fixture sample project."""
    return Path(__file__).parent / "fixtures" / "sample_project"


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep MTFS_* overrides from the outer environment out of the tests."""
    monkeypatch.delenv("MTFS_CHUNK_SIZE", raising=False)
    monkeypatch.delenv("MTFS_LOG_LEVEL", raising=False)


def make_tree(root: Path, layout: dict) -> Path:
    """Create files and directories from a nested dict.

    Values are file contents (str or bytes) or nested dicts for
    directories; an empty dict makes an empty directory.
    """
    root.mkdir(parents=True, exist_ok=True)
    for name, value in layout.items():
        path = root / name
        if isinstance(value, dict):
            make_tree(path, value)
        elif isinstance(value, bytes):
            path.write_bytes(value)
        else:
            path.write_text(value)
    return root


@pytest.fixture
def project(tmp_path: Path, sample_project: Path) -> Path:
    """A writable copy of the sample project."""
    copy = tmp_path / "project"
    shutil.copytree(sample_project, copy)
    return copy
