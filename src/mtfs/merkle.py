"""Merkle tree implementation over a directory on disk."""

from __future__ import annotations

import fnmatch
import json
import logging
import os
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

from . import DEFAULT_CHUNK_SIZE
from .errors import (
    DirectoryReadError,
    ExportFormatError,
    FileAccessError,
    InvalidInsertError,
    MTFSError,
    PathNotDirectory,
    PathNotFound,
)
from .hashing import FileDigest, digest, hash_file_content, validate_chunk_size

logger = logging.getLogger(__name__)


@dataclass
class TreeStats:
    """Aggregate counts over a built tree."""

    total_files: int = 0
    total_directories: int = 0
    total_size: int = 0  # Bytes, summed over file nodes only

    @property
    def total_nodes(self) -> int:
        return self.total_files + self.total_directories


@dataclass
class TreeDiff:
    """Result of comparing a tree against an earlier export."""

    new: list[str] = field(default_factory=list)
    modified: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    root_changed: bool = False

    @property
    def has_changes(self) -> bool:
        """Check if there are any changes, including file-less ones."""
        return self.root_changed or bool(self.new or self.modified or self.deleted)

    @property
    def total_changes(self) -> int:
        """Total number of changed files."""
        return len(self.new) + len(self.modified) + len(self.deleted)


@dataclass
class BuildWarning:
    """An entry skipped while building the tree."""

    path: str
    message: str


@dataclass(eq=False)
class MerkleNode:
    """A node in the Merkle tree representing a file or directory."""

    name: str
    type: Literal["file", "directory"]
    path: str  # Relative path from the build root ("." for the root)
    hash: str | None = None  # Set once hashes are computed
    content_hash: str | None = None  # For files only
    chunk_hashes: list[str] | None = None  # For files only
    size: int | None = None  # For files only
    children: dict[str, MerkleNode] = field(default_factory=dict, repr=False)
    parent: MerkleNode | None = field(default=None, repr=False)
    _depth: int | None = field(default=None, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.type == "file":
            if self.chunk_hashes is None:
                self.chunk_hashes = []
        elif self.content_hash is not None or self.chunk_hashes is not None or self.size is not None:
            raise InvalidInsertError(f"Directory node cannot carry file content: {self.name}")

    @classmethod
    def file(cls, name: str, path: str, file_digest: FileDigest) -> MerkleNode:
        """Create a file leaf from a chunked content digest."""
        return cls(
            name=name,
            type="file",
            path=path,
            content_hash=file_digest.content_hash,
            chunk_hashes=list(file_digest.chunk_hashes),
            size=file_digest.size,
        )

    @classmethod
    def directory(cls, name: str, path: str) -> MerkleNode:
        """Create an empty directory node."""
        return cls(name=name, type="directory", path=path)

    @property
    def is_file(self) -> bool:
        return self.type == "file"

    @property
    def is_leaf(self) -> bool:
        return not self.children

    def add_child(self, child: MerkleNode) -> None:
        """
        Insert *child* under its name, taking ownership of it.

        A child already owned by another directory is rejected. An existing
        child with the same name is replaced. Cached depths are reset for
        this node and every ancestor.
        """
        if self.is_file:
            raise InvalidInsertError(f"Cannot add child to a file node: {self.name}")
        if child is None:
            raise InvalidInsertError(f"Cannot add null child to node: {self.name}")
        if child.parent is not None and child.parent is not self:
            raise InvalidInsertError(
                f"Node {child.name} already belongs to directory {child.parent.name}"
            )
        if child is self or child in self.ancestors():
            raise InvalidInsertError(f"Cannot add {child.name} beneath itself")

        previous = self.children.get(child.name)
        if previous is not None and previous is not child:
            previous.parent = None

        self.children[child.name] = child
        child.parent = self
        self._invalidate_depth()

    def ancestors(self) -> Iterator[MerkleNode]:
        """Yield the parent chain, nearest first."""
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def expected_hash(self, child_hashes: dict[str, str] | None = None) -> str:
        """Hash this node should carry, from its content or its children.

        Directories use *child_hashes* when given, otherwise the children's
        stored hashes.
        """
        if self.is_file:
            return self.content_hash
        if child_hashes is None:
            child_hashes = {}
            for name, child in self.children.items():
                if child.hash is None:
                    raise InvalidInsertError(f"Child {child.path} has no hash yet")
                child_hashes[name] = child.hash
        return compute_directory_hash(self.name, child_hashes)

    def compute_hash(self) -> str:
        """Recompute and store this node's hash from its children's hashes."""
        self.hash = self.expected_hash()
        return self.hash

    @property
    def depth(self) -> int:
        """Height of the subtree: 0 for a node without children."""
        if self._depth is not None:
            return self._depth

        stack: list[tuple[MerkleNode, bool]] = [(self, False)]
        while stack:
            node, expanded = stack.pop()
            if node._depth is not None:
                continue
            if not node.children:
                node._depth = 0
            elif expanded:
                node._depth = 1 + max(child._depth for child in node.children.values())
            else:
                stack.append((node, True))
                stack.extend(
                    (child, False) for child in node.children.values() if child._depth is None
                )
        return self._depth

    def _invalidate_depth(self) -> None:
        node: MerkleNode | None = self
        while node is not None:
            node._depth = None
            node = node.parent

    def walk(self) -> Iterator[MerkleNode]:
        """Pre-order traversal of this subtree, children in name order."""
        stack = [self]
        while stack:
            node = stack.pop()
            yield node
            stack.extend(node.children[name] for name in sorted(node.children, reverse=True))

    @property
    def total_size(self) -> int:
        """Total bytes of all files under this node."""
        return sum(node.size for node in self.walk() if node.is_file)

    @property
    def file_count(self) -> int:
        """Number of files under this node (1 for a file)."""
        return sum(1 for node in self.walk() if node.is_file)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the export structure (keyed by name at the parent level)."""
        result: dict[str, Any] = {
            "type": self.type,
            "hash": self.hash,
        }
        if self.is_file:
            result["size"] = self.size
            result["chunks"] = len(self.chunk_hashes)
            result["content_hash"] = self.content_hash
        elif self.children:
            result["children"] = {
                name: self.children[name].to_dict() for name in sorted(self.children)
            }
        return result


class MerkleTree:
    """Content-addressed tree mirroring a directory structure."""

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        exclude_patterns: list[str] | None = None,
        follow_symlinks: bool = False,
        max_depth: int | None = None,
    ):
        self.chunk_size = validate_chunk_size(chunk_size)
        self.exclude_patterns = list(exclude_patterns or [])
        self.follow_symlinks = follow_symlinks
        self.max_depth = max_depth

        self.root: MerkleNode | None = None
        self.root_path: Path | None = None
        self.file_objects: dict[str, MerkleNode] = {}  # content hash -> last file seen
        self.nodes: list[MerkleNode] = []
        self.warnings: list[BuildWarning] = []

    @classmethod
    def from_config(cls, config) -> MerkleTree:
        """Create an empty tree using the settings of an MTFSConfig."""
        return cls(
            chunk_size=config.chunk_size,
            exclude_patterns=config.exclude_patterns,
            follow_symlinks=config.follow_symlinks,
            max_depth=config.max_depth,
        )

    @property
    def is_built(self) -> bool:
        return self.root is not None

    @property
    def root_hash(self) -> str | None:
        return self.root.hash if self.root is not None else None

    def set_chunk_size(self, chunk_size: int) -> None:
        """Change the window size used by subsequent builds."""
        self.chunk_size = validate_chunk_size(chunk_size)
        logger.debug("Chunk size set to %d bytes", chunk_size)

    def clear(self) -> None:
        """Drop the current tree and all bookkeeping."""
        self.root = None
        self.root_path = None
        self.file_objects = {}
        self.nodes = []
        self.warnings = []

    # Build

    def build(self, directory: Path | str) -> MerkleNode:
        """
        Build a Merkle tree from the filesystem, replacing any previous tree.

        Entries that fail individually (unreadable files, broken symlinks,
        unreadable subdirectories) are logged, recorded in ``warnings`` and
        skipped. If the root directory itself cannot be read the error
        propagates and the tree is left empty.

        Args:
            directory: Root directory to scan

        Returns:
            The root node, with hashes computed
        """
        path = Path(directory)
        if not path.exists():
            raise PathNotFound(path)
        if not path.is_dir():
            raise PathNotDirectory(path)

        self.clear()
        try:
            root = self._build_nodes(path)
        except Exception:
            self.clear()
            raise

        for node in _post_order(root):
            node.compute_hash()

        self.root = root
        self.root_path = path.resolve()
        logger.info(
            "Built Merkle tree for %s: %d nodes, %d skipped, root hash %s",
            path,
            len(self.nodes),
            len(self.warnings),
            root.hash,
        )
        return root

    def _build_nodes(self, path: Path) -> MerkleNode:
        """Create the node graph depth-first; hashes are left unset."""
        root = MerkleNode.directory(_root_name(path), ".")
        entries = _scan_directory(path)
        self.nodes.append(root)

        root_key = _dir_key(path)
        active = {root_key}
        # (directory node, remaining entries, depth of the node, identity key)
        stack = [(root, iter(entries), 0, root_key)]
        while stack:
            parent, remaining, depth, key = stack[-1]
            entry = next(remaining, None)
            if entry is None:
                stack.pop()
                active.discard(key)
                continue

            if should_exclude(entry.name, self.exclude_patterns):
                logger.debug("Excluded %s", entry.path)
                continue

            try:
                reason = self._skip_reason(entry, depth + 1, active)
                if reason is not None:
                    self._skip(entry.path, reason)
                    continue
                child, child_entries = self._build_entry(entry, parent)
                child_key = _dir_key(Path(entry.path)) if child_entries is not None else None
            except MTFSError as e:
                self._skip(entry.path, str(e))
                continue

            parent.add_child(child)
            self._register(child)
            if child_entries is not None:
                active.add(child_key)
                stack.append((child, iter(child_entries), depth + 1, child_key))

        return root

    def _skip_reason(self, entry: os.DirEntry, depth: int, active: set) -> str | None:
        """Policy checks for an entry; a returned string means skip it."""
        if not os.path.exists(entry.path):
            raise PathNotFound(entry.path)
        if self.max_depth is not None and depth > self.max_depth:
            return f"Exceeds maximum tree depth {self.max_depth}"

        try:
            is_dir = entry.is_dir()
            is_file = entry.is_file()
            is_symlink = entry.is_symlink()
        except OSError as e:
            raise FileAccessError(entry.path, f"Cannot stat entry ({e.strerror or e})") from e

        if is_dir:
            if is_symlink:
                if not self.follow_symlinks:
                    return "Not following directory symlink"
                if _dir_key(Path(entry.path)) in active:
                    return "Symlink cycle detected"
            return None
        if not is_file:
            return "Not a regular file or directory"
        return None

    def _build_entry(
        self, entry: os.DirEntry, parent: MerkleNode
    ) -> tuple[MerkleNode, list[os.DirEntry] | None]:
        """Create the node for one directory entry.

        Returns the node and, for directories, its (not yet built) entries.
        """
        rel = _join(parent.path, entry.name)

        if entry.is_dir():
            entries = _scan_directory(Path(entry.path))
            return MerkleNode.directory(entry.name, rel), entries

        file_digest = hash_file_content(Path(entry.path), self.chunk_size)
        return MerkleNode.file(entry.name, rel, file_digest), None

    def _register(self, node: MerkleNode) -> None:
        """Record an attached node in the registry and, for files, the dedup index."""
        self.nodes.append(node)
        if node.is_file:
            self.file_objects[node.content_hash] = node

    def _skip(self, path: str, message: str) -> None:
        logger.warning("Skipping %s - %s", path, message)
        self.warnings.append(BuildWarning(path=path, message=message))

    # Verification

    def verify(self, check_disk: bool = False) -> bool:
        """Recompute hashes bottom-up and compare them with the stored ones.

        Stored hashes are never modified. With *check_disk*, file contents
        are re-read from disk instead of trusting the stored content hash.
        """
        return self.find_mismatch(check_disk=check_disk) is None

    def find_mismatch(self, check_disk: bool = False) -> MerkleNode | None:
        """Return the first node whose stored hash fails recomputation, or None."""
        if self.root is None:
            return None

        recomputed: dict[int, str] = {}
        for node in _post_order(self.root):
            if node.is_file:
                expected = self._disk_hash(node) if check_disk else node.content_hash
                valid = expected is not None and expected == node.hash == node.content_hash
            else:
                expected = node.expected_hash(
                    {name: recomputed[id(child)] for name, child in node.children.items()}
                )
                valid = expected == node.hash

            if not valid:
                logger.info("Integrity mismatch at %s", node.path)
                return node
            recomputed[id(node)] = expected

        return None

    def _disk_hash(self, node: MerkleNode) -> str | None:
        try:
            return hash_file_content(self.root_path / node.path, self.chunk_size).content_hash
        except MTFSError as e:
            logger.warning("Cannot re-hash %s - %s", node.path, e)
            return None

    # Queries

    def iter_nodes(self) -> Iterator[MerkleNode]:
        """Pre-order traversal of the whole tree (empty if not built)."""
        if self.root is None:
            return iter(())
        return self.root.walk()

    def stats(self) -> TreeStats:
        """Count files and directories and sum file sizes in one pass."""
        stats = TreeStats()
        for node in self.iter_nodes():
            if node.is_file:
                stats.total_files += 1
                stats.total_size += node.size
            else:
                stats.total_directories += 1
        return stats

    def find_node(self, name: str) -> MerkleNode | None:
        """First node (depth-first, name order) whose name matches exactly.

        Names repeat across directories, so this is the first match found,
        not necessarily the only one.
        """
        for node in self.iter_nodes():
            if node.name == name:
                return node
        return None

    # Export

    def to_dict(self) -> dict[str, Any]:
        """Export structure: ``{root_name: {...}}``, or ``{}`` when empty."""
        if self.root is None:
            return {}
        return {self.root.name: self.root.to_dict()}

    def export_json(self, indent: int | None = 2) -> str:
        """Serialize the tree structure to JSON (two-space indent by default)."""
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)

    def export_bytes(self, indent: int | None = 2) -> bytes:
        """UTF-8 encoded export for writing to files and streams.

        Filenames that are not valid UTF-8 come back out as their original
        bytes, so reading the export with ``errors="surrogateescape"``
        reproduces the names the tree was built from.
        """
        return self.export_json(indent=indent).encode("utf-8", "surrogateescape")

    def compare_export(self, exported: Any) -> TreeDiff:
        """
        Compare an earlier export (old) with this tree (new).

        The root entries are matched regardless of their names, so a copy of
        a directory can be checked against the export of its source.

        Args:
            exported: Parsed output of a previous ``export_json``

        Returns:
            TreeDiff with lists of new, modified, and deleted file paths

        Raises:
            ExportFormatError: *exported* (or an entry inside it) is not
                shaped like an export
        """
        if not isinstance(exported, dict):
            raise ExportFormatError(".", f"expected an object, got {type(exported).__name__}")

        diff = TreeDiff()
        old_root = next(iter(exported.values()), None) if exported else None
        if old_root is not None:
            _check_exported_entry(old_root, ".")
        new_root = self.root.to_dict() if self.root is not None else None

        if old_root is None and new_root is None:
            return diff

        diff.root_changed = (old_root or {}).get("hash") != (new_root or {}).get("hash")

        if old_root is None:
            # Everything in this tree is new
            _collect_exported_files(new_root, ".", diff.new)
        elif new_root is None:
            _collect_exported_files(old_root, ".", diff.deleted)
        else:
            _compare_exported(old_root, new_root, ".", diff)
        return diff


def compute_directory_hash(name: str, child_hashes: dict[str, str]) -> str:
    """Directory hash from sorted ``name:hash;`` pairs; empty dirs hash their name."""
    if not child_hashes:
        return digest(name)
    combined = "".join(f"{child}:{child_hashes[child]};" for child in sorted(child_hashes))
    return digest(combined)


def should_exclude(name: str, exclude_patterns: list[str]) -> bool:
    """Check if an entry name matches any exclusion pattern."""
    for pattern in exclude_patterns:
        if fnmatch.fnmatch(name, pattern):
            return True
    return False


def _root_name(path: Path) -> str:
    name = path.name
    if name in ("", ".", ".."):
        resolved = path.resolve()
        name = resolved.name or str(resolved)
    return name


def _scan_directory(path: Path) -> list[os.DirEntry]:
    """List a directory's entries in name order."""
    try:
        with os.scandir(path) as it:
            return sorted(it, key=lambda entry: entry.name)
    except OSError as e:
        raise DirectoryReadError(path, e.strerror or str(e)) from e


def _dir_key(path: Path) -> tuple[int, int]:
    """Identity of a directory on disk, for symlink cycle detection."""
    try:
        st = path.stat()
    except OSError as e:
        raise DirectoryReadError(path, e.strerror or str(e)) from e
    return (st.st_dev, st.st_ino)


def _join(parent: str, name: str) -> str:
    return name if parent == "." else f"{parent}/{name}"


def _check_exported_entry(entry: Any, path: str) -> None:
    if not isinstance(entry, dict):
        raise ExportFormatError(path, f"expected an object, got {type(entry).__name__}")
    if entry.get("type") not in ("file", "directory"):
        raise ExportFormatError(path, f"unknown entry type {entry.get('type')!r}")


def _exported_children(entry: dict[str, Any], path: str) -> dict[str, Any]:
    """Children of an exported directory, each checked before use."""
    children = entry.get("children", {})
    if not isinstance(children, dict):
        raise ExportFormatError(path, "children must be an object")
    for name, child in children.items():
        _check_exported_entry(child, _join(path, name))
    return children


def _collect_exported_files(entry: dict[str, Any], path: str, file_list: list[str]) -> None:
    """Collect all file paths below an exported entry."""
    if entry.get("type") == "file":
        file_list.append(path)
        return
    children = _exported_children(entry, path)
    for name in sorted(children):
        _collect_exported_files(children[name], _join(path, name), file_list)


def _compare_exported(
    old: dict[str, Any], new: dict[str, Any], path: str, diff: TreeDiff
) -> None:
    """Recursively compare two exported entries and populate diff."""
    # Quick check: if hashes match, entire subtree is unchanged
    if old.get("type") == new.get("type") and old.get("hash") == new.get("hash"):
        return

    if old.get("type") == "file" and new.get("type") == "file":
        diff.modified.append(path)
        return

    # Handle type changes (file -> dir or dir -> file)
    if old.get("type") != new.get("type"):
        _collect_exported_files(old, path, diff.deleted)
        _collect_exported_files(new, path, diff.new)
        return

    old_children = _exported_children(old, path)
    new_children = _exported_children(new, path)

    for name in sorted(new_children.keys() - old_children.keys()):
        _collect_exported_files(new_children[name], _join(path, name), diff.new)

    for name in sorted(old_children.keys() - new_children.keys()):
        _collect_exported_files(old_children[name], _join(path, name), diff.deleted)

    for name in sorted(old_children.keys() & new_children.keys()):
        _compare_exported(old_children[name], new_children[name], _join(path, name), diff)


def _post_order(root: MerkleNode) -> Iterator[MerkleNode]:
    """Children before parents, without recursion."""
    stack: list[tuple[MerkleNode, bool]] = [(root, False)]
    while stack:
        node, expanded = stack.pop()
        if expanded or not node.children:
            yield node
            continue
        stack.append((node, True))
        stack.extend((child, False) for child in node.children.values())
