"""Plain-text renderers for trees, file objects and statistics.

Every renderer returns a list of lines. The line prefixes and labels
(``├─``, ``└─``, ``│``, ``Hash:``, ``Size:``, ``File:``, ``Chunks:``,
``Total files:`` ...) are read by front-ends that drive ``mtfs shell``,
so keep them stable.
"""

from __future__ import annotations

from .merkle import MerkleNode, MerkleTree

BRANCH = "├─ "
LAST_BRANCH = "└─ "
PIPE = "│  "
SPACE = "   "

SIZE_UNITS = ["B", "KB", "MB", "GB"]


def format_file_size(num_bytes: int) -> str:
    """Human-readable size, e.g. ``5 B``, ``1.5 KB``, ``12 MB``."""
    size = float(num_bytes)
    unit = 0
    while size >= 1024 and unit < len(SIZE_UNITS) - 1:
        size /= 1024
        unit += 1
    precision = 1 if size < 10 and unit > 0 else 0
    return f"{size:.{precision}f} {SIZE_UNITS[unit]}"


def short_hash(value: str | None, length: int = 8) -> str:
    if not value:
        return "-"
    return f"{value[:length]}..."


def describe_node(node: MerkleNode) -> str:
    """One-line summary of a node, as shown in the tree view."""
    if node.is_file:
        line = f"{node.name} (File, Size: {node.size} bytes, Hash: {short_hash(node.content_hash)})"
        if len(node.chunk_hashes) > 1:
            line += f" [{len(node.chunk_hashes)} chunks]"
        return line
    return f"{node.name} (Directory, Children: {len(node.children)}, Hash: {short_hash(node.hash)})"


def render_tree(root: MerkleNode) -> list[str]:
    """Draw the tree with box-drawing guides, children in name order."""
    lines = [describe_node(root)]
    # (node, prefix for its own line, prefix for its children's lines)
    stack: list[tuple[MerkleNode, str, str]] = []

    def push_children(node: MerkleNode, prefix: str) -> None:
        names = sorted(node.children)
        for index in range(len(names) - 1, -1, -1):
            is_last = index == len(names) - 1
            child = node.children[names[index]]
            stack.append(
                (
                    child,
                    prefix + (LAST_BRANCH if is_last else BRANCH),
                    prefix + (SPACE if is_last else PIPE),
                )
            )

    push_children(root, "")
    while stack:
        node, line_prefix, child_prefix = stack.pop()
        lines.append(line_prefix + describe_node(node))
        push_children(node, child_prefix)
    return lines


def render_file_objects(tree: MerkleTree) -> list[str]:
    """List the content-hash index, one block per distinct content."""
    lines = ["=== File Objects ==="]
    for content_hash in sorted(tree.file_objects):
        node = tree.file_objects[content_hash]
        lines.append(f"Content Hash: {content_hash}")
        lines.append(f"  File: {node.name}")
        lines.append(f"  Path: {node.path}")
        lines.append(f"  Size: {node.size} bytes")
        lines.append(f"  Chunks: {len(node.chunk_hashes)}")
        if len(node.chunk_hashes) > 1:
            lines.append("  Chunk Hashes:")
            for index, chunk_hash in enumerate(node.chunk_hashes):
                lines.append(f"    [{index}] {chunk_hash}")
        lines.append("")
    return lines


def render_stats(tree: MerkleTree) -> list[str]:
    """Statistics block; an unbuilt tree reports zeros."""
    stats = tree.stats()
    return [
        f"Total files: {stats.total_files}",
        f"Total directories: {stats.total_directories}",
        f"Total size: {format_file_size(stats.total_size)}",
        f"Tree depth: {tree.root.depth if tree.is_built else 0}",
        f"Root hash: {tree.root_hash or '-'}",
    ]


def render_report(tree: MerkleTree) -> list[str]:
    """Full analysis of a built tree: structure, statistics and file objects."""
    lines = [
        f"Processing directory: {tree.root_path}",
        f"Chunk size: {tree.chunk_size} bytes",
        "",
        "=== Tree Structure ===",
        *render_tree(tree.root),
        "",
        "=== Statistics ===",
        *render_stats(tree),
        "",
        *render_file_objects(tree),
    ]
    if tree.warnings:
        lines.append("=== Skipped Entries ===")
        lines.extend(f"{warning.path}: {warning.message}" for warning in tree.warnings)
    return lines


def process_directory(tree: MerkleTree, directory) -> list[str]:
    """Build *tree* from *directory* and return the full report.

    Build errors propagate; nothing is rendered for a failed build.
    """
    tree.build(directory)
    return render_report(tree)


def printable(text: str) -> str:
    """Swap undecodable filename bytes for U+FFFD so *text* can go to a console."""
    return text.encode("utf-8", "surrogateescape").decode("utf-8", "replace")
