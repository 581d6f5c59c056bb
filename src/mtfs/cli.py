"""CLI for MTFS."""

import json
import logging
import sys
from pathlib import Path

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from . import __version__
from .config import MTFSConfig, get_config_path, load_config, save_config
from .display import (
    describe_node,
    printable,
    process_directory,
    render_file_objects,
    render_stats,
    render_tree,
)
from .errors import MTFSError
from .hashing import validate_chunk_size
from .merkle import MerkleTree
from .shell import MerkleShell

console = Console(soft_wrap=True)
error_console = Console(stderr=True, soft_wrap=True)

PATH_ARGUMENT = click.Path(file_okay=True, dir_okay=True, path_type=Path)


def fail(message: str) -> None:
    """Print an error and exit with status 1."""
    error_console.print(f"[red]Error:[/red] {escape(printable(message))}")
    sys.exit(1)


def configure_logging(level: str) -> None:
    """Send mtfs log records to stderr through rich."""
    logger = logging.getLogger("mtfs")
    for handler in list(logger.handlers):
        if isinstance(handler, RichHandler):
            logger.removeHandler(handler)
    logger.addHandler(RichHandler(console=error_console, show_time=False, show_path=False))
    logger.setLevel(level)


def print_lines(lines: list[str]) -> None:
    for line in lines:
        console.print(escape(printable(line)), highlight=False)


def build_tree(config: MTFSConfig, directory: Path) -> MerkleTree:
    """Build a tree for a one-shot command, exiting on fatal errors."""
    tree = MerkleTree.from_config(config)
    try:
        tree.build(directory)
    except MTFSError as e:
        fail(str(e))
    return tree


@click.group()
@click.version_option(version=__version__, prog_name="mtfs")
@click.option(
    "--chunk-size",
    type=int,
    default=None,
    help="Chunk size in bytes (1024 - 104857600, default 1 MiB)",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ./mtfs.json if present)",
)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.pass_context
def main(ctx: click.Context, chunk_size: int | None, config_path: Path | None, verbose: bool) -> None:
    """MTFS - Merkle Tree File System.

    Converts a directory into a Merkle tree: every file is hashed in
    chunks and every directory hash is derived from its children, so the
    root hash certifies the whole tree.
    """
    try:
        config = load_config(config_path)
        if chunk_size is not None:
            config = config.model_copy(update={"chunk_size": validate_chunk_size(chunk_size)})
    except (ValidationError, MTFSError, json.JSONDecodeError) as e:
        fail(str(e))

    configure_logging("DEBUG" if verbose else config.log_level)
    ctx.obj = {"config": config, "config_path": config_path}


@main.command()
@click.argument("directory", type=PATH_ARGUMENT)
@click.pass_obj
def build(obj: dict, directory: Path) -> None:
    """Build the tree and show the full analysis."""
    tree = MerkleTree.from_config(obj["config"])
    try:
        report = process_directory(tree, directory)
    except MTFSError as e:
        fail(str(e))
    print_lines(report)
    console.print("[green]Merkle tree built successfully.[/green]")


@main.command()
@click.argument("directory", type=PATH_ARGUMENT)
@click.pass_obj
def tree(obj: dict, directory: Path) -> None:
    """Print the tree structure."""
    merkle_tree = build_tree(obj["config"], directory)
    print_lines(render_tree(merkle_tree.root))


@main.command()
@click.argument("directory", type=PATH_ARGUMENT)
@click.pass_obj
def files(obj: dict, directory: Path) -> None:
    """Print file objects (the content-hash index)."""
    merkle_tree = build_tree(obj["config"], directory)
    print_lines(render_file_objects(merkle_tree))


@main.command()
@click.argument("directory", type=PATH_ARGUMENT)
@click.pass_obj
def stats(obj: dict, directory: Path) -> None:
    """Show tree statistics."""
    merkle_tree = build_tree(obj["config"], directory)
    print_lines(render_stats(merkle_tree))


@main.command()
@click.argument("directory", type=PATH_ARGUMENT)
@click.option("--check-disk", is_flag=True, help="Re-read every file from disk")
@click.option(
    "--against",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    default=None,
    help="Compare with a previous JSON export",
)
@click.pass_obj
def verify(obj: dict, directory: Path, check_disk: bool, against: Path | None) -> None:
    """Verify tree integrity, optionally against an earlier export."""
    merkle_tree = build_tree(obj["config"], directory)

    mismatch = merkle_tree.find_mismatch(check_disk=check_disk)
    if mismatch is not None:
        console.print("[red]Tree integrity check FAILED![/red]")
        console.print(f"Mismatch at: {escape(printable(mismatch.path))}", highlight=False)
        sys.exit(1)
    console.print("[green]Tree integrity verified: OK[/green]")

    if against is None:
        return

    try:
        with open(against, encoding="utf-8", errors="surrogateescape") as f:
            exported = json.load(f)
        diff = merkle_tree.compare_export(exported)
    except (json.JSONDecodeError, MTFSError) as e:
        fail(f"Invalid export file {against}: {e}")

    if not diff.has_changes:
        console.print("[green]No changes since export.[/green]")
        return

    table = Table(title="Changes Since Export")
    table.add_column("Change", style="cyan")
    table.add_column("Path")
    for path in diff.new:
        table.add_row("new", escape(printable(path)))
    for path in diff.modified:
        table.add_row("modified", escape(printable(path)))
    for path in diff.deleted:
        table.add_row("deleted", escape(printable(path)))
    if diff.total_changes:
        console.print(table)
    console.print(f"[yellow]Root hash changed[/yellow] ({diff.total_changes} file changes)")
    sys.exit(1)


@main.command()
@click.argument("directory", type=PATH_ARGUMENT)
@click.option(
    "--output",
    "-o",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Write JSON to this file instead of stdout",
)
@click.option("--compact", is_flag=True, help="Emit single-line JSON")
@click.pass_obj
def export(obj: dict, directory: Path, output: Path | None, compact: bool) -> None:
    """Export the tree structure to JSON."""
    merkle_tree = build_tree(obj["config"], directory)
    data = merkle_tree.export_bytes(indent=None if compact else 2)

    if output is None:
        click.echo(data)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_bytes(data + b"\n")
    console.print(f"[green]Exported to {escape(str(output))}[/green]")


@main.command()
@click.argument("directory", type=PATH_ARGUMENT)
@click.argument("name")
@click.pass_obj
def find(obj: dict, directory: Path, name: str) -> None:
    """Find the first node with NAME (depth-first, name order)."""
    merkle_tree = build_tree(obj["config"], directory)
    node = merkle_tree.find_node(name)
    if node is None:
        fail(f"No node named {name!r}")

    print_lines(
        [
            describe_node(node),
            f"Path: {node.path}",
            f"Hash: {node.hash}",
        ]
    )


@main.command()
@click.option("--write", is_flag=True, help="Save the effective config to the config file")
@click.pass_obj
def config(obj: dict, write: bool) -> None:
    """Show the effective configuration."""
    effective: MTFSConfig = obj["config"]

    table = Table(title="MTFS Configuration")
    table.add_column("Property", style="cyan")
    table.add_column("Value")
    for key, value in effective.model_dump().items():
        table.add_row(key, escape(str(value)))
    console.print(table)

    if write:
        path = save_config(effective, get_config_path(obj["config_path"]))
        console.print(f"[green]Saved {escape(str(path))}[/green]")


@main.command()
@click.pass_obj
def shell(obj: dict) -> None:
    """Interactive numbered-menu shell (for line-oriented front-ends)."""
    MerkleShell(MerkleTree.from_config(obj["config"]), console).run()


if __name__ == "__main__":
    main()
