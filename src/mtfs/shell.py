"""Numbered-menu shell for driving the Merkle tree engine line by line.

External front-ends send an option number, then any follow-up input, and
recognise results by the fixed phrases printed here ("Merkle tree built
successfully", "Error:", "Tree integrity verified: OK", ...).
"""

from __future__ import annotations

import click
from rich.console import Console
from rich.markup import escape

from .display import printable, render_file_objects, render_stats, render_tree
from .errors import MTFSError
from .merkle import MerkleTree

MENU_TITLE = "==== Merkle Tree File System CLI ===="
MENU_ITEMS = [
    "Build Merkle tree from directory",
    "Print tree structure",
    "Print file objects",
    "Show statistics",
    "Verify tree integrity",
    "Export tree to JSON",
    "Set chunk size",
    "Exit",
]

BUILD, PRINT_TREE, PRINT_FILES, STATS, VERIFY, EXPORT, CHUNK_SIZE, EXIT = range(1, 9)

NEEDS_TREE = {PRINT_TREE, PRINT_FILES, STATS, VERIFY, EXPORT}


class MerkleShell:
    """Read-eval-print loop over a single MerkleTree."""

    def __init__(self, tree: MerkleTree, console: Console | None = None):
        self.tree = tree
        self.console = console or Console(soft_wrap=True)

    def run(self) -> None:
        """Loop until option 8 or end of input."""
        while True:
            self.print_menu()
            try:
                raw = click.prompt("Choose an option", default="", show_default=False)
                keep_going = self.dispatch(raw)
            except click.Abort:
                keep_going = False
                self.console.print()
                self.console.print("Exiting.")
            if not keep_going:
                return

    def print_menu(self) -> None:
        self.console.print()
        self.console.print(MENU_TITLE, highlight=False)
        for number, label in enumerate(MENU_ITEMS, start=1):
            self.console.print(f"{number}. {label}", highlight=False)

    def dispatch(self, raw: str) -> bool:
        """Run one menu option. Returns False when the shell should exit."""
        try:
            choice = int(raw.strip())
        except ValueError:
            choice = None

        if choice not in range(BUILD, EXIT + 1):
            self.console.print("Invalid option. Try again.")
            return True

        if choice == EXIT:
            self.console.print("Exiting.")
            return False

        if choice in NEEDS_TREE and not self.tree.is_built:
            self.console.print("Build the tree first (option 1).")
            return True

        handlers = {
            BUILD: self.build,
            PRINT_TREE: self.print_tree,
            PRINT_FILES: self.print_files,
            STATS: self.show_stats,
            VERIFY: self.verify,
            EXPORT: self.export,
            CHUNK_SIZE: self.set_chunk_size,
        }
        handlers[choice]()
        return True

    def build(self) -> None:
        directory = click.prompt("Enter directory path")
        try:
            self.tree.build(directory.strip())
        except MTFSError as e:
            self.error(str(e))
            return
        self.console.print("[green]Merkle tree built successfully.[/green]")
        if self.tree.warnings:
            self.console.print(
                f"[yellow]Skipped {len(self.tree.warnings)} unreadable entries.[/yellow]"
            )

    def print_tree(self) -> None:
        self.print_lines(render_tree(self.tree.root))

    def print_files(self) -> None:
        self.print_lines(render_file_objects(self.tree))

    def show_stats(self) -> None:
        self.print_lines(render_stats(self.tree))

    def verify(self) -> None:
        if self.tree.verify():
            self.console.print("[green]Tree integrity verified: OK[/green]")
        else:
            self.console.print("[red]Tree integrity check FAILED![/red]")

    def export(self) -> None:
        click.echo(self.tree.export_bytes())

    def set_chunk_size(self) -> None:
        raw = click.prompt("Enter new chunk size in bytes")
        try:
            self.tree.set_chunk_size(int(raw.strip()))
        except ValueError as e:
            # InvalidChunkSize is a ValueError too
            message = str(e) if isinstance(e, MTFSError) else f"Invalid chunk size: {raw.strip()!r}"
            self.error(message)
            return
        self.console.print(f"Chunk size set to {self.tree.chunk_size} bytes.")

    def print_lines(self, lines: list[str]) -> None:
        for line in lines:
            self.console.print(escape(printable(line)), highlight=False)

    def error(self, message: str) -> None:
        self.console.print(f"[red]Error:[/red] {escape(printable(message))}")
