"""Integration tests for the mtfs command line and the interactive shell."""

import json
from pathlib import Path

from mtfs.cli import main
from mtfs.hashing import digest
from mtfs.merkle import MerkleTree


def run_shell(cli_runner, *lines: str):
    """Drive ``mtfs shell`` with one input line per argument."""
    return cli_runner.invoke(main, ["shell"], input="".join(f"{line}\n" for line in lines))


class TestCLIEntry:
    """Tests for the CLI entry point."""

    def test_version_flag(self, cli_runner):
        """--version shows version info."""
        result = cli_runner.invoke(main, ["--version"])
        assert result.exit_code == 0
        assert "mtfs" in result.output
        assert "0.1.0" in result.output

    def test_help_flag(self, cli_runner):
        """--help lists the commands."""
        result = cli_runner.invoke(main, ["--help"])
        assert result.exit_code == 0
        assert "Merkle Tree File System" in result.output
        for command in ["build", "tree", "files", "stats", "verify", "export", "find", "shell"]:
            assert command in result.output

    def test_invalid_chunk_size(self, cli_runner, project: Path):
        result = cli_runner.invoke(main, ["--chunk-size", "10", "build", str(project)])
        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "Invalid chunk size 10" in result.output

    def test_invalid_config_file(self, cli_runner, project: Path, tmp_path: Path):
        config = tmp_path / "bad.json"
        config.write_text(json.dumps({"chunk_size": 5}))

        result = cli_runner.invoke(main, ["--config", str(config), "stats", str(project)])
        assert result.exit_code == 1
        assert "Error:" in result.output


class TestOneShotCommands:
    def test_build(self, cli_runner, project: Path):
        result = cli_runner.invoke(main, ["build", str(project)])

        assert result.exit_code == 0, result.output
        assert "Merkle tree built successfully" in result.output
        assert "=== Tree Structure ===" in result.output
        assert "Total files: 5" in result.output
        assert "Content Hash:" in result.output

    def test_build_missing_path(self, cli_runner, tmp_path: Path):
        result = cli_runner.invoke(main, ["build", str(tmp_path / "nope")])

        assert result.exit_code == 1
        assert "Error:" in result.output
        assert "Path does not exist" in result.output
        assert "built successfully" not in result.output

    def test_build_file_path(self, cli_runner, project: Path):
        result = cli_runner.invoke(main, ["tree", str(project / "README.md")])
        assert result.exit_code == 1
        assert "Path is not a directory" in result.output

    def test_tree(self, cli_runner, project: Path):
        result = cli_runner.invoke(main, ["tree", str(project)])

        assert result.exit_code == 0
        assert "├─ README.md (File, Size: 58 bytes" in result.output
        assert "└─ docs (Directory, Children: 2" in result.output

    def test_files(self, cli_runner, project: Path):
        result = cli_runner.invoke(main, ["files", str(project)])

        assert result.exit_code == 0
        assert result.output.count("Content Hash:") == 4
        assert "  File: records.csv" in result.output

    def test_stats(self, cli_runner, project: Path):
        result = cli_runner.invoke(main, ["stats", str(project)])

        tree = MerkleTree()
        tree.build(project)
        assert result.exit_code == 0
        assert "Total files: 5" in result.output
        assert "Total directories: 4" in result.output
        assert "Total size: 169 B" in result.output
        assert "Tree depth: 3" in result.output
        assert f"Root hash: {tree.root.hash}" in result.output

    def test_chunk_size_option(self, cli_runner, tmp_path: Path):
        root = tmp_path / "r"
        root.mkdir()
        (root / "big.bin").write_bytes(b"\1" * 5000)

        result = cli_runner.invoke(main, ["--chunk-size", "1024", "tree", str(root)])
        assert result.exit_code == 0
        assert "[5 chunks]" in result.output

    def test_find(self, cli_runner, project: Path):
        result = cli_runner.invoke(main, ["find", str(project), "records.csv"])

        assert result.exit_code == 0
        assert "Path: data/archive/records.csv" in result.output

    def test_find_missing(self, cli_runner, project: Path):
        result = cli_runner.invoke(main, ["find", str(project), "nothing"])
        assert result.exit_code == 1
        assert "No node named 'nothing'" in result.output

    def test_excluded_by_config(self, cli_runner, project: Path, tmp_path: Path):
        config = tmp_path / "mtfs.json"
        config.write_text(json.dumps({"exclude_patterns": ["data"]}))

        result = cli_runner.invoke(main, ["--config", str(config), "stats", str(project)])
        assert result.exit_code == 0
        assert "Total files: 3" in result.output


class TestVerifyCommand:
    def test_verify_ok(self, cli_runner, project: Path):
        result = cli_runner.invoke(main, ["verify", str(project)])
        assert result.exit_code == 0
        assert "Tree integrity verified: OK" in result.output

    def test_verify_check_disk(self, cli_runner, project: Path):
        result = cli_runner.invoke(main, ["verify", "--check-disk", str(project)])
        assert result.exit_code == 0
        assert "Tree integrity verified: OK" in result.output

    def test_verify_against_unchanged_export(self, cli_runner, project: Path, tmp_path: Path):
        export_file = tmp_path / "tree.json"
        cli_runner.invoke(main, ["export", str(project), "-o", str(export_file)])

        result = cli_runner.invoke(main, ["verify", str(project), "--against", str(export_file)])
        assert result.exit_code == 0
        assert "No changes since export" in result.output

    def test_verify_against_changed_tree(self, cli_runner, project: Path, tmp_path: Path):
        export_file = tmp_path / "tree.json"
        cli_runner.invoke(main, ["export", str(project), "-o", str(export_file)])
        (project / "docs" / "notes.txt").write_text("rewritten\n")
        (project / "NEW.md").write_text("new\n")

        result = cli_runner.invoke(main, ["verify", str(project), "--against", str(export_file)])
        assert result.exit_code == 1
        assert "Changes Since Export" in result.output
        assert "docs/notes.txt" in result.output
        assert "NEW.md" in result.output
        assert "Root hash changed" in result.output

    def test_verify_against_invalid_file(self, cli_runner, project: Path, tmp_path: Path):
        bad = tmp_path / "bad.json"
        bad.write_text("not json")

        result = cli_runner.invoke(main, ["verify", str(project), "--against", str(bad)])
        assert result.exit_code == 1
        assert "Invalid export file" in result.output

    def test_verify_against_non_object_export(self, cli_runner, project: Path, tmp_path: Path):
        bad = tmp_path / "list.json"
        bad.write_text("[1, 2]")

        result = cli_runner.invoke(main, ["verify", str(project), "--against", str(bad)])
        assert result.exit_code == 1
        assert result.exception is None or isinstance(result.exception, SystemExit)
        assert "Error:" in result.output
        assert "Malformed export at .: expected an object, got list" in result.output


class TestExportCommand:
    def test_export_stdout(self, cli_runner, tmp_path: Path):
        root = tmp_path / "one"
        root.mkdir()
        (root / "a.txt").write_text("hello")

        result = cli_runner.invoke(main, ["export", str(root)])

        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["one"]["children"]["a.txt"]["content_hash"] == digest(b"hello")
        assert '\n  "one": {\n' in result.output

    def test_export_compact(self, cli_runner, project: Path):
        result = cli_runner.invoke(main, ["export", "--compact", str(project)])

        assert result.exit_code == 0
        assert result.output.count("\n") == 1
        assert result.output.startswith("{")
        assert "project" in json.loads(result.output)

    def test_export_to_file(self, cli_runner, project: Path, tmp_path: Path):
        output = tmp_path / "out" / "tree.json"

        result = cli_runner.invoke(main, ["export", str(project), "--output", str(output)])

        assert result.exit_code == 0
        assert "Exported to" in result.output
        assert json.loads(output.read_text())["project"]["type"] == "directory"


class TestConfigCommand:
    def test_show_config(self, cli_runner, tmp_path: Path):
        result = cli_runner.invoke(main, ["--config", str(tmp_path / "mtfs.json"), "config"])

        assert result.exit_code == 0
        assert "MTFS Configuration" in result.output
        assert "chunk_size" in result.output
        assert "1048576" in result.output

    def test_write_config(self, cli_runner, tmp_path: Path):
        path = tmp_path / "mtfs.json"

        result = cli_runner.invoke(
            main, ["--config", str(path), "--chunk-size", "4096", "config", "--write"]
        )

        assert result.exit_code == 0
        assert json.loads(path.read_text())["chunk_size"] == 4096


class TestShell:
    """The numbered menu driven line by line."""

    def test_menu_and_exit(self, cli_runner):
        result = run_shell(cli_runner, "8")

        assert result.exit_code == 0
        assert "==== Merkle Tree File System CLI ====" in result.output
        assert "1. Build Merkle tree from directory" in result.output
        assert "8. Exit" in result.output
        assert "Exiting." in result.output

    def test_end_of_input_exits(self, cli_runner):
        result = cli_runner.invoke(main, ["shell"], input="")
        assert result.exit_code == 0
        assert "Exiting." in result.output

    def test_invalid_option(self, cli_runner):
        result = run_shell(cli_runner, "9", "abc", "8")
        assert result.output.count("Invalid option. Try again.") == 2

    def test_requires_build_first(self, cli_runner):
        result = run_shell(cli_runner, "2", "3", "4", "5", "6", "8")
        assert result.output.count("Build the tree first (option 1).") == 5

    def test_build_and_inspect(self, cli_runner, project: Path):
        result = run_shell(cli_runner, "1", str(project), "2", "3", "4", "5", "8")

        assert result.exit_code == 0
        assert "Enter directory path:" in result.output
        assert "Merkle tree built successfully." in result.output
        assert "├─ README.md" in result.output
        assert "=== File Objects ===" in result.output
        assert "Total files: 5" in result.output
        assert "Tree integrity verified: OK" in result.output

    def test_build_error_keeps_shell_running(self, cli_runner, tmp_path: Path):
        result = run_shell(cli_runner, "1", str(tmp_path / "nope"), "4", "8")

        assert result.exit_code == 0
        assert "Error: Path does not exist" in result.output
        assert "Build the tree first (option 1)." in result.output

    def test_export(self, cli_runner, tmp_path: Path):
        root = tmp_path / "solo"
        root.mkdir()

        result = run_shell(cli_runner, "1", str(root), "6", "8")
        assert f'"hash": "{digest("solo")}"' in result.output

    def test_set_chunk_size(self, cli_runner):
        result = run_shell(cli_runner, "7", "4096", "8")
        assert "Chunk size set to 4096 bytes." in result.output

    def test_set_invalid_chunk_size(self, cli_runner):
        result = run_shell(cli_runner, "7", "12", "7", "lots", "8")

        assert "Error: Invalid chunk size 12" in result.output
        assert "Error: Invalid chunk size: 'lots'" in result.output
        assert "Chunk size set to" not in result.output
