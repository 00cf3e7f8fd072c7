"""Tests for the segarc command line."""

from __future__ import annotations

import stat
from pathlib import Path

import pytest

from segarc.cli import EXIT_ABORTED, EXIT_CONFIG, EXIT_OK, EXIT_RESTORE_FAILED, main


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    data = tmp_path / "src" / "data"
    data.mkdir(parents=True)
    (data / "file.txt").write_text("hello", encoding="utf-8")
    return tmp_path


def _write_config(workspace: Path, **extra: str) -> Path:
    lines = [
        f'output_path = "{workspace / "out"}"',
        f'root_path = "{workspace / "src"}"',
        f'hash_file = "{workspace / "hashes.txt"}"',
        f'log_file = "{workspace / "logs" / "backup-%D.log"}"',
    ]
    lines += [f'{key} = "{value}"' for key, value in extra.items()]
    lines += ["", "[segments]", f'data = "{workspace / "src" / "data"}"']
    path = workspace / "config.toml"
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class TestArchiveCommand:
    def test_archive_then_restore(self, workspace: Path) -> None:
        config = _write_config(workspace)
        assert main(["archive", str(config)]) == EXIT_OK
        assert (workspace / "out" / "data.tar.gz").is_file()
        assert len(list((workspace / "logs").glob("backup-*.log"))) == 1

        code = main(["restore", str(workspace / "out"), str(workspace / "restore"), "--scratch", str(workspace / "s")])
        assert code == EXIT_OK
        assert (workspace / "restore" / "data" / "file.txt").read_text(encoding="utf-8") == "hello"

    def test_missing_config(self, tmp_path: Path) -> None:
        assert main(["archive", str(tmp_path / "missing.toml")]) == EXIT_CONFIG

    def test_panic_script_exit_code(self, workspace: Path) -> None:
        script = workspace / "panic.sh"
        script.write_text("#!/bin/sh\nexit 200\n", encoding="utf-8")
        script.chmod(script.stat().st_mode | stat.S_IXUSR)
        config = _write_config(workspace, post_script=str(script))
        assert main(["archive", str(config)]) == EXIT_ABORTED


class TestRestoreCommand:
    def test_missing_source_dir(self, tmp_path: Path) -> None:
        assert main(["restore", str(tmp_path / "none"), str(tmp_path / "restore")]) == EXIT_CONFIG

    def test_failed_archive(self, tmp_path: Path) -> None:
        source = tmp_path / "archives"
        source.mkdir()
        (source / "broken.tar.gz").write_bytes(b"not a gzip stream")
        code = main(["restore", str(source), str(tmp_path / "restore"), "--scratch", str(tmp_path / "s")])
        assert code == EXIT_RESTORE_FAILED
        assert (source / "broken.tar.gz").exists()

    def test_keep_sources(self, workspace: Path) -> None:
        assert main(["archive", str(_write_config(workspace))]) == EXIT_OK
        args = ["restore", str(workspace / "out"), str(workspace / "restore"), "--keep-sources"]
        assert main(args + ["--scratch", str(workspace / "s")]) == EXIT_OK
        assert (workspace / "out" / "data.tar.gz").exists()

    def test_subcommand_required(self) -> None:
        with pytest.raises(SystemExit):
            main([])
