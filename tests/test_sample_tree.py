"""End-to-end run over the generated sample tree."""

from __future__ import annotations

import os
from pathlib import Path

from segarc.config import load_config
from segarc.context import create_context
from segarc.core.restore import RestoreManager
from segarc.models.run_result import SegmentStatus
from tools.make_sample_tree import build_sample_tree


class TestSampleTree:
    def test_archive_restore_and_skip(self, tmp_path: Path) -> None:
        config_path = build_sample_tree(tmp_path, large_mib=1)
        config = load_config(config_path)
        files = tmp_path / "files"

        summary = create_context(config).engine.run()
        assert summary.archived == ["test_base", "large_file", "nested_dir", "symlinks"]
        assert summary.warning_count == 0

        result = RestoreManager(scratch_root=tmp_path / "scratch").restore_all(
            tmp_path / "archives", tmp_path / "restored"
        )
        restored = tmp_path / "restored"
        assert result.success
        assert (restored / "test_file_42.txt").read_text(encoding="utf-8") == "This is a test file 42\n"
        assert (restored / "test_dir_1" / "test_file_large_01.bin").read_bytes() == (
            files / "test_dir_1" / "test_file_large_01.bin"
        ).read_bytes()
        assert (restored / "test_dir_2" / "nest_a" / "nest_b" / "nest_c").is_dir()
        assert (restored / "test_dir_2" / ".hidden_file.txt").exists()
        assert os.readlink(restored / "test_dir_3" / "broken_symlink.txt") == "non_existent_file.txt"
        assert os.readlink(restored / "test_dir_3" / "symlink_to_dir") == "symlink_dir_target"
        assert not (restored / "test_dir_4").exists()
        assert not (restored / "test_dir_5" / "test_file.ignore").exists()

        # Only the touched segment is archived again
        with open(files / "test_file_1.txt", "a", encoding="utf-8") as f:
            f.write("x\n")
        summary = create_context(config).engine.run()
        assert summary.archived == ["test_base"]
        assert summary.skipped == ["large_file", "nested_dir", "symlinks"]
        assert (tmp_path / "skip_log.txt").read_text(encoding="utf-8").splitlines() == [
            f"Path skipped: {tmp_path / 'archives' / name}.tar.gz" for name in ("large_file", "nested_dir", "symlinks")
        ]
