"""Generate a sample source tree and config for a manual end-to-end run.

The tree covers the interesting cases: many small files, one large random
file that spans several parts, ignored files, a nested child segment, hidden
files, and symlinks (to a file, to a directory, broken, and pointing up).

Usage:
    python -m tools.make_sample_tree [target] [--large-mib N]

Then:
    segarc archive <target>/sample.toml
    segarc restore <target>/archives <target>/restored
    diff -r <target>/files <target>/restored
"""

from __future__ import annotations

import argparse
import os
import stat
import sys
from pathlib import Path

POST_SCRIPT = """#!/bin/sh
# Called once per archive part.
# Exit 0 continues, 1-127 logs a warning, 128 and above stops the run.
echo "Saved archive: $(ls -l "$1")"
exit 0
"""

SKIP_SCRIPT = """#!/bin/sh
# Called with the base archive path of an unchanged segment; that file is not created.
echo "Path skipped: $1" >> "{log}"
"""


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def _script(path: Path, body: str) -> Path:
    _write(path, body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


def build_sample_tree(target: Path, large_mib: int = 50) -> Path:
    """Create ``target/files`` plus scripts and ``target/sample.toml``; return the config path."""
    files = target / "files"

    for i in range(1, 11):
        for j in range(1, 11):
            _write(files / f"test_dir_{i}" / f"test_file_{j}.txt", f"This is a test file {j} in directory test_dir_{i}\n")
    for i in range(1, 101):
        _write(files / f"test_file_{i}.txt", f"This is a test file {i}\n")

    with open(files / "test_dir_1" / "test_file_large_01.bin", "wb") as f:
        for _ in range(large_mib):
            f.write(os.urandom(1024 * 1024))

    _write(files / "test_dir_5" / "test_file.ignore", "This is a file that should be ignored\n")
    _write(files / "test_dir_7" / "test_file.ignore", "This is a file that should be ignored\n")

    (files / "test_dir_2" / "nest_a" / "nest_b" / "nest_c").mkdir(parents=True, exist_ok=True)
    _write(files / "test_dir_2" / "nest_a" / "nest_b" / "test_file_nested.txt", "This is a test file in a nested directory\n")
    _write(files / "test_dir_2" / ".hidden_file.txt", "This is a hidden file\n")

    links = files / "test_dir_3"
    _write(links / "symlink_target.txt", "This is a target file for symlinks\n")
    _write(links / "symlink_dir_target" / "file.txt", "File inside symlink target directory\n")
    for name, dest in (
        ("symlink_to_file.txt", "symlink_target.txt"),
        ("symlink_to_dir", "symlink_dir_target"),
        ("broken_symlink.txt", "non_existent_file.txt"),
        ("symlink_to_parent.txt", "../test_dir_1/test_file_1.txt"),
    ):
        if not os.path.lexists(links / name):
            os.symlink(dest, links / name)

    post = _script(target / "post_script.sh", POST_SCRIPT)
    skip = _script(target / "skip_script.sh", SKIP_SCRIPT.format(log=target / "skip_log.txt"))

    config = target / "sample.toml"
    config.write_text(
        "\n".join(
            [
                f'output_path = "{target / "archives"}"',
                f'root_path = "{files}"',
                f'post_script = "{post}"',
                f'skip_script = "{skip}"',
                f'hash_file = "{target / "logs" / "sample.hash"}"',
                f'log_file = "{target / "logs" / "sample_log_%D.log"}"',
                "compression_level = 8",
                "max_size_bytes = 10485760",
                f'ignore = ["{files / "test_dir_4"}", "*.ignore"]',
                "",
                "[segments]",
                f'test_base = "{files}"',
                f'large_file = "{files / "test_dir_1"}"',
                f'nested_dir = "{files / "test_dir_2" / "nest_a" / "nest_b"}"',
                f'symlinks = "{links}"',
                "",
            ]
        ),
        encoding="utf-8",
    )
    return config


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate a sample tree for segarc.")
    parser.add_argument(
        "target",
        nargs="?",
        default="/tmp/segmented_archive/sample",
        help="Directory to populate (default: /tmp/segmented_archive/sample)",
    )
    parser.add_argument("--large-mib", type=int, default=50, help="Size of the large random file in MiB")
    args = parser.parse_args()

    target = Path(args.target)
    if target.exists() and any(target.iterdir()):
        print(f"Error: target directory is not empty: {target}")
        return 1
    target.mkdir(parents=True, exist_ok=True)

    config = build_sample_tree(target, args.large_mib)
    print(f"Sample tree written to {target / 'files'}")
    print(f"Config: {config}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
