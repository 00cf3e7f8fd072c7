"""Command line entry point: ``segarc archive`` and ``segarc restore``."""

from __future__ import annotations

import argparse
from pathlib import Path

from loguru import logger

from segarc.config import DEFAULT_CONFIG_PATH, load_config
from segarc.context import create_context
from segarc.core.restore import RestoreManager
from segarc.errors import ArchiveSinkError, ConfigError, RunAbortedError
from segarc.logger import setup_logger

EXIT_OK = 0
EXIT_RESTORE_FAILED = 1
EXIT_CONFIG = 2
EXIT_ABORTED = 3
EXIT_ARCHIVE = 4


def cmd_archive(config_path: Path) -> int:
    setup_logger()
    try:
        config = load_config(config_path)
        setup_logger(config.log_file)
        context = create_context(config)
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG
    except OSError as e:
        logger.error(f"Failed to prepare run: {e}")
        return EXIT_CONFIG

    try:
        context.engine.run()
    except RunAbortedError as e:
        logger.error(str(e))
        return EXIT_ABORTED
    except ArchiveSinkError as e:
        logger.error(str(e))
        return EXIT_ARCHIVE
    return EXIT_OK


def cmd_restore(source_dir: Path, restore_root: Path, keep_sources: bool, scratch: Path | None) -> int:
    setup_logger()
    if not source_dir.is_dir():
        logger.error(f"Archive directory not found: {source_dir}")
        return EXIT_CONFIG
    manager = RestoreManager(scratch_root=scratch, remove_sources=not keep_sources)
    result = manager.restore_all(source_dir, restore_root)
    for name in result.failed:
        logger.error(f"Archive failed to restore: {name}")
    return EXIT_OK if result.success else EXIT_RESTORE_FAILED


def main(argv: list[str] | None = None) -> int:
    ap = argparse.ArgumentParser(
        prog="segarc",
        description="Segmented, incremental tar.gz archiving with split parts",
    )
    sub = ap.add_subparsers(dest="cmd", required=True)

    ap_archive = sub.add_parser("archive", help="Archive every configured segment")
    ap_archive.add_argument(
        "config",
        nargs="?",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help=f"Config TOML path (default: {DEFAULT_CONFIG_PATH})",
    )

    ap_restore = sub.add_parser("restore", help="Rebuild a tree from a directory of archives")
    ap_restore.add_argument("source", type=Path, help="Directory containing .tar.gz / .partNNN files")
    ap_restore.add_argument("restore_root", type=Path, help="Root path to restore to")
    ap_restore.add_argument("--keep-sources", action="store_true", help="Keep archives and part files after restoring")
    ap_restore.add_argument("--scratch", type=Path, help="Scratch directory used for extraction")

    args = ap.parse_args(argv)
    if args.cmd == "archive":
        return cmd_archive(args.config)
    return cmd_restore(args.source, args.restore_root, args.keep_sources, args.scratch)
