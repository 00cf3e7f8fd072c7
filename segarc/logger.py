"""Loguru-based logging setup."""

from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path

from loguru import logger


def replace_placeholders(path: str | Path, now: datetime | None = None) -> Path:
    """Expand ``%D`` in a log path to the current local date (YYYYMMDD)."""
    now = now or datetime.now()
    return Path(str(path).replace("%D", now.strftime("%Y%m%d")))


def setup_logger(log_file: str | Path | None = None, level: str = "INFO") -> Path | None:
    """Configure loguru with console output and an optional appending log file.

    Returns the resolved log file path, if one was configured.
    """
    logger.remove()

    # Console
    logger.add(
        sys.stderr,
        level=level,
        format="<level>{level}</level> - {message}",
        colorize=True,
    )

    if not log_file:
        return None

    # File
    log_path = replace_placeholders(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logger.add(
        str(log_path),
        level=level,
        format="{time:YYYY-MM-DD HH:mm:ss.SSS} - {level} - {message}",
        mode="a",
        encoding="utf-8",
    )
    logger.info(f"Saving log to file: {log_path}")
    return log_path
