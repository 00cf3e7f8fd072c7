"""Segment and resolved entry models."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from pathlib import Path


class EntryKind(StrEnum):
    """Kind of filesystem entry captured in an archive."""

    FILE = "file"
    DIRECTORY = "directory"
    SYMLINK = "symlink"


@dataclass(frozen=True)
class Segment:
    """Named unit of backup; ``name`` doubles as the archive base filename."""

    name: str
    root_path: Path

    @property
    def archive_name(self) -> str:
        return f"{self.name}.tar.gz"


@dataclass(frozen=True)
class FileEntry:
    """Single entry of a segment's resolved file set."""

    path: Path  # Absolute path on disk
    relative: str  # POSIX path inside the archive
    kind: EntryKind
    link_target: str = ""  # Only set for symlinks
