"""Restore result models."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path


class PlacementKind(StrEnum):
    """How an extracted archive is placed under the restore root."""

    FILE = "file"
    DIRECTORY = "directory"


@dataclass
class ArchiveGroup:
    """One base archive name discovered in the source directory."""

    base_path: Path  # <dir>/<name>.tar.gz, may not exist yet
    parts: list[tuple[int, Path]] = field(default_factory=list)
    interrupted: bool = False  # a journaled .combining file is waiting to be finished

    @property
    def segment_name(self) -> str:
        return self.base_path.name.removesuffix(".tar.gz")

    @property
    def is_split(self) -> bool:
        return bool(self.parts) or self.interrupted


@dataclass
class ArchiveRestore:
    """Outcome of restoring a single archive."""

    name: str
    destination: Path | None = None
    placement: PlacementKind | None = None
    restored_files: list[str] = field(default_factory=list)
    error: str = ""

    @property
    def success(self) -> bool:
        return not self.error


@dataclass
class RestoreResult:
    """Result of a whole restore run."""

    archives: list[ArchiveRestore] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(a.success for a in self.archives)

    @property
    def restored(self) -> list[str]:
        return [a.name for a in self.archives if a.success]

    @property
    def failed(self) -> list[str]:
        return [a.name for a in self.archives if not a.success]
