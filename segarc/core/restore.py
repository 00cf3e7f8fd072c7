"""Restore manager — recombine parts, extract archives and place them."""

from __future__ import annotations

import json
import os
import re
import shutil
import tarfile
import tempfile
from pathlib import Path, PurePosixPath

from loguru import logger

from segarc.core.archiver import ARCHIVE_SUFFIX, MARKER_NAME
from segarc.core.resolver import is_within
from segarc.models.restore_record import (
    ArchiveGroup,
    ArchiveRestore,
    PlacementKind,
    RestoreResult,
)

_PART_RE = re.compile(r"^(?P<base>.+" + re.escape(ARCHIVE_SUFFIX) + r")\.part(?P<num>\d+)$")
_PARTIAL_SUFFIX = ".combining"
_COPY_BUFSIZE = 1024 * 1024
_DEFAULT_SCRATCH = Path(tempfile.gettempdir()) / "segmented_archive"


class MarkerMissingError(Exception):
    """The archive has no marker record, so it was not produced by segarc."""


def discover_archives(source_dir: Path) -> list[ArchiveGroup]:
    """
    Group ``*.tar.gz`` and ``*.tar.gz.partNNN`` files by base name.

    A journaled ``*.tar.gz.combining`` file with its parts already consumed
    is picked up too, so an interrupted combine can still finish.
    """
    groups: dict[str, ArchiveGroup] = {}
    for path in sorted(Path(source_dir).iterdir()):
        if not path.is_file():
            continue
        match = _PART_RE.match(path.name)
        if match:
            base = match.group("base")
            group = groups.setdefault(base, ArchiveGroup(base_path=path.with_name(base)))
            group.parts.append((int(match.group("num")), path))
        elif path.name.endswith(ARCHIVE_SUFFIX):
            groups.setdefault(path.name, ArchiveGroup(base_path=path))
        elif path.name.endswith(ARCHIVE_SUFFIX + _PARTIAL_SUFFIX):
            base_path = path.with_name(path.name.removesuffix(_PARTIAL_SUFFIX))
            # A complete base archive wins over a leftover partial one
            if _journal_path(base_path).exists() and not base_path.exists():
                group = groups.setdefault(base_path.name, ArchiveGroup(base_path=base_path))
                group.interrupted = True
    for group in groups.values():
        group.parts.sort(key=lambda item: item[0])
    return [groups[name] for name in sorted(groups)]


def _journal_path(base_path: Path) -> Path:
    return base_path.with_name(base_path.name + ".combine.json")


def _partial_path(base_path: Path) -> Path:
    return base_path.with_name(base_path.name + _PARTIAL_SUFFIX)


class RestoreManager:
    """
    Rebuild a tree from a directory of segment archives.

    Each base name goes through combine, extract, classify, place and
    cleanup, one at a time. A missing marker or a corrupt archive fails that
    archive only; the rest are still processed.
    """

    def __init__(self, scratch_root: Path | None = None, remove_sources: bool = True) -> None:
        self._scratch_root = Path(scratch_root) if scratch_root else _DEFAULT_SCRATCH
        self._remove_sources = remove_sources

    def restore_all(self, source_dir: Path, restore_root: Path) -> RestoreResult:
        source_dir = Path(source_dir)
        restore_root = Path(restore_root)
        logger.info(f"--- Restoring files from {source_dir} to {restore_root} ---")

        result = RestoreResult()
        for group in discover_archives(source_dir):
            result.archives.append(self.restore_group(group, restore_root))

        logger.info(f"Restored {len(result.restored)} archive(s), {len(result.failed)} failed")
        return result

    def restore_group(self, group: ArchiveGroup, restore_root: Path) -> ArchiveRestore:
        outcome = ArchiveRestore(name=group.segment_name)
        try:
            if group.is_split:
                self.combine_parts(group)
            self._extract_and_place(group, restore_root, outcome)
        except (MarkerMissingError, tarfile.TarError, OSError, ValueError) as e:
            outcome.error = str(e)
            logger.error(f"Failed to restore {group.base_path.name}: {e}")
        return outcome

    # ── Combine ──

    def combine_parts(self, group: ArchiveGroup) -> Path:
        """
        Concatenate parts in numeric order into the base archive.

        Progress is journaled after every append, before that part is
        removed, so an interrupted combine resumes where it stopped.
        """
        base_path = group.base_path
        partial = _partial_path(base_path)
        journal = _journal_path(base_path)

        last_part, size = self._read_journal(journal)
        if last_part and partial.exists():
            logger.info(f"Resuming combine of {base_path.name} after part {last_part:03d}")
        else:
            last_part, size = 0, 0

        logger.info(f"> Combining {len(group.parts)} file(s) into {base_path}")
        with open(partial, "ab") as out:
            out.truncate(size)
            for number, part in group.parts:
                if number <= last_part:
                    # Appended before the interruption, removal did not happen
                    if self._remove_sources:
                        part.unlink(missing_ok=True)
                    continue
                with open(part, "rb") as src:
                    shutil.copyfileobj(src, out, _COPY_BUFSIZE)
                out.flush()
                os.fsync(out.fileno())
                size = out.tell()
                self._write_journal(journal, number, size)
                logger.info(f"  Moved {part.name} >> {base_path.name}")
                if self._remove_sources:
                    part.unlink()

        partial.replace(base_path)
        journal.unlink(missing_ok=True)
        return base_path

    @staticmethod
    def _read_journal(journal: Path) -> tuple[int, int]:
        if not journal.exists():
            return 0, 0
        try:
            with open(journal, encoding="utf-8") as f:
                data = json.load(f)
            return int(data["last_part"]), int(data["size"])
        except (json.JSONDecodeError, OSError, KeyError, TypeError, ValueError) as e:
            logger.warning(f"Ignoring unreadable combine journal {journal}: {e}")
            return 0, 0

    @staticmethod
    def _write_journal(journal: Path, last_part: int, size: int) -> None:
        tmp = journal.with_suffix(".tmp")
        with open(tmp, "w", encoding="utf-8") as f:
            json.dump({"last_part": last_part, "size": size}, f)
        tmp.replace(journal)

    # ── Extract / classify / place ──

    def _extract_and_place(self, group: ArchiveGroup, restore_root: Path, outcome: ArchiveRestore) -> None:
        archive = group.base_path
        scratch = self._scratch_root / group.segment_name
        logger.info(f"> Extracting {archive}...")
        shutil.rmtree(scratch, ignore_errors=True)
        scratch.mkdir(parents=True)
        try:
            self._extract(archive, scratch)
            marker = scratch / MARKER_NAME
            if not marker.is_file():
                raise MarkerMissingError(f"Path file ({MARKER_NAME}) not found in archive: {archive}")
            relative = marker.read_text(encoding="utf-8").strip()
            marker.unlink()

            destination = restore_root / relative.lstrip("/")
            if not is_within(Path(os.path.abspath(destination)), Path(os.path.abspath(restore_root))):
                raise ValueError(f"Marker path '{relative}' points outside restore root {restore_root}")
            placement = classify_payload(scratch, relative)
            outcome.destination = destination
            outcome.placement = placement
            logger.info(f"  Restoring {placement} segment to {destination}")
            if placement == PlacementKind.FILE:
                outcome.restored_files = self._place_file(next(scratch.iterdir()), destination)
            else:
                outcome.restored_files = self._place_directory(scratch, destination)
        finally:
            shutil.rmtree(scratch, ignore_errors=True)

        if self._remove_sources or group.is_split:
            archive.unlink(missing_ok=True)
            logger.info(f"  Removed tar file: {archive}")

    @staticmethod
    def _extract(archive: Path, scratch: Path) -> None:
        with tarfile.open(archive, "r:gz") as tar:
            for member in tar.getmembers():
                name = PurePosixPath(member.name)
                if name.is_absolute() or ".." in name.parts:
                    raise ValueError(f"Tar member '{member.name}' would extract outside {scratch}")
            tar.extractall(scratch, filter="tar")

    @staticmethod
    def _place_file(source: Path, destination: Path) -> list[str]:
        destination.parent.mkdir(parents=True, exist_ok=True)
        if destination.is_dir() and not destination.is_symlink():
            raise OSError(f"Cannot restore file over existing directory {destination}")
        shutil.move(str(source), str(destination))
        return [str(destination)]

    @staticmethod
    def _place_directory(scratch: Path, destination: Path) -> list[str]:
        destination.mkdir(parents=True, exist_ok=True)
        restored: list[str] = []
        conflicts: list[str] = []
        for current, dirnames, filenames in os.walk(scratch):
            current_path = Path(current)
            target_dir = destination / current_path.relative_to(scratch)
            target_dir.mkdir(parents=True, exist_ok=True)
            # Symlinks to directories show up in dirnames but must move as links
            links = [d for d in dirnames if (current_path / d).is_symlink()]
            dirnames[:] = sorted(d for d in dirnames if d not in links)
            for name in sorted(filenames + links):
                target = target_dir / name
                if target.is_dir() and not target.is_symlink():
                    logger.error(f"  Not replacing existing directory {target} with a file")
                    conflicts.append(str(target))
                    continue
                if target.is_symlink():
                    target.unlink()
                shutil.move(str(current_path / name), str(target))
                restored.append(str(target))
        if conflicts:
            # The source archive must survive a partial placement
            raise OSError(f"{len(conflicts)} file(s) blocked by existing directories: {', '.join(conflicts)}")
        return restored


def classify_payload(scratch: Path, marker_relative: str) -> PlacementKind:
    """
    Decide whether an extracted payload is a single-file or directory segment.

    A file segment extracts to exactly one non-directory entry named like the
    marker path's final component. Anything else is a directory segment.
    """
    entries = [p for p in scratch.iterdir() if p.name != MARKER_NAME]
    if len(entries) == 1:
        only = entries[0]
        expected = PurePosixPath(marker_relative.strip("/")).name
        if only.name == expected and (only.is_symlink() or not only.is_dir()):
            return PlacementKind.FILE
    return PlacementKind.DIRECTORY
