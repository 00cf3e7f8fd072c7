"""Segment resolver — compute each segment's ordered entry set."""

from __future__ import annotations

import fnmatch
import os
from pathlib import Path, PurePosixPath

from loguru import logger

from segarc.models.segment import EntryKind, FileEntry, Segment

_GLOB_CHARS = frozenset("*?[")


def is_within(path: Path, root: Path) -> bool:
    """True if ``path`` equals ``root`` or lies beneath it (component-wise)."""
    return path == root or root in path.parents


class IgnoreMatcher:
    """
    Ignore rules shared by every segment.

    A rule without glob characters is a literal: it matches an entry at or
    beneath that path (absolute, or relative to the segment root), or any
    entry whose basename equals it. A glob
    rule matches the basename, the absolute path or the segment-relative path.
    """

    def __init__(self, rules: list[str] | None = None) -> None:
        self._literals: list[str] = []
        self._globs: list[str] = []
        for rule in rules or []:
            rule = rule.strip()
            if not rule:
                continue
            if _GLOB_CHARS.intersection(rule):
                self._globs.append(rule)
            else:
                self._literals.append(rule.rstrip("/") or "/")

    def __bool__(self) -> bool:
        return bool(self._literals or self._globs)

    def matches(self, path: Path, relative: str = "") -> bool:
        name = path.name
        for literal in self._literals:
            if name == literal:
                return True
            if os.path.isabs(literal):
                if is_within(path, Path(literal)):
                    return True
            elif relative and (relative == literal or relative.startswith(literal + "/")):
                return True
        full = path.as_posix()
        for pattern in self._globs:
            if fnmatch.fnmatchcase(name, pattern) or fnmatch.fnmatchcase(full, pattern):
                return True
            if relative and PurePosixPath(relative).match(pattern):
                return True
        return False


def exclusion_roots(segment: Segment, segments: list[Segment]) -> list[Path]:
    """Roots of other segments nested at or beneath ``segment``'s root."""
    root = _absolute(segment.root_path)
    return [
        other_root
        for other in segments
        if other.name != segment.name
        for other_root in [_absolute(other.root_path)]
        if is_within(other_root, root)
    ]


def _absolute(path: Path) -> Path:
    return Path(os.path.abspath(path))


class SegmentResolver:
    """
    Resolve configured segments into ordered entry lists.

    Entries under another segment's root belong to that segment only, no
    matter which segment is declared first. Directory listings are sorted so
    the fingerprint and the archive see the same order on every run.
    """

    def __init__(self, segments: list[Segment], ignore: IgnoreMatcher | None = None) -> None:
        self._segments = list(segments)
        self._ignore = ignore or IgnoreMatcher()

    def resolve(self) -> dict[str, list[FileEntry]]:
        """Resolve every segment; missing roots yield an empty list."""
        return {segment.name: self.resolve_segment(segment) for segment in self._segments}

    def resolve_segment(self, segment: Segment) -> list[FileEntry]:
        root = _absolute(segment.root_path)
        excluded = exclusion_roots(segment, self._segments)
        if excluded:
            logger.debug(f"Segment '{segment.name}' excludes nested roots: {[str(p) for p in excluded]}")

        if not os.path.lexists(root):
            logger.error(f"Path not found for segment '{segment.name}': {root}")
            return []

        if os.path.islink(root) or not root.is_dir():
            if self._ignore.matches(root, root.name):
                logger.info(f"Segment '{segment.name}' root is ignored: {root}")
                return []
            entry = self._make_entry(root, root.name)
            return [entry] if entry is not None else []

        entries: list[FileEntry] = []
        self._walk(root, root, excluded, entries)
        return entries

    # ── Walking ──

    def _walk(self, base: Path, current: Path, excluded: list[Path], out: list[FileEntry]) -> None:
        try:
            with os.scandir(current) as it:
                children = sorted(it, key=lambda e: e.name)
        except OSError as e:
            logger.warning(f"Skipping unreadable directory {current}: {e}")
            return

        if not children and current != base:
            out.append(FileEntry(current, current.relative_to(base).as_posix(), EntryKind.DIRECTORY))
            return

        for child in children:
            path = Path(child.path)
            if any(is_within(path, ex) for ex in excluded):
                logger.debug(f"Skipping path owned by another segment: {path}")
                continue
            relative = path.relative_to(base).as_posix()
            if self._ignore.matches(path, relative):
                logger.debug(f"Ignoring path: {path}")
                continue
            try:
                is_dir = child.is_dir(follow_symlinks=False)
            except OSError as e:
                logger.warning(f"Skipping unreadable entry {path}: {e}")
                continue
            if is_dir:
                self._walk(base, path, excluded, out)
                continue
            entry = self._make_entry(path, relative)
            if entry is not None:
                out.append(entry)

    def _make_entry(self, path: Path, relative: str) -> FileEntry | None:
        try:
            if os.path.islink(path):
                return FileEntry(path, relative, EntryKind.SYMLINK, link_target=os.readlink(path))
            if path.is_file():
                return FileEntry(path, relative, EntryKind.FILE)
        except OSError as e:
            logger.warning(f"Skipping unreadable entry {path}: {e}")
            return None
        logger.warning(f"Skipping unsupported file type: {path}")
        return None
