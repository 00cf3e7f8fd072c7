"""Change detector — segment fingerprints and the persisted fingerprint store."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path

from loguru import logger

from segarc.models.segment import EntryKind, FileEntry

_READ_CHUNK = 1024 * 1024


def fingerprint(entries: list[FileEntry]) -> str:
    """
    SHA-256 over every entry, in resolver order.

    Each entry contributes its kind and relative path; files add size,
    mtime (ns) and full content, symlinks add their target. Entries that
    cannot be read are left out, as the archiver leaves them out.
    """
    digest = hashlib.sha256()
    for entry in entries:
        if entry.kind == EntryKind.FILE:
            try:
                _hash_file(digest, entry)
            except OSError as e:
                logger.warning(f"Failed to hash {entry.path}, leaving it out: {e}")
            continue
        _update(digest, entry.kind, entry.relative)
        if entry.kind == EntryKind.SYMLINK:
            _update(digest, entry.link_target)
    return digest.hexdigest()


def _hash_file(digest: "hashlib._Hash", entry: FileEntry) -> None:
    # Hash into a scratch copy so a read failure halfway leaves ``digest`` untouched
    scratch = hashlib.sha256()
    with open(entry.path, "rb") as f:
        st = os.fstat(f.fileno())
        _update(scratch, entry.kind, entry.relative, str(st.st_size), str(st.st_mtime_ns))
        for chunk in iter(lambda: f.read(_READ_CHUNK), b""):
            scratch.update(chunk)
    _update(digest, scratch.hexdigest())


def _update(digest: "hashlib._Hash", *fields: str) -> None:
    for field in fields:
        digest.update(field.encode("utf-8", "surrogateescape"))
        digest.update(b"\x00")


class FingerprintStore:
    """
    Last successfully archived fingerprint per segment.

    Backed by a ``name=digest`` text file, one line per segment, sorted by
    name. Without a path the store lives in memory only.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._hashes: dict[str, str] = self._load()

    @property
    def path(self) -> Path | None:
        return self._path

    def _load(self) -> dict[str, str]:
        hashes: dict[str, str] = {}
        if self._path is None or not self._path.exists():
            return hashes
        with open(self._path, encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                key, sep, value = line.partition("=")
                if not sep or not key.strip():
                    logger.warning(f"Invalid line in hash file (line {line_num}): {line}")
                    continue
                hashes[key.strip()] = value.strip()
        return hashes

    def _save(self) -> None:
        if self._path is None:
            return
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_name(self._path.name + ".tmp")
        try:
            with open(tmp, "w", encoding="utf-8") as f:
                for key in sorted(self._hashes):
                    f.write(f"{key}={self._hashes[key]}\n")
                f.flush()
                os.fsync(f.fileno())
            tmp.replace(self._path)
        except OSError:
            tmp.unlink(missing_ok=True)
            raise

    def get(self, name: str) -> str | None:
        return self._hashes.get(name)

    def should_skip(self, name: str, digest: str) -> bool:
        """True iff a prior fingerprint exists for ``name`` and equals ``digest``."""
        return self._hashes.get(name) == digest

    def commit(self, name: str, digest: str) -> None:
        """Record ``digest`` for ``name`` and persist immediately."""
        self._hashes[name] = digest
        self._persist()

    def _persist(self) -> None:
        try:
            self._save()
        except OSError as e:
            logger.error(f"Failed to write hashes to {self._path}: {e}")
            logger.info(f"New hashes (the hash file can be updated by hand): {self._hashes}")
            return
        if self._path is not None:
            logger.info(f"Updated hash file: {self._path}")
