"""Streaming archiver — marker record plus entries as one split tar.gz stream."""

from __future__ import annotations

import io
import os
import re
import tarfile
import zlib
from pathlib import Path

from loguru import logger

from segarc.core.rolling_writer import PartListener, RollingWriter
from segarc.models.segment import EntryKind, FileEntry, Segment

MARKER_NAME = ".seg_arc.path"
ARCHIVE_SUFFIX = ".tar.gz"
_COPY_BUFSIZE = 1024 * 1024
_PART_SUFFIX_RE = re.compile(r"\.part\d+$")


class GzipSink:
    """
    Single-member gzip encoder writing into another byte sink.

    The header carries no name and a zero mtime, so the same input and level
    always produce the same bytes.
    """

    def __init__(self, sink: RollingWriter, level: int) -> None:
        self._sink = sink
        self._compressor = zlib.compressobj(level, zlib.DEFLATED, 16 + zlib.MAX_WBITS)
        self._offset = 0

    def write(self, data: bytes) -> int:
        out = self._compressor.compress(data)
        if out:
            self._sink.write(out)
        self._offset += len(data)
        return len(data)

    def tell(self) -> int:
        return self._offset

    def close(self) -> None:
        self._sink.write(self._compressor.flush())


def marker_content(root_path: Path, base_root: Path | None) -> str:
    """Restore destination for a segment, relative to the restore root."""
    root = Path(os.path.abspath(root_path))
    if base_root is None:
        return root.as_posix()
    return root.relative_to(os.path.abspath(base_root)).as_posix()


def archive_base_path(output_dir: Path, segment: Segment) -> Path:
    return Path(output_dir) / segment.archive_name


def remove_stale_outputs(base_path: Path) -> list[Path]:
    """Delete ``base_path`` and any ``base_path.partNNN`` left by an earlier run."""
    removed: list[Path] = []
    prefix = base_path.name
    for path in sorted(base_path.parent.iterdir()):
        name = path.name
        if name == prefix or (name.startswith(prefix) and _PART_SUFFIX_RE.fullmatch(name[len(prefix) :])):
            if path.is_dir() and not path.is_symlink():
                continue
            path.unlink()
            removed.append(path)
    if removed:
        logger.info(f"Removed {len(removed)} stale archive file(s) for {base_path.name}")
    return removed


class _FixedSizeReader:
    """
    Yield exactly ``size`` bytes from ``source``.

    The tar header is already written by the time the data is copied, so a
    file that shrinks or fails to read mid-copy is zero-filled to keep the
    stream valid.
    """

    def __init__(self, source: io.BufferedReader, size: int, path: Path) -> None:
        self._source = source
        self._remaining = size
        self._path = path
        self.short = False

    def read(self, n: int = -1) -> bytes:
        if n < 0 or n > self._remaining:
            n = self._remaining
        data = b""
        if not self.short:
            try:
                data = self._source.read(n)
            except OSError as e:
                logger.warning(f"Read failed for {self._path}, zero-filling the rest: {e}")
                self.short = True
            else:
                if len(data) < n:
                    logger.warning(
                        f"{self._path} shrank while archiving; zero-filling {self._remaining - len(data)} byte(s)"
                    )
                    self.short = True
        if len(data) < n:
            data += bytes(n - len(data))
        self._remaining -= n
        return data


class StreamingArchiver:
    """
    Write a segment as a gzip-compressed GNU tar split into numbered parts.

    Layout: the marker record first, then every resolved entry in order.
    The tar stream is written in one pass; file data is copied through a
    bounded buffer, so only one part and one source file are ever in flight.
    """

    def __init__(
        self,
        output_dir: Path,
        compression_level: int = 6,
        max_part_bytes: int | None = None,
        root_path: Path | None = None,
    ) -> None:
        if not 0 <= compression_level <= 9:
            raise ValueError(f"compression_level must be 0-9: {compression_level}")
        self._output_dir = Path(output_dir)
        self._level = compression_level
        self._max_part_bytes = max_part_bytes
        self._root_path = root_path

    def archive(
        self,
        segment: Segment,
        entries: list[FileEntry],
        on_part: PartListener | None = None,
    ) -> list[Path]:
        """Archive ``entries`` for ``segment``; return the part paths in order."""
        base_path = archive_base_path(self._output_dir, segment)
        remove_stale_outputs(base_path)
        writer = RollingWriter(base_path, self._max_part_bytes, listener=on_part)
        try:
            gz = GzipSink(writer, self._level)
            tar = tarfile.open(fileobj=gz, mode="w", format=tarfile.GNU_FORMAT)
            tar.copybufsize = _COPY_BUFSIZE

            self._add_marker(tar, marker_content(segment.root_path, self._root_path))
            added = 0
            for entry in entries:
                if self._add_entry(tar, entry):
                    added += 1

            tar.close()
            gz.close()
        except BaseException:
            writer.abort()
            raise
        parts = writer.finalize()
        logger.info(f"Archived {added}/{len(entries)} entries of '{segment.name}' into {len(parts)} file(s)")
        return parts

    # ── Entries ──

    @staticmethod
    def _add_marker(tar: tarfile.TarFile, content: str) -> None:
        data = content.encode("utf-8")
        info = tarfile.TarInfo(MARKER_NAME)
        info.size = len(data)
        info.mode = 0o644
        info.mtime = 0
        tar.addfile(info, io.BytesIO(data))

    def _add_entry(self, tar: tarfile.TarFile, entry: FileEntry) -> bool:
        if entry.kind == EntryKind.FILE:
            try:
                f = open(entry.path, "rb")
            except OSError as e:
                logger.warning(f"Skipping unreadable file {entry.path}: {e}")
                return False
            with f:
                info = tar.gettarinfo(arcname=entry.relative, fileobj=f)
                if not info.isreg():
                    logger.warning(f"Skipping {entry.path}: no longer a regular file")
                    return False
                tar.addfile(info, _FixedSizeReader(f, info.size, entry.path))
            return True

        try:
            info = tar.gettarinfo(str(entry.path), arcname=entry.relative)
        except OSError as e:
            logger.warning(f"Skipping unreadable entry {entry.path}: {e}")
            return False
        if info is None:
            logger.warning(f"Skipping unsupported file type: {entry.path}")
            return False
        tar.addfile(info)
        return True
