"""Rolling writer — split one byte stream across numbered part files."""

from __future__ import annotations

import os
from pathlib import Path
from typing import BinaryIO, Callable

from loguru import logger

from segarc.errors import ArchiveSinkError

PartListener = Callable[[Path], None]


def part_path(base_path: Path, number: int) -> Path:
    """``<base>.partNNN`` for a 1-based part number."""
    return base_path.with_name(f"{base_path.name}.part{number:03d}")


class RollingWriter:
    """
    Write-only byte sink that rolls over to a new part file every
    ``max_size`` bytes.

    The cut is a raw byte count; a part boundary can fall anywhere in the
    compressed stream. A new part is only opened when more bytes arrive, so a
    stream of exactly ``max_size`` bytes yields a single part. A single part
    is renamed to ``base_path`` when the writer is finalized.

    The listener runs synchronously after each part is closed and before the
    next one is opened; an exception from it stops the stream.
    """

    def __init__(
        self,
        base_path: Path,
        max_size: int | None = None,
        listener: PartListener | None = None,
    ) -> None:
        if max_size is not None and max_size < 1:
            raise ValueError(f"max_size must be at least 1 byte: {max_size}")
        self._base_path = Path(base_path)
        self._max_size = max_size
        self._listener = listener
        self._file: BinaryIO | None = None
        self._current_path: Path | None = None
        self._current_size = 0
        self._part_counter = 0
        self._closed = False
        self.parts: list[Path] = []
        self._open_new_part()

    @property
    def base_path(self) -> Path:
        return self._base_path

    # ── File-like protocol ──

    def writable(self) -> bool:
        return True

    def write(self, data: bytes) -> int:
        if self._closed:
            raise ValueError("write to finalized RollingWriter")
        view = memoryview(data).cast("B")
        written = 0
        remaining = len(view)
        while remaining > 0:
            if self._max_size is None:
                chunk = remaining
            else:
                chunk = min(self._max_size - self._current_size, remaining)
            if chunk == 0:
                self._open_new_part()
                continue
            assert self._file is not None
            self._file.write(view[written : written + chunk])
            self._current_size += chunk
            written += chunk
            remaining -= chunk
        return written

    def flush(self) -> None:
        if self._file is not None:
            self._file.flush()

    def finalize(self) -> list[Path]:
        """Close the last part and return every part path in order."""
        if not self._closed:
            self._finalize_current(is_final=True)
            self._closed = True
        return list(self.parts)

    def abort(self) -> None:
        """Close the open part as-is, without notifying the listener."""
        if self._file is not None:
            self._file.close()
            self._file = None
        self._closed = True

    # ── Part management ──

    def _open_new_part(self) -> None:
        self._finalize_current(is_final=False)

        if self._max_size is None:
            if self._part_counter:
                raise ArchiveSinkError("Single-file mode cannot open a second part")
            filename = self._base_path
        else:
            filename = part_path(self._base_path, self._part_counter + 1)
        self._part_counter += 1

        logger.info(f"Opening new file part: {filename}")
        try:
            self._file = open(filename, "wb")
        except OSError as e:
            raise ArchiveSinkError(f"Failed to open archive part {filename}: {e}") from e
        self._current_path = filename
        self._current_size = 0

    def _finalize_current(self, is_final: bool) -> None:
        if self._file is None:
            return
        handle, self._file = self._file, None
        handle.flush()
        os.fsync(handle.fileno())
        handle.close()

        path = self._current_path
        assert path is not None
        if is_final and self._part_counter == 1 and path != self._base_path:
            logger.info(f"Renaming single part file to {self._base_path}")
            path.replace(self._base_path)
            path = self._base_path

        self.parts.append(path)
        if self._listener is not None:
            self._listener(path)
