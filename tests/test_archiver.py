"""Tests for the StreamingArchiver."""

from __future__ import annotations

import os
import tarfile
from pathlib import Path

import pytest

from segarc.core.archiver import MARKER_NAME, StreamingArchiver, marker_content
from segarc.core.resolver import SegmentResolver
from segarc.models.segment import Segment

MiB = 1024 * 1024


@pytest.fixture
def source(tmp_path: Path) -> Path:
    root = tmp_path / "src" / "data"
    (root / "docs").mkdir(parents=True)
    (root / "docs" / "readme.txt").write_text("read me\n" * 200, encoding="utf-8")
    (root / "notes.txt").write_text("some notes", encoding="utf-8")
    (root / "hollow").mkdir()
    return root


def _archive(out: Path, segment: Segment, segments: list[Segment] | None = None, **kwargs) -> list[Path]:
    out.mkdir(parents=True, exist_ok=True)
    entries = SegmentResolver(segments or [segment]).resolve_segment(segment)
    return StreamingArchiver(out, **kwargs).archive(segment, entries)


def _members(archive: Path) -> list[tarfile.TarInfo]:
    with tarfile.open(archive, "r:gz") as tar:
        return tar.getmembers()


class TestArchiveLayout:
    def test_single_unsuffixed_file(self, tmp_path: Path, source: Path) -> None:
        parts = _archive(tmp_path / "out", Segment("data", source))
        assert parts == [tmp_path / "out" / "data.tar.gz"]

    def test_marker_is_first_entry(self, tmp_path: Path, source: Path) -> None:
        out = tmp_path / "out"
        (archive,) = _archive(out, Segment("data", source), root_path=tmp_path / "src")
        members = _members(archive)
        assert members[0].name == MARKER_NAME
        with tarfile.open(archive, "r:gz") as tar:
            content = tar.extractfile(MARKER_NAME).read().decode("utf-8")
        assert content == "data"

    def test_entries_follow_resolver_order(self, tmp_path: Path, source: Path) -> None:
        (archive,) = _archive(tmp_path / "out", Segment("data", source))
        names = [m.name for m in _members(archive)]
        assert names == [MARKER_NAME, "docs/readme.txt", "hollow", "notes.txt"]

    def test_empty_directory_preserved(self, tmp_path: Path, source: Path) -> None:
        (archive,) = _archive(tmp_path / "out", Segment("data", source))
        hollow = [m for m in _members(archive) if m.name == "hollow"]
        assert hollow and hollow[0].isdir()

    def test_symlink_stored_as_link(self, tmp_path: Path, source: Path) -> None:
        os.symlink("notes.txt", source / "link.txt")
        (archive,) = _archive(tmp_path / "out", Segment("data", source))
        link = [m for m in _members(archive) if m.name == "link.txt"][0]
        assert link.issym()
        assert link.linkname == "notes.txt"

    def test_single_file_segment(self, tmp_path: Path, source: Path) -> None:
        segment = Segment("notes", source / "notes.txt")
        (archive,) = _archive(tmp_path / "out", segment, root_path=tmp_path / "src")
        names = [m.name for m in _members(archive)]
        assert names == [MARKER_NAME, "notes.txt"]

    @pytest.mark.skipif(os.name != "posix" or os.geteuid() == 0, reason="needs non-root POSIX permissions")
    def test_unreadable_file_is_omitted(self, tmp_path: Path, source: Path) -> None:
        secret = source / "secret.txt"
        secret.write_text("hidden", encoding="utf-8")
        secret.chmod(0)
        try:
            (archive,) = _archive(tmp_path / "out", Segment("data", source))
        finally:
            secret.chmod(0o644)
        assert "secret.txt" not in [m.name for m in _members(archive)]

    def test_file_deleted_after_resolving_is_omitted(self, tmp_path: Path, source: Path) -> None:
        segment = Segment("data", source)
        entries = SegmentResolver([segment]).resolve_segment(segment)
        (source / "notes.txt").unlink()
        out = tmp_path / "out"
        out.mkdir()

        (archive,) = StreamingArchiver(out).archive(segment, entries)

        names = [m.name for m in _members(archive)]
        assert "notes.txt" not in names
        assert "docs/readme.txt" in names

    def test_file_shrinking_mid_copy_is_zero_filled(self, tmp_path: Path) -> None:
        data = tmp_path / "data"
        data.mkdir()
        big = data / "big.bin"
        big.write_bytes(os.urandom(5 * MiB))
        (data / "later.txt").write_text("still here", encoding="utf-8")
        segment = Segment("data", data)
        entries = SegmentResolver([segment]).resolve_segment(segment)
        out = tmp_path / "out"
        out.mkdir()

        def truncate_once(part: Path) -> None:
            if part.name.endswith("part001"):
                os.truncate(big, 0)

        parts = StreamingArchiver(out, max_part_bytes=MiB).archive(segment, entries, on_part=truncate_once)

        combined = tmp_path / "combined.tar.gz"
        combined.write_bytes(b"".join(p.read_bytes() for p in parts))
        with tarfile.open(combined, "r:gz") as tar:
            info = tar.getmember("big.bin")
            assert info.size == 5 * MiB
            tail = tar.extractfile(info).read()[-1024:]
            assert tail == bytes(1024)
            assert tar.extractfile("later.txt").read() == b"still here"

    def test_invalid_level_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            StreamingArchiver(tmp_path, compression_level=10)


class TestMarkerContent:
    def test_relative_to_root(self) -> None:
        assert marker_content(Path("/srv/data/logs"), Path("/srv")) == "data/logs"

    def test_absolute_without_root(self) -> None:
        assert marker_content(Path("/srv/data"), None) == "/srv/data"

    def test_root_itself(self) -> None:
        assert marker_content(Path("/srv"), Path("/srv")) == "."


class TestSplitting:
    def test_parts_concatenate_to_unsplit_archive(self, tmp_path: Path, source: Path) -> None:
        (source / "blob.bin").write_bytes(os.urandom(50_000))
        segment = Segment("data", source)
        (whole,) = _archive(tmp_path / "whole", segment, compression_level=6)
        parts = _archive(tmp_path / "split", segment, compression_level=6, max_part_bytes=4096)

        assert len(parts) > 1
        assert [p.name for p in parts][:2] == ["data.tar.gz.part001", "data.tar.gz.part002"]
        assert all(p.stat().st_size == 4096 for p in parts[:-1])
        assert b"".join(p.read_bytes() for p in parts) == whole.read_bytes()

    def test_stale_parts_from_earlier_run_removed(self, tmp_path: Path, source: Path) -> None:
        out = tmp_path / "out"
        out.mkdir()
        for number in range(1, 5):
            (out / f"data.tar.gz.part{number:03d}").write_bytes(b"old")
        (out / "data.tar.gz.partial-notes").write_text("keep", encoding="utf-8")
        (out / "database.tar.gz.part001").write_bytes(b"other segment")

        parts = _archive(out, Segment("data", source))

        assert parts == [out / "data.tar.gz"]
        assert sorted(p.name for p in out.iterdir()) == [
            "data.tar.gz",
            "data.tar.gz.partial-notes",
            "database.tar.gz.part001",
        ]

    def test_same_input_same_bytes(self, tmp_path: Path, source: Path) -> None:
        segment = Segment("data", source)
        (a,) = _archive(tmp_path / "a", segment)
        (b,) = _archive(tmp_path / "b", segment)
        assert a.read_bytes() == b.read_bytes()

    def test_child_excluded_and_three_parts(self, tmp_path: Path) -> None:
        data = tmp_path / "data"
        (data / "logs").mkdir(parents=True)
        (data / "big.bin").write_bytes(os.urandom(2_400_000))
        (data / "logs" / "huge.log").write_bytes(os.urandom(1_000_000))
        parent = Segment("data", data)
        child = Segment("logs", data / "logs")

        parts = _archive(tmp_path / "out", parent, [parent, child], max_part_bytes=MiB)

        assert [p.name for p in parts] == [
            "data.tar.gz.part001",
            "data.tar.gz.part002",
            "data.tar.gz.part003",
        ]
        assert parts[0].stat().st_size == MiB
        assert parts[1].stat().st_size == MiB
        assert parts[2].stat().st_size <= MiB

        combined = tmp_path / "combined.tar.gz"
        combined.write_bytes(b"".join(p.read_bytes() for p in parts))
        names = [m.name for m in _members(combined)]
        assert "big.bin" in names
        assert not any(n.startswith("logs") for n in names)
