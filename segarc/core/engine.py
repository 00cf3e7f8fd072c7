"""Backup engine — the sequential per-segment archive run."""

from __future__ import annotations

import os
from pathlib import Path

from loguru import logger

from segarc.core.archiver import StreamingArchiver, archive_base_path
from segarc.core.change_detector import FingerprintStore, fingerprint
from segarc.core.resolver import SegmentResolver
from segarc.core.scripts import ScriptRunner
from segarc.errors import ArchiveSinkError, RunAbortedError
from segarc.models.run_result import (
    ExitOutcome,
    RunSummary,
    ScriptAction,
    SegmentResult,
    SegmentStatus,
)
from segarc.models.segment import Segment


class BackupEngine:
    """
    Archive every configured segment, one at a time.

    Per segment: resolve entries, fingerprint them, then either run the skip
    script (unchanged) or stream the archive, running the post script after
    each part. The new fingerprint is committed only once the segment's
    archive and every script call for it finished without a panic-tier exit.
    """

    def __init__(
        self,
        segments: list[Segment],
        resolver: SegmentResolver,
        store: FingerprintStore,
        archiver: StreamingArchiver,
        scripts: ScriptRunner,
        output_dir: Path,
    ) -> None:
        self._segments = list(segments)
        self._resolver = resolver
        self._store = store
        self._archiver = archiver
        self._scripts = scripts
        self._output_dir = Path(output_dir)

    def run(self) -> RunSummary:
        """
        Process all segments in declaration order.

        Raises ``RunAbortedError`` on a panic-tier script exit and
        ``ArchiveSinkError`` when an archive cannot be written; in both cases
        later segments are left untouched.
        """
        summary = RunSummary()
        for segment in self._segments:
            summary.segments.append(self.process_segment(segment))

        logger.info(
            f"Backup process finished: {len(summary.archived)} archived, "
            f"{len(summary.skipped)} skipped, {len(summary.missing)} missing, "
            f"{summary.warning_count} script warning(s)"
        )
        return summary

    def process_segment(self, segment: Segment) -> SegmentResult:
        logger.info(f"--- Processing segment: {segment.name} at {segment.root_path} ---")
        result = SegmentResult(name=segment.name, status=SegmentStatus.ARCHIVED)

        if not os.path.lexists(segment.root_path):
            logger.error(f"Path not found, skipping: {segment.root_path}")
            result.status = SegmentStatus.MISSING
            return result

        entries = self._resolver.resolve_segment(segment)
        digest = fingerprint(entries)
        result.fingerprint = digest
        base_path = archive_base_path(self._output_dir, segment)

        if self._store.should_skip(segment.name, digest):
            logger.info(f"Segment '{segment.name}' has not changed, skipping")
            result.status = SegmentStatus.SKIPPED
            outcome = self._scripts.invoke_skip(base_path)
            self._handle_outcome(outcome, self._scripts.skip_script, base_path, result)
            return result
        logger.info(f"Computed new hash for segment '{segment.name}'")

        def on_part(part: Path) -> None:
            logger.info(f"Part written: {part} ({part.stat().st_size} bytes)")
            result.parts.append(part)
            outcome = self._scripts.invoke_post(part)
            self._handle_outcome(outcome, self._scripts.post_script, part, result)

        try:
            self._archiver.archive(segment, entries, on_part=on_part)
        except OSError as e:
            logger.error(f"Failed on segment '{segment.name}': {e}")
            raise ArchiveSinkError(f"Failed on segment '{segment.name}': {e}") from e

        logger.info(f"Successfully created archive: {base_path}")
        self._store.commit(segment.name, digest)
        return result

    @staticmethod
    def _handle_outcome(
        outcome: ExitOutcome,
        script: Path | None,
        target: Path,
        result: SegmentResult,
    ) -> None:
        if outcome.action == ScriptAction.WARN:
            result.warnings.append(outcome)
        elif outcome.action == ScriptAction.ABORT:
            logger.error(f"Aborting run during segment '{result.name}'; its hash is not updated")
            raise RunAbortedError(str(script), str(target), outcome.code)
