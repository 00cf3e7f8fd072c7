"""Run context — service container wired from a loaded configuration."""

from __future__ import annotations

from dataclasses import dataclass

from segarc.config import Config
from segarc.core.archiver import StreamingArchiver
from segarc.core.change_detector import FingerprintStore
from segarc.core.engine import BackupEngine
from segarc.core.resolver import IgnoreMatcher, SegmentResolver
from segarc.core.scripts import ScriptRunner


@dataclass
class ArchiveContext:
    """
    Central service container for one archive run.

    Every component is built once from the configuration and shared, so the
    engine and tests see the same store and script runner.
    """

    config: Config
    resolver: SegmentResolver
    store: FingerprintStore
    archiver: StreamingArchiver
    scripts: ScriptRunner
    engine: BackupEngine


def create_context(config: Config) -> ArchiveContext:
    """Wire all services for ``config`` and return an ArchiveContext."""
    output_dir = config.prepare_output_dir()
    segments = config.segments

    resolver = SegmentResolver(segments, IgnoreMatcher(config.ignore))
    store = FingerprintStore(config.hash_file)
    archiver = StreamingArchiver(
        output_dir,
        compression_level=config.compression_level,
        max_part_bytes=config.max_size_bytes,
        root_path=config.root_path,
    )
    scripts = ScriptRunner(config.post_script, config.skip_script)
    engine = BackupEngine(segments, resolver, store, archiver, scripts, output_dir)

    return ArchiveContext(
        config=config,
        resolver=resolver,
        store=store,
        archiver=archiver,
        scripts=scripts,
        engine=engine,
    )
