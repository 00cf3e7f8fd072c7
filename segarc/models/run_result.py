"""Result models for archive runs and script invocations."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path


class ScriptAction(StrEnum):
    """What the engine does after an external script exits."""

    CONTINUE = "continue"
    WARN = "warn"
    ABORT = "abort"


@dataclass(frozen=True)
class ExitOutcome:
    """Classified exit status of one script invocation."""

    action: ScriptAction
    code: int | None = 0  # None when the script could not be started

    @property
    def is_abort(self) -> bool:
        return self.action == ScriptAction.ABORT


class SegmentStatus(StrEnum):
    ARCHIVED = "archived"
    SKIPPED = "skipped"
    MISSING = "missing"


@dataclass
class SegmentResult:
    """Outcome of processing one segment."""

    name: str
    status: SegmentStatus
    fingerprint: str = ""
    parts: list[Path] = field(default_factory=list)
    warnings: list[ExitOutcome] = field(default_factory=list)


@dataclass
class RunSummary:
    """Outcome of a complete archive run."""

    segments: list[SegmentResult] = field(default_factory=list)

    def _names(self, status: SegmentStatus) -> list[str]:
        return [s.name for s in self.segments if s.status == status]

    @property
    def archived(self) -> list[str]:
        return self._names(SegmentStatus.ARCHIVED)

    @property
    def skipped(self) -> list[str]:
        return self._names(SegmentStatus.SKIPPED)

    @property
    def missing(self) -> list[str]:
        return self._names(SegmentStatus.MISSING)

    @property
    def warning_count(self) -> int:
        return sum(len(s.warnings) for s in self.segments)
