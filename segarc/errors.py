"""Error hierarchy for archive runs."""

from __future__ import annotations


class SegarcError(RuntimeError):
    """Base exception for segmented archive failures."""


class ConfigError(SegarcError):
    """Raised when the configuration document is missing or invalid."""


class ArchiveSinkError(SegarcError):
    """Raised when an archive part cannot be opened or written."""


class RunAbortedError(SegarcError):
    """Raised when an external script exits in the panic range."""

    def __init__(self, script: str, target: str, code: int | None) -> None:
        self.script = script
        self.target = target
        self.code = code
        status = "could not be started" if code is None else f"exited with {code}"
        super().__init__(f"Script {script} {status} for {target}; aborting run")


__all__ = ["SegarcError", "ConfigError", "ArchiveSinkError", "RunAbortedError"]
