"""External script invocation with graduated exit-code handling."""

from __future__ import annotations

import subprocess
from pathlib import Path

from loguru import logger

from segarc.models.run_result import ExitOutcome, ScriptAction

WARN_MAX_CODE = 127


def classify_exit_code(code: int | None) -> ExitOutcome:
    """
    Map a process exit status onto an action.

    ``0`` continues, ``1..127`` warns, anything else (``128..255``,
    signal-terminated negatives, or a script that never started) aborts.
    """
    if code == 0:
        return ExitOutcome(ScriptAction.CONTINUE, 0)
    if code is not None and 0 < code <= WARN_MAX_CODE:
        return ExitOutcome(ScriptAction.WARN, code)
    return ExitOutcome(ScriptAction.ABORT, code)


class ScriptRunner:
    """
    Runs the configured post and skip scripts.

    Each call blocks until the script exits; there is no timeout. An
    unconfigured script is a successful no-op.
    """

    def __init__(self, post_script: Path | None = None, skip_script: Path | None = None) -> None:
        self._post_script = post_script
        self._skip_script = skip_script

    @property
    def post_script(self) -> Path | None:
        return self._post_script

    @property
    def skip_script(self) -> Path | None:
        return self._skip_script

    def invoke_post(self, part_path: Path) -> ExitOutcome:
        """Run the post script for a finished archive part."""
        return self._invoke("Post-script", self._post_script, part_path)

    def invoke_skip(self, base_path: Path) -> ExitOutcome:
        """Run the skip script with the (non-existent) unsuffixed archive path."""
        return self._invoke("Skip-script", self._skip_script, base_path)

    def _invoke(self, label: str, script: Path | None, target: Path) -> ExitOutcome:
        if script is None:
            return ExitOutcome(ScriptAction.CONTINUE, 0)

        logger.info(f"Executing {label.lower()}: {script} {target}")
        try:
            completed = subprocess.run([str(script), str(target)], check=False)  # noqa: S603
        except OSError as e:
            logger.error(f"{label} {script} could not be started: {e}")
            return ExitOutcome(ScriptAction.ABORT, None)

        outcome = classify_exit_code(completed.returncode)
        if outcome.action == ScriptAction.CONTINUE:
            logger.info(f"{label} finished successfully.")
        elif outcome.action == ScriptAction.WARN:
            logger.warning(f"{label} finished with error (exit {outcome.code}) for {target}")
        else:
            logger.error(f"{label} panicked (exit {outcome.code}) for {target}")
        return outcome
