"""Status and captured-output views over a PipelineOutcome."""

from typing import Optional

from shellrun.errors import CommandFailed
from shellrun.executor import PipelineOutcome


def check_status(outcome: PipelineOutcome) -> None:
    """
    Succeed silently if the pipeline fully succeeded.

    Raises:
        CommandFailed: Carrying the last stage's exit code.
    """
    if not outcome.success:
        raise CommandFailed(outcome.exit_code, outcome.command, outcome)


def captured_text(outcome: PipelineOutcome, encoding: Optional[str] = None) -> str:
    """
    Return the trimmed, decoded output of a successful pipeline.

    Output of a failed pipeline is never returned.

    Raises:
        CommandFailed: If any stage failed.
        DecodeError: If the output is not valid text.
    """
    check_status(outcome)
    return outcome.text(encoding)
