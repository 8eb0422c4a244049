"""Trace lines describing each stage before it is spawned."""

import logging
from typing import Callable, Optional

from shellrun.config import get_settings
from shellrun.logger import get_logger
from shellrun.plan import StagePlan

logger = get_logger(__name__)

Sink = Callable[[str], None]


def format_trace(stage_plan: StagePlan) -> str:
    """Render the trace line for one stage, e.g. ``Running ['ls', '-l'] ...``."""
    return f"Running {stage_plan.stage.describe()} ..."


def _log_sink(line: str) -> None:
    level = logging.INFO if get_settings().debug else logging.DEBUG
    logger.log(level, "%s", line)


class Tracer:
    """
    Emits one trace line per stage to a sink.

    The sink is any callable taking a string. By default lines go to the
    ``shellrun.trace`` logger. Tracing is observational: a failing sink is
    reported as a warning and never stops the pipeline.
    """

    def __init__(self, sink: Optional[Sink] = None):
        self.sink: Sink = sink if sink is not None else _log_sink

    def emit(self, stage_plan: StagePlan) -> None:
        line = format_trace(stage_plan)
        try:
            self.sink(line)
        except Exception as e:
            logger.warning("Trace sink failed for %r: %s", line, e)


class RecordingSink:
    """Sink that keeps every line in memory.

    Example:
        >>> sink = RecordingSink()
        >>> run_cmd("true", tracer=Tracer(sink))
        >>> sink.lines
        ["Running ['true'] ..."]
    """

    def __init__(self):
        self.lines: list[str] = []

    def __call__(self, line: str) -> None:
        self.lines.append(line)

    def clear(self) -> None:
        self.lines.clear()
