"""Stream wiring for pipeline stages."""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from shellrun.ast import Pipeline, Redirect, Stage

DEV_NULL = "/dev/null"


class StreamKind(Enum):
    """Where a stage's standard stream is connected.

    Attributes:
        INHERIT: The calling process's own stream.
        NULL: The null device.
        FILE: A file opened for this stage.
        PIPE: The pipe shared with the neighbouring stage.
        CAPTURE: An in-memory buffer read by the orchestrator.
        FEED: Bytes supplied by the caller (stdin of the first stage only).
        STDOUT: Same target as this stage's stdout (stderr only).
        STDERR: Same target as this stage's stderr (stdout only).
    """

    INHERIT = auto()
    NULL = auto()
    FILE = auto()
    PIPE = auto()
    CAPTURE = auto()
    FEED = auto()
    STDOUT = auto()
    STDERR = auto()


@dataclass(frozen=True)
class StreamSpec:
    """Resolved target of one standard stream."""

    kind: StreamKind
    path: Optional[str] = None
    append: bool = False

    def __str__(self) -> str:
        if self.kind == StreamKind.FILE:
            return f"{'>>' if self.append else '>'}{self.path}"
        return self.kind.name.lower()


INHERIT = StreamSpec(StreamKind.INHERIT)
NULL = StreamSpec(StreamKind.NULL)
PIPE = StreamSpec(StreamKind.PIPE)
CAPTURE = StreamSpec(StreamKind.CAPTURE)
FEED = StreamSpec(StreamKind.FEED)
TO_STDOUT = StreamSpec(StreamKind.STDOUT)
TO_STDERR = StreamSpec(StreamKind.STDERR)


@dataclass(frozen=True)
class StagePlan:
    """A stage together with the concrete wiring of its streams."""

    index: int
    stage: Stage
    stdin: StreamSpec
    stdout: StreamSpec
    stderr: StreamSpec

    @property
    def argv(self) -> tuple[str, ...]:
        return self.stage.argv

    @property
    def binary(self) -> str:
        return self.stage.binary

    @property
    def env(self) -> dict[str, str]:
        return dict(self.stage.env)


@dataclass(frozen=True)
class ExecutionPlan:
    """Fully wired pipeline, ready to be spawned."""

    pipeline: Pipeline
    stages: tuple[StagePlan, ...]
    capture: bool = False

    @property
    def command(self) -> str:
        return str(self.pipeline)

    @property
    def first(self) -> StagePlan:
        return self.stages[0]

    @property
    def last(self) -> StagePlan:
        return self.stages[-1]


def _file_spec(target: Redirect) -> StreamSpec:
    if target.path == DEV_NULL:
        return NULL
    return StreamSpec(StreamKind.FILE, path=target.path, append=target.append)


def build_plan(
    pipeline: Pipeline,
    capture: bool = False,
    merge_stderr: bool = False,
    feed_input: bool = False,
) -> ExecutionPlan:
    """
    Compute the stream wiring for every stage of a pipeline.

    Args:
        pipeline: Parsed pipeline.
        capture: Capture the last stage's stdout instead of inheriting it.
        merge_stderr: Send every stage's stderr to its stdout target unless
                      the stage redirects stderr itself.
        feed_input: The first stage reads caller-supplied bytes instead of
                    the calling process's stdin.

    Returns:
        ExecutionPlan with one StagePlan per stage.

    Example:
        >>> plan = build_plan(parse_pipeline("echo hi | wc -c"), capture=True)
        >>> [(str(s.stdin), str(s.stdout)) for s in plan.stages]
        [('inherit', 'pipe'), ('pipe', 'capture')]
    """
    last_index = len(pipeline.stages) - 1
    plans = []
    for index, stage in enumerate(pipeline.stages):
        # stdin: explicit file > previous stage's pipe > caller input
        if stage.stdin is not None:
            stdin = _file_spec(stage.stdin)
        elif index > 0:
            stdin = PIPE
        elif feed_input:
            stdin = FEED
        else:
            stdin = INHERIT

        # stdout: explicit file > dup into stderr > next stage > capture > inherit
        if stage.stdout is not None and stage.stdout.fd is None:
            stdout = _file_spec(stage.stdout)
        elif stage.stdout is not None:
            stdout = TO_STDERR
        elif index < last_index:
            stdout = PIPE
        elif capture:
            stdout = CAPTURE
        else:
            stdout = INHERIT

        # stderr: explicit file > dup into stdout > merge request > inherit
        if stage.stderr is not None and stage.stderr.fd is None:
            stderr = _file_spec(stage.stderr)
        elif stage.stderr is not None or merge_stderr:
            stderr = TO_STDOUT
        else:
            stderr = INHERIT

        if stdout == TO_STDERR and stderr == TO_STDOUT:
            stderr = INHERIT

        plans.append(
            StagePlan(index=index, stage=stage, stdin=stdin, stdout=stdout, stderr=stderr)
        )

    return ExecutionPlan(pipeline=pipeline, stages=tuple(plans), capture=capture)
