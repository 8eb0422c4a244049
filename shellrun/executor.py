"""Subprocess execution for wired pipelines."""

import os
import subprocess
import threading
from contextlib import ExitStack
from dataclasses import dataclass
from typing import IO, Any, Mapping, Optional, Union

from shellrun.config import get_settings
from shellrun.errors import DecodeError, SpawnError
from shellrun.logger import get_logger
from shellrun.plan import ExecutionPlan, StagePlan, StreamKind
from shellrun.trace import Tracer

logger = get_logger(__name__)

STDERR_FD = 2


@dataclass(frozen=True)
class StageOutcome:
    """Exit status of one stage."""

    index: int
    argv: tuple[str, ...]
    returncode: int

    @property
    def success(self) -> bool:
        return self.returncode == 0

    @property
    def signal(self) -> Optional[int]:
        """Number of the signal that killed the stage, if any."""
        return -self.returncode if self.returncode < 0 else None

    @property
    def exit_code(self) -> int:
        """Exit code, or 128 + signal number for a killed stage."""
        if self.returncode < 0:
            return 128 - self.returncode
        return self.returncode


def trim_newline(data: bytes) -> bytes:
    """Strip one trailing ``\\n`` and a ``\\r`` right before it."""
    if data.endswith(b"\n"):
        data = data[:-1]
        if data.endswith(b"\r"):
            data = data[:-1]
    return data


@dataclass(frozen=True)
class PipelineOutcome:
    """Result of running a pipeline to completion.

    Attributes:
        stages: Per-stage outcomes, in pipeline order.
        output: Raw bytes captured from the last stage, or None.
        pipefail: Whether every stage counts towards success.
        command: Rendered pipeline, for diagnostics.
    """

    stages: tuple[StageOutcome, ...]
    output: Optional[bytes] = None
    pipefail: bool = True
    command: str = ""

    @property
    def last(self) -> StageOutcome:
        return self.stages[-1]

    @property
    def success(self) -> bool:
        if self.pipefail:
            return all(stage.success for stage in self.stages)
        return self.last.success

    @property
    def exit_code(self) -> int:
        return self.last.exit_code

    @property
    def failed_stages(self) -> list[StageOutcome]:
        return [stage for stage in self.stages if not stage.success]

    def text(self, encoding: Optional[str] = None) -> str:
        """
        Decode the captured output after trimming one trailing newline.

        Raises:
            DecodeError: If the bytes are not valid in the given encoding.
        """
        encoding = encoding or get_settings().encoding
        data = trim_newline(self.output or b"")
        try:
            return data.decode(encoding)
        except UnicodeDecodeError as e:
            raise DecodeError(data, encoding, e) from e


class _Drain(threading.Thread):
    """Reads a pipe to EOF so the writer never blocks on a full buffer."""

    def __init__(self, stream: IO[bytes]):
        super().__init__(name="shellrun-drain", daemon=True)
        self.stream = stream
        self.data = b""
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        try:
            self.data = self.stream.read()
        except Exception as e:
            self.error = e
        finally:
            self.stream.close()


class _Feed(threading.Thread):
    """Writes caller input into the first stage, then closes its stdin."""

    def __init__(self, stream: IO[bytes], data: bytes):
        super().__init__(name="shellrun-feed", daemon=True)
        self.stream = stream
        self.data = data
        self.error: Optional[BaseException] = None

    def run(self) -> None:
        try:
            self.stream.write(self.data)
            self.stream.close()
        except BrokenPipeError:
            # The stage exited without reading all of its input
            self._close_quietly()
        except Exception as e:
            self.error = e
            self._close_quietly()

    def _close_quietly(self) -> None:
        try:
            self.stream.close()
        except BrokenPipeError:
            pass


class PipelineHandle:
    """
    Running pipeline.

    Every stage has been spawned by the time a handle exists. Output capture
    and input feeding start immediately on helper threads, so the processes
    make progress whether or not ``wait`` has been called yet.

    Example:
        >>> handle = spawn(build_plan(parse_pipeline("sleep 10")))
        >>> handle.poll()
        False
        >>> handle.terminate()
        >>> handle.wait().success
        False
    """

    def __init__(
        self,
        plan: ExecutionPlan,
        processes: list[subprocess.Popen],
        input: Optional[bytes] = None,
        pipefail: Optional[bool] = None,
    ):
        self.plan = plan
        self.processes = processes
        self.pipefail = get_settings().pipefail if pipefail is None else pipefail
        self._outcome: Optional[PipelineOutcome] = None

        self._drain: Optional[_Drain] = None
        if plan.last.stdout.kind == StreamKind.CAPTURE:
            self._drain = _Drain(processes[-1].stdout)
            self._drain.start()

        self._feed: Optional[_Feed] = None
        if plan.first.stdin.kind == StreamKind.FEED:
            self._feed = _Feed(processes[0].stdin, input or b"")
            self._feed.start()

    @property
    def pids(self) -> list[int]:
        return [proc.pid for proc in self.processes]

    def poll(self) -> bool:
        """Return True once every stage has exited."""
        return all(proc.poll() is not None for proc in self.processes)

    def terminate(self) -> None:
        """Send SIGTERM to every stage that is still running."""
        for proc in self.processes:
            if proc.poll() is None:
                proc.terminate()

    def kill(self) -> None:
        """Send SIGKILL to every stage that is still running."""
        for proc in self.processes:
            if proc.poll() is None:
                proc.kill()

    def wait(self) -> PipelineOutcome:
        """
        Block until every stage has exited and all output is drained.

        Returns:
            PipelineOutcome with per-stage status and captured bytes.
        """
        if self._outcome is not None:
            return self._outcome

        returncodes = [proc.wait() for proc in self.processes]
        # Capture requested but stdout redirected elsewhere: nothing was captured
        output = b"" if self.plan.capture else None
        if self._feed is not None:
            self._feed.join()
            if self._feed.error is not None:
                raise self._feed.error
        if self._drain is not None:
            self._drain.join()
            if self._drain.error is not None:
                raise self._drain.error
            output = self._drain.data

        stages = tuple(
            StageOutcome(index=sp.index, argv=sp.argv, returncode=rc)
            for sp, rc in zip(self.plan.stages, returncodes)
        )
        for stage in stages:
            if not stage.success:
                logger.debug(
                    "Stage %d %r exited with %d", stage.index, list(stage.argv), stage.exit_code
                )

        self._outcome = PipelineOutcome(
            stages=stages,
            output=output,
            pipefail=self.pipefail,
            command=self.plan.command,
        )
        return self._outcome

    def __enter__(self) -> "PipelineHandle":
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        if exc_type is not None:
            self.kill()
        self.wait()


def _stage_env(
    stage_plan: StagePlan, env: Optional[Mapping[str, str]]
) -> Optional[dict[str, str]]:
    """Caller and per-stage variables layered over the current environment."""
    if env is None and not stage_plan.stage.env:
        return None
    merged = dict(os.environ)
    if env:
        merged.update(env)
    merged.update(stage_plan.env)
    return merged


def _open_input(stage_plan: StagePlan, pending: Optional[IO[bytes]], files: ExitStack) -> Any:
    source = stage_plan.stdin
    if source.kind == StreamKind.PIPE:
        # Previous stage wrote to a file instead: read an empty stream
        return pending if pending is not None else subprocess.DEVNULL
    if source.kind == StreamKind.FEED:
        return subprocess.PIPE
    if source.kind == StreamKind.NULL:
        return subprocess.DEVNULL
    if source.kind == StreamKind.FILE:
        return files.enter_context(open(source.path, "rb"))
    return None


def _open_output(kind: StreamKind, path: Optional[str], append: bool, files: ExitStack) -> Any:
    if kind in (StreamKind.PIPE, StreamKind.CAPTURE):
        return subprocess.PIPE
    if kind == StreamKind.NULL:
        return subprocess.DEVNULL
    if kind == StreamKind.FILE:
        return files.enter_context(open(path, "ab" if append else "wb"))
    return None


def _spawn_stage(
    stage_plan: StagePlan,
    pending: Optional[IO[bytes]],
    cwd: Optional[str],
    env: Optional[Mapping[str, str]],
) -> subprocess.Popen:
    """Start one stage. Files opened for its redirects are closed here once the child holds them."""
    with ExitStack() as files:
        try:
            stdin = _open_input(stage_plan, pending, files)

            if stage_plan.stderr.kind == StreamKind.STDOUT:
                stderr = subprocess.STDOUT
            else:
                err = stage_plan.stderr
                stderr = _open_output(err.kind, err.path, err.append, files)

            if stage_plan.stdout.kind == StreamKind.STDERR:
                stdout = STDERR_FD if stderr is None else stderr
            else:
                out = stage_plan.stdout
                stdout = _open_output(out.kind, out.path, out.append, files)

            proc = subprocess.Popen(
                list(stage_plan.argv),
                stdin=stdin,
                stdout=stdout,
                stderr=stderr,
                cwd=cwd,
                env=_stage_env(stage_plan, env),
            )
        except (OSError, ValueError) as e:
            raise SpawnError(stage_plan.index, stage_plan.binary, e) from e

    logger.debug(
        "Spawned stage %d %s (pid %d)", stage_plan.index, stage_plan.stage.describe(), proc.pid
    )
    return proc


def _abandon(processes: list[subprocess.Popen]) -> None:
    """Let already started stages finish on their own and reap them in the background."""
    for proc in processes:
        if proc.stdin is not None:
            proc.stdin.close()
        if proc.stdout is not None:
            proc.stdout.close()
        threading.Thread(target=proc.wait, name="shellrun-reap", daemon=True).start()


def spawn(
    plan: ExecutionPlan,
    tracer: Optional[Tracer] = None,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    input: Optional[Union[str, bytes]] = None,
    pipefail: Optional[bool] = None,
) -> PipelineHandle:
    """
    Start every stage of a plan and return a handle to the running pipeline.

    Stages are started left to right. The orchestrator drops its copy of each
    inter-stage pipe right after the reading stage is spawned, so EOF and
    broken-pipe conditions propagate between the stages themselves.

    Args:
        plan: Wired pipeline from ``build_plan``.
        tracer: Receives one trace line per stage before it is spawned.
        cwd: Working directory for every stage.
        env: Extra environment variables layered over ``os.environ``.
        input: Bytes (or text, encoded with the configured encoding) for the
               first stage when the plan feeds input.
        pipefail: Override the configured pipefail setting.

    Returns:
        PipelineHandle for waiting on or signalling the stages.

    Raises:
        SpawnError: If a stage cannot be started. Stages started before it
            are not killed; they see a closed pipe and exit on their own.
        ValueError: If the settings are invalid; raised before any stage starts.
    """
    # Settings errors must surface before any stage is started
    settings = get_settings()
    if pipefail is None:
        pipefail = settings.pipefail

    tracer = tracer or Tracer()
    if isinstance(input, str):
        input = input.encode(settings.encoding)
    if input is not None and plan.first.stdin.kind != StreamKind.FEED:
        logger.debug("Input ignored: first stage reads %s", plan.first.stdin)

    processes: list[subprocess.Popen] = []
    pending: Optional[IO[bytes]] = None
    try:
        for stage_plan in plan.stages:
            tracer.emit(stage_plan)
            try:
                proc = _spawn_stage(stage_plan, pending, cwd, env)
            finally:
                # The reading stage holds its own copy now, or never will
                if pending is not None:
                    pending.close()
                    pending = None
            processes.append(proc)
            if stage_plan.stdout.kind == StreamKind.PIPE:
                pending = proc.stdout
    except SpawnError as e:
        logger.debug("%s; abandoning %d started stage(s)", e, len(processes))
        _abandon(processes)
        raise

    return PipelineHandle(plan, processes, input=input, pipefail=pipefail)


def execute(
    plan: ExecutionPlan,
    tracer: Optional[Tracer] = None,
    cwd: Optional[str] = None,
    env: Optional[Mapping[str, str]] = None,
    input: Optional[Union[str, bytes]] = None,
    pipefail: Optional[bool] = None,
) -> PipelineOutcome:
    """
    Run a plan to completion.

    Returns:
        PipelineOutcome for every stage, with captured bytes if requested.

    Raises:
        SpawnError: If a stage cannot be started.
    """
    handle = spawn(plan, tracer=tracer, cwd=cwd, env=env, input=input, pipefail=pipefail)
    return handle.wait()
