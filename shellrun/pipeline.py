"""Command class and call shapes for running command lines."""

from typing import Mapping, Optional, Union

from shellrun.ast import Pipeline, Script
from shellrun.errors import CommandFailed, SpawnError
from shellrun.executor import PipelineHandle, PipelineOutcome, execute, spawn
from shellrun.logger import get_logger
from shellrun.parser import parse
from shellrun.plan import ExecutionPlan, build_plan
from shellrun.result import captured_text, check_status
from shellrun.trace import Tracer

logger = get_logger(__name__)


# Module-level cache for parsed command lines
_script_cache: dict[str, Script] = {}
_CACHE_MAX_SIZE = 128


def _get_cached_script(line: str) -> Optional[Script]:
    """Get cached parse result for a command line."""
    return _script_cache.get(line)


def _set_cached_script(line: str, script: Script) -> None:
    """Cache a parse result, evicting oldest entries if full."""
    if len(_script_cache) >= _CACHE_MAX_SIZE:
        # Simple eviction: clear oldest half
        keys = list(_script_cache.keys())[: len(_script_cache) // 2]
        for k in keys:
            del _script_cache[k]
    _script_cache[line] = script


def clear_command_cache() -> None:
    """Clear the parsed command cache.

    Example:
        >>> from shellrun import clear_command_cache
        >>> clear_command_cache()
    """
    _script_cache.clear()


class Command:
    """
    A command line ready to be run.

    The line may hold several ``;``-separated pipelines. Values must already
    be interpolated (use ordinary string formatting, quoting with
    ``shlex.quote`` where needed).

    Example:
        >>> Command("echo hello | tr a-z A-Z").fun()
        'HELLO'
        >>> Command("ls /definitely-does-not-exist").run()
        Traceback (most recent call last):
        ...
        shellrun.errors.CommandFailed: Command failed with exit code 2: ...
    """

    def __init__(
        self,
        line: str,
        cwd: Optional[str] = None,
        env: Optional[Mapping[str, str]] = None,
        input: Optional[Union[str, bytes]] = None,
        merge_stderr: bool = False,
        tracer: Optional[Tracer] = None,
        pipefail: Optional[bool] = None,
        encoding: Optional[str] = None,
    ):
        """
        Args:
            line: Command line to run.
            cwd: Working directory for every stage.
            env: Extra environment variables layered over ``os.environ``.
            input: Data fed to the first stage of the first pipeline.
            merge_stderr: Send stderr of every stage to its stdout target.
            tracer: Destination of the per-stage trace lines.
            pipefail: Override the SHELLRUN_PIPEFAIL setting.
            encoding: Override the SHELLRUN_ENCODING setting for ``fun()``.
        """
        self.line = line
        self.cwd = cwd
        self.env = env
        self.input = input
        self.merge_stderr = merge_stderr
        self.tracer = tracer or Tracer()
        self.pipefail = pipefail
        self.encoding = encoding

    def __repr__(self) -> str:
        return f"Command({self.line!r})"

    @property
    def ast(self) -> Script:
        """Parsed form of the command line (cached)."""
        script = _get_cached_script(self.line)
        if script is None:
            script = parse(self.line)
            _set_cached_script(self.line, script)
        return script

    def plans(self, capture: bool = False) -> list[ExecutionPlan]:
        """Wire every pipeline; with capture, only the last one is captured."""
        pipelines = self.ast.pipelines
        last = len(pipelines) - 1
        return [
            build_plan(
                pipeline,
                capture=capture and i == last,
                merge_stderr=self.merge_stderr,
                feed_input=self.input is not None and i == 0,
            )
            for i, pipeline in enumerate(pipelines)
        ]

    def _execute(self, plan: ExecutionPlan, index: int) -> PipelineOutcome:
        return execute(
            plan,
            tracer=self.tracer,
            cwd=self.cwd,
            env=self.env,
            input=self.input if index == 0 else None,
            pipefail=self.pipefail,
        )

    def _run_status(self, plan: ExecutionPlan, index: int) -> None:
        try:
            check_status(self._execute(plan, index))
        except (CommandFailed, SpawnError) as e:
            if not plan.pipeline.ignore_error:
                raise
            logger.debug("Ignoring failure of %s: %s", plan.command, e)

    def run(self) -> None:
        """
        Run every pipeline with inherited output.

        Raises:
            ParseError: If the line is malformed (nothing is spawned).
            SpawnError: If a stage cannot be started.
            CommandFailed: If a pipeline does not fully succeed.
        """
        for index, plan in enumerate(self.plans()):
            self._run_status(plan, index)

    def fun(self) -> str:
        """
        Run every pipeline and return the last one's output as text.

        Earlier pipelines run as in ``run()``. The output is decoded and
        trimmed of one trailing newline.

        Raises:
            ParseError: If the line is malformed (nothing is spawned).
            SpawnError: If a stage cannot be started.
            CommandFailed: If a pipeline does not fully succeed.
            DecodeError: If the output is not valid text.
        """
        plans = self.plans(capture=True)
        for index, plan in enumerate(plans[:-1]):
            self._run_status(plan, index)

        last = plans[-1]
        try:
            return captured_text(self._execute(last, len(plans) - 1), self.encoding)
        except (CommandFailed, SpawnError) as e:
            if not last.pipeline.ignore_error:
                raise
            logger.debug("Ignoring failure of %s: %s", last.command, e)
            return ""

    def _single_pipeline(self) -> Pipeline:
        pipelines = self.ast.pipelines
        if len(pipelines) != 1:
            raise ValueError(
                f"Expected a single pipeline, got {len(pipelines)}: {self.line!r}"
            )
        return pipelines[0]

    def outcome(self, capture: bool = False) -> PipelineOutcome:
        """
        Run a single pipeline and return its raw outcome without raising
        on failure.

        Raises:
            ValueError: If the line holds more than one pipeline.
            SpawnError: If a stage cannot be started.
        """
        return self.spawn(capture=capture).wait()

    def spawn(self, capture: bool = False) -> PipelineHandle:
        """
        Start a single pipeline without waiting for it.

        Raises:
            ValueError: If the line holds more than one pipeline.
            SpawnError: If a stage cannot be started.
        """
        pipeline = self._single_pipeline()
        plan = build_plan(
            pipeline,
            capture=capture,
            merge_stderr=self.merge_stderr,
            feed_input=self.input is not None,
        )
        return spawn(
            plan,
            tracer=self.tracer,
            cwd=self.cwd,
            env=self.env,
            input=self.input,
            pipefail=self.pipefail,
        )


def run_cmd(line: str, **kwargs) -> None:
    """
    Run a command line with inherited output and check its status.

    Keyword arguments are passed to ``Command``.

    Raises:
        CommandFailed: If the command does not fully succeed.

    Example:
        >>> run_cmd("mkdir -p /tmp/shellrun-demo")
    """
    Command(line, **kwargs).run()


def run_fun(line: str, **kwargs) -> str:
    """
    Run a command line and return its trimmed output.

    Keyword arguments are passed to ``Command``.

    Raises:
        CommandFailed: If the command does not fully succeed.
        DecodeError: If the output is not valid text.

    Example:
        >>> run_fun("echo hello")
        'hello'
    """
    return Command(line, **kwargs).fun()
