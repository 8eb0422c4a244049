"""Tests for spawning, wiring and awaiting real processes."""

# Standard library imports
import os
import signal
import time

# Third-party imports
import pytest

# Local/package imports
from shellrun import executor
from shellrun.config import ENCODING_ENV, clear_settings_cache
from shellrun.errors import DecodeError, SpawnError
from shellrun.executor import (
    PipelineOutcome,
    StageOutcome,
    execute,
    spawn,
    trim_newline,
)
from shellrun.parser import parse_pipeline
from shellrun.plan import build_plan
from shellrun.trace import Tracer


def run(line, capture=True, merge_stderr=False, feed_input=False, **kwargs):
    plan = build_plan(
        parse_pipeline(line),
        capture=capture,
        merge_stderr=merge_stderr,
        feed_input=feed_input,
    )
    return execute(plan, **kwargs)


class TestOutcomes:
    """Status aggregation and output handling."""

    def test_capture_single_stage(self, tracer):
        outcome = run("echo hello", tracer=tracer)
        assert outcome.success
        assert outcome.output == b"hello\n"
        assert outcome.text() == "hello"

    def test_status_call_captures_nothing(self, tracer):
        outcome = run("true", capture=False, tracer=tracer)
        assert outcome.success
        assert outcome.output is None

    def test_failing_interior_stage_fails_pipeline(self, tracer):
        outcome = run("false | cat", tracer=tracer)
        assert [s.returncode for s in outcome.stages] == [1, 0]
        assert not outcome.success
        assert outcome.exit_code == 0
        assert [s.index for s in outcome.failed_stages] == [0]

    def test_pipefail_off_only_counts_last_stage(self, tracer):
        assert run("false | cat", tracer=tracer, pipefail=False).success
        assert not run("true | false", tracer=tracer, pipefail=False).success

    def test_signaled_stage(self, tracer):
        outcome = run("sh -c 'kill -9 $$'", tracer=tracer)
        stage = outcome.last
        assert stage.returncode == -signal.SIGKILL
        assert stage.signal == signal.SIGKILL
        assert stage.exit_code == 128 + signal.SIGKILL
        assert not outcome.success

    @pytest.mark.parametrize(
        "raw,trimmed",
        [
            (b"a\n", b"a"),
            (b"a\r\n", b"a"),
            (b"a\n\n", b"a\n"),
            (b"a", b"a"),
            (b"a\r", b"a\r"),
            (b"", b""),
        ],
    )
    def test_trim_newline(self, raw, trimmed):
        assert trim_newline(raw) == trimmed

    def test_text_raises_decode_error(self):
        outcome = PipelineOutcome(
            stages=(StageOutcome(index=0, argv=("x",), returncode=0),),
            output=b"\xff\xfe\n",
        )
        with pytest.raises(DecodeError) as exc_info:
            outcome.text()
        assert exc_info.value.data == b"\xff\xfe"
        assert outcome.text("latin-1") == "\xff\xfe"


class TestLargeOutput:
    """Output larger than a pipe buffer must not deadlock."""

    def test_two_stage_pipeline_with_large_output(self, tracer):
        outcome = run("seq 1 200000 | cat", tracer=tracer)
        assert outcome.success
        lines = outcome.text().split("\n")
        assert len(lines) == 200000
        assert lines[-1] == "200000"

    def test_large_input_and_output(self, tracer):
        data = b"x" * 1_000_000
        outcome = run("cat | cat", feed_input=True, input=data, tracer=tracer)
        assert outcome.success
        assert outcome.output == data


class TestSpawnFailures:
    """Stages that cannot be launched."""

    def test_missing_binary(self, tracer):
        with pytest.raises(SpawnError) as exc_info:
            run("definitely-not-a-binary-shellrun", tracer=tracer)
        err = exc_info.value
        assert err.stage_index == 0
        assert err.binary == "definitely-not-a-binary-shellrun"
        assert isinstance(err.cause, FileNotFoundError)

    def test_missing_binary_in_later_stage(self, tracer, sink):
        with pytest.raises(SpawnError) as exc_info:
            run("echo hi | definitely-not-a-binary-shellrun", tracer=tracer)
        assert exc_info.value.stage_index == 1
        assert len(sink.lines) == 2

    def test_started_stages_exit_on_broken_pipe(self, tracer, monkeypatch):
        abandoned = []
        original = executor._abandon

        def record(processes):
            abandoned.extend(processes)
            original(processes)

        monkeypatch.setattr(executor, "_abandon", record)
        with pytest.raises(SpawnError) as exc_info:
            run("yes | definitely-not-a-binary-shellrun", tracer=tracer)
        assert exc_info.value.stage_index == 1
        assert len(abandoned) == 1

        deadline = time.monotonic() + 10
        while abandoned[0].poll() is None and time.monotonic() < deadline:
            time.sleep(0.05)
        # Ended by SIGPIPE from its closed reader, not by a kill
        assert abandoned[0].returncode == -signal.SIGPIPE

    def test_embedded_null_byte_is_spawn_error(self, tracer, sink):
        with pytest.raises(SpawnError) as exc_info:
            run("echo hi | cat x\x00y", tracer=tracer)
        err = exc_info.value
        assert err.stage_index == 1
        assert isinstance(err.cause, ValueError)
        assert len(sink.lines) == 2

    def test_bad_encoding_setting_spawns_nothing(self, tracer, sink, monkeypatch):
        monkeypatch.setenv(ENCODING_ENV, "not-a-codec")
        clear_settings_cache()
        with pytest.raises(ValueError):
            run("sleep 3", tracer=tracer)
        assert sink.lines == []

    def test_not_executable(self, tracer, tmp_path):
        script = tmp_path / "script.sh"
        script.write_text("#!/bin/sh\necho hi\n")
        os.chmod(script, 0o644)
        with pytest.raises(SpawnError) as exc_info:
            run(str(script), tracer=tracer)
        assert isinstance(exc_info.value.cause, PermissionError)

    def test_missing_input_file(self, tracer, tmp_path):
        with pytest.raises(SpawnError) as exc_info:
            run(f"cat < {tmp_path / 'missing.txt'}", tracer=tracer)
        assert isinstance(exc_info.value.cause, FileNotFoundError)


class TestRedirections:
    """Files, null device and merged streams."""

    def test_stdout_to_file_and_append(self, tracer, tmp_path):
        out = tmp_path / "out.txt"
        assert run(f"echo one > {out}", tracer=tracer).output == b""
        run(f"echo two >> {out}", tracer=tracer)
        assert out.read_text() == "one\ntwo\n"

    def test_stdin_from_file(self, tracer, tmp_path):
        src = tmp_path / "in.txt"
        src.write_text("b\na\n")
        assert run(f"sort < {src}", tracer=tracer).text() == "a\nb"

    def test_stderr_to_file(self, tracer, tmp_path):
        err = tmp_path / "err.txt"
        outcome = run(f"sh -c 'echo oops >&2' 2> {err}", tracer=tracer)
        assert outcome.output == b""
        assert err.read_text() == "oops\n"

    def test_merge_stderr_into_capture(self, tracer):
        outcome = run("sh -c 'echo out; echo err >&2'", merge_stderr=True, tracer=tracer)
        assert sorted(outcome.text().split("\n")) == ["err", "out"]

    def test_redirect_all_to_file(self, tracer, tmp_path):
        log = tmp_path / "all.log"
        run(f"sh -c 'echo out; echo err >&2' &> {log}", tracer=tracer)
        assert sorted(log.read_text().split()) == ["err", "out"]

    def test_null_device(self, tracer):
        assert run("echo hidden > /dev/null", tracer=tracer).output == b""

    def test_stdout_into_stderr(self, tracer, capfd):
        outcome = run("echo to-stderr >&2", tracer=tracer)
        assert outcome.output == b""
        assert "to-stderr" in capfd.readouterr().err

    def test_interior_stage_writing_to_file_leaves_next_stage_empty(self, tracer, tmp_path):
        out = tmp_path / "out.txt"
        outcome = run(f"echo a > {out} | cat", tracer=tracer)
        assert outcome.success
        assert outcome.output == b""
        assert out.read_text() == "a\n"


class TestEnvironment:
    """Per-stage env, caller env, cwd and input."""

    def test_stage_assignment(self, tracer):
        assert run("GREETING=hey sh -c 'echo $GREETING'", tracer=tracer).text() == "hey"

    def test_caller_env(self, tracer):
        outcome = run("sh -c 'echo $SHELLRUN_TEST_VAR'", env={"SHELLRUN_TEST_VAR": "x"}, tracer=tracer)
        assert outcome.text() == "x"

    def test_cwd(self, tracer, tmp_path):
        outcome = run("pwd", cwd=str(tmp_path), tracer=tracer)
        assert os.path.realpath(outcome.text()) == os.path.realpath(str(tmp_path))

    def test_text_input(self, tracer):
        outcome = run("tr a-z A-Z", feed_input=True, input="shout", tracer=tracer)
        assert outcome.text() == "SHOUT"

    def test_input_not_read_by_stage(self, tracer):
        outcome = run("true", feed_input=True, input=b"x" * 1_000_000, tracer=tracer)
        assert outcome.success


class TestTracing:
    """Trace lines are emitted before each stage starts."""

    def test_one_line_per_stage(self, tracer, sink):
        run("echo hi | wc -c", tracer=tracer)
        assert sink.lines == ["Running ['echo', 'hi'] ...", "Running ['wc', '-c'] ..."]

    def test_failing_sink_does_not_abort(self):
        def broken(line):
            raise RuntimeError("sink unavailable")

        outcome = run("echo ok", tracer=Tracer(broken))
        assert outcome.text() == "ok"


class TestHandle:
    """Spawn without waiting."""

    def test_terminate_running_pipeline(self, tracer):
        handle = spawn(build_plan(parse_pipeline("sleep 30 | cat")), tracer=tracer)
        assert len(handle.pids) == 2
        assert handle.poll() is False
        handle.terminate()
        outcome = handle.wait()
        assert not outcome.success
        assert outcome.stages[0].signal == signal.SIGTERM
        assert handle.poll() is True

    def test_wait_is_idempotent(self, tracer):
        handle = spawn(build_plan(parse_pipeline("echo hi"), capture=True), tracer=tracer)
        first = handle.wait()
        assert handle.wait() is first

    def test_context_manager_waits(self, tracer):
        with spawn(build_plan(parse_pipeline("echo hi"), capture=True), tracer=tracer) as handle:
            pass
        assert handle.wait().text() == "hi"
