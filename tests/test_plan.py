"""Tests for stream wiring of pipeline stages."""

# Local/package imports
from shellrun.parser import parse_pipeline
from shellrun.plan import StreamKind, StreamSpec, build_plan


def wiring(line, **kwargs):
    plan = build_plan(parse_pipeline(line), **kwargs)
    return [(s.stdin.kind, s.stdout.kind, s.stderr.kind) for s in plan.stages]


class TestDefaultWiring:
    """Pipes between stages, caller streams at the ends."""

    def test_single_stage_status_call_inherits_everything(self):
        assert wiring("echo hi") == [
            (StreamKind.INHERIT, StreamKind.INHERIT, StreamKind.INHERIT)
        ]

    def test_single_stage_capture(self):
        assert wiring("echo hi", capture=True) == [
            (StreamKind.INHERIT, StreamKind.CAPTURE, StreamKind.INHERIT)
        ]

    def test_interior_stages_are_piped(self):
        assert wiring("a | b | c", capture=True) == [
            (StreamKind.INHERIT, StreamKind.PIPE, StreamKind.INHERIT),
            (StreamKind.PIPE, StreamKind.PIPE, StreamKind.INHERIT),
            (StreamKind.PIPE, StreamKind.CAPTURE, StreamKind.INHERIT),
        ]

    def test_feed_input_only_reaches_first_stage(self):
        plan = build_plan(parse_pipeline("a | b"), feed_input=True)
        assert plan.stages[0].stdin.kind == StreamKind.FEED
        assert plan.stages[1].stdin.kind == StreamKind.PIPE

    def test_plan_metadata(self):
        pipeline = parse_pipeline("echo hi | wc -c")
        plan = build_plan(pipeline, capture=True)
        assert plan.capture is True
        assert plan.command == str(pipeline)
        assert plan.first.binary == "echo"
        assert plan.last.argv == ("wc", "-c")
        assert [s.index for s in plan.stages] == [0, 1]


class TestRedirectWiring:
    """Explicit redirections win over defaults."""

    def test_output_file_wins_over_capture(self):
        plan = build_plan(parse_pipeline("echo hi >> out.txt"), capture=True)
        assert plan.last.stdout == StreamSpec(StreamKind.FILE, path="out.txt", append=True)

    def test_output_file_on_interior_stage(self):
        assert wiring("echo a > f | cat")[0][1] == StreamKind.FILE

    def test_input_file_wins_over_pipe_and_feed(self):
        plan = build_plan(parse_pipeline("cat < in.txt | sort < other.txt"), feed_input=True)
        assert plan.stages[0].stdin == StreamSpec(StreamKind.FILE, path="in.txt")
        assert plan.stages[1].stdin == StreamSpec(StreamKind.FILE, path="other.txt")

    def test_dev_null_is_null(self):
        assert wiring("cmd < /dev/null > /dev/null 2> /dev/null") == [
            (StreamKind.NULL, StreamKind.NULL, StreamKind.NULL)
        ]

    def test_merge_request_applies_to_every_stage(self):
        kinds = wiring("a | b", merge_stderr=True)
        assert [k[2] for k in kinds] == [StreamKind.STDOUT, StreamKind.STDOUT]

    def test_explicit_stderr_file_wins_over_merge_request(self):
        plan = build_plan(parse_pipeline("a 2> err.log"), merge_stderr=True)
        assert plan.last.stderr == StreamSpec(StreamKind.FILE, path="err.log")

    def test_stderr_dup(self):
        assert wiring("a 2>&1")[0][2] == StreamKind.STDOUT

    def test_stdout_dup_into_stderr(self):
        assert wiring("a >&2", capture=True)[0][1] == StreamKind.STDERR

    def test_dup_cycle_falls_back_to_inherited_stderr(self):
        assert wiring("a >&2 2>&1") == [
            (StreamKind.INHERIT, StreamKind.STDERR, StreamKind.INHERIT)
        ]

    def test_stream_spec_str(self):
        assert str(StreamSpec(StreamKind.FILE, path="x", append=True)) == ">>x"
        assert str(StreamSpec(StreamKind.PIPE)) == "pipe"
