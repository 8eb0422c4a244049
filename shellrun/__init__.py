"""shellrun - Run shell-style command pipelines without a shell."""

from shellrun.pipeline import Command, clear_command_cache, run_cmd, run_fun
from shellrun.ast import Pipeline, Redirect, Script, Stage, Token, TokenType
from shellrun.lexer import tokenize
from shellrun.parser import parse, parse_pipeline
from shellrun.plan import ExecutionPlan, StagePlan, StreamKind, StreamSpec, build_plan
from shellrun.executor import (
    PipelineHandle,
    PipelineOutcome,
    StageOutcome,
    execute,
    spawn,
)
from shellrun.result import captured_text, check_status
from shellrun.trace import RecordingSink, Tracer
from shellrun.config import get_settings, set_debug, set_pipefail
from shellrun.errors import (
    CommandFailed,
    CommandSyntaxError,
    DecodeError,
    EscapeError,
    ParseError,
    QuoteError,
    ShellRunError,
    SpawnError,
)

__version__ = "0.1.0"
__all__ = [
    # Call shapes
    "Command",
    "run_cmd",
    "run_fun",
    "clear_command_cache",
    # Parsing
    "tokenize",
    "parse",
    "parse_pipeline",
    "Token",
    "TokenType",
    "Stage",
    "Pipeline",
    "Script",
    "Redirect",
    # Wiring and execution
    "build_plan",
    "ExecutionPlan",
    "StagePlan",
    "StreamKind",
    "StreamSpec",
    "spawn",
    "execute",
    "PipelineHandle",
    "PipelineOutcome",
    "StageOutcome",
    "check_status",
    "captured_text",
    # Tracing and settings
    "Tracer",
    "RecordingSink",
    "get_settings",
    "set_debug",
    "set_pipefail",
    # Errors
    "ShellRunError",
    "ParseError",
    "QuoteError",
    "EscapeError",
    "CommandSyntaxError",
    "SpawnError",
    "CommandFailed",
    "DecodeError",
]
