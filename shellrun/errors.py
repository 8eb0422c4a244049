"""
Exceptions raised by shellrun.

The hierarchy mirrors the stages a command line goes through:

- ShellRunError: Base exception for all shellrun errors
  - ParseError: Malformed command line, raised before anything is spawned
    - QuoteError: Unterminated single or double quote
    - EscapeError: Trailing backslash with nothing to escape
    - CommandSyntaxError: Misplaced pipe, separator or redirection
  - SpawnError: A stage could not be launched
  - CommandFailed: The pipeline ran but did not fully succeed
  - DecodeError: Captured output is not valid text
"""

from typing import Optional


class ShellRunError(Exception):
    """Base exception class for shellrun."""

    pass


class ParseError(ShellRunError, ValueError):
    """Raised when a command line cannot be tokenized or parsed."""

    def __init__(self, message: str, pos: Optional[int] = None):
        self.pos = pos
        if pos is not None:
            message = f"{message} (at position {pos})"
        super().__init__(message)


class QuoteError(ParseError):
    """Raised when a quoted region is never closed."""

    pass


class EscapeError(ParseError):
    """Raised when the input ends with an unescaped backslash."""

    pass


class CommandSyntaxError(ParseError):
    """Raised for empty stages, dangling pipes and redirections without a target."""

    pass


class SpawnError(ShellRunError):
    """Raised when a pipeline stage cannot be started."""

    def __init__(self, stage_index: int, binary: str, cause: Exception):
        self.stage_index = stage_index
        self.binary = binary
        self.cause = cause
        super().__init__(f"Spawning stage {stage_index} ({binary!r}) failed: {cause}")


class CommandFailed(ShellRunError, RuntimeError):
    """Raised when one or more stages exit non-zero or are killed by a signal.

    Only the last stage's exit code is carried; the full per-stage picture is
    available on ``outcome``.
    """

    def __init__(self, exit_code: int, command: str = "", outcome=None):
        self.exit_code = exit_code
        self.command = command
        self.outcome = outcome
        super().__init__(f"Command failed with exit code {exit_code}: {command}")


class DecodeError(ShellRunError, ValueError):
    """Raised when captured output cannot be decoded as text."""

    def __init__(self, data: bytes, encoding: str, cause: Exception):
        self.data = data
        self.encoding = encoding
        self.cause = cause
        super().__init__(f"Captured output is not valid {encoding}: {cause}")
