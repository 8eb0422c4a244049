"""Parser that groups tokens into pipelines."""

import re
from typing import Iterable, Iterator, Optional, Union

from shellrun.ast import FILE_REDIRECTS, Pipeline, Redirect, Script, Stage, Token, TokenType
from shellrun.errors import CommandSyntaxError
from shellrun.lexer import tokenize
from shellrun.logger import get_logger

logger = get_logger(__name__)

IGNORE_CMD = "ignore"

_ASSIGNMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")


def parse(source: Union[str, Iterable[Token]]) -> Script:
    """
    Parse a command line (or an already lexed token stream) into a Script.

    Args:
        source: Command line string, or tokens from ``tokenize``.

    Returns:
        Script with one Pipeline per ``;``-separated command.

    Raises:
        QuoteError, EscapeError: From the lexer.
        CommandSyntaxError: For empty commands, dangling pipes, or
            redirections without a target.

    Example:
        >>> str(parse("echo hi | wc -c"))
        "['echo', 'hi'] | ['wc', '-c']"
    """
    tokens = tokenize(source) if isinstance(source, str) else source
    return Parser(tokens).parse()


def parse_pipeline(source: Union[str, Iterable[Token]]) -> Pipeline:
    """Parse a command line that must hold exactly one pipeline."""
    script = parse(source)
    if len(script.pipelines) != 1:
        raise CommandSyntaxError(
            f"Expected a single pipeline, got {len(script.pipelines)}"
        )
    return script.pipelines[0]


class _StageBuilder:
    """Mutable accumulator for the stage being parsed."""

    def __init__(self, pos: int):
        self.pos = pos
        self.words: list[str] = []
        self.env: list[tuple[str, str]] = []
        self.stdin: Optional[Redirect] = None
        self.stdout: Optional[Redirect] = None
        self.stderr: Optional[Redirect] = None

    def is_empty(self) -> bool:
        return (
            not self.words
            and not self.env
            and self.stdin is None
            and self.stdout is None
            and self.stderr is None
        )

    def add_word(self, value: str, quoted_at: Optional[int] = None) -> None:
        # NAME=value is an assignment only before the command name, and only
        # when NAME and "=" are unquoted
        match = _ASSIGNMENT_RE.match(value)
        if (
            match
            and (quoted_at is None or match.end() <= quoted_at)
            and all(w == IGNORE_CMD for w in self.words)
        ):
            key, val = value.split("=", 1)
            self.env.append((key, val))
        else:
            self.words.append(value)

    def redirect(self, kind: TokenType, path: Optional[str] = None) -> None:
        """Attach a redirection; a later one for the same stream wins."""
        if kind == TokenType.REDIRECT_IN:
            self.stdin = Redirect(path=path)
        elif kind in (TokenType.REDIRECT_OUT, TokenType.REDIRECT_APPEND):
            self.stdout = Redirect(path=path, append=kind == TokenType.REDIRECT_APPEND)
        elif kind in (TokenType.REDIRECT_ERR, TokenType.REDIRECT_ERR_APPEND):
            self.stderr = Redirect(
                path=path, append=kind == TokenType.REDIRECT_ERR_APPEND
            )
        elif kind in (TokenType.REDIRECT_ALL, TokenType.REDIRECT_ALL_APPEND):
            self.stdout = Redirect(
                path=path, append=kind == TokenType.REDIRECT_ALL_APPEND
            )
            self.stderr = Redirect(fd=1)
        elif kind == TokenType.ERR_TO_OUT:
            self.stderr = Redirect(fd=1)
        elif kind == TokenType.OUT_TO_ERR:
            self.stdout = Redirect(fd=2)
        else:
            raise ValueError(f"Not a redirection: {kind}")

    def build(self, first: bool) -> tuple[Stage, bool]:
        """Freeze into a Stage; also report whether a leading ignore was seen."""
        words = self.words
        ignored = False
        while words and words[0] == IGNORE_CMD:
            words = words[1:]
            ignored = True
        if ignored and not first:
            logger.warning("Builtin %r is only honoured on the first command", IGNORE_CMD)
        if not words:
            if self.env:
                raise CommandSyntaxError(
                    "Variable assignment without a command is not supported", self.pos
                )
            raise CommandSyntaxError("Missing command", self.pos)
        stage = Stage(
            argv=tuple(words),
            env=tuple(self.env),
            stdin=self.stdin,
            stdout=self.stdout,
            stderr=self.stderr,
        )
        return stage, ignored and first


class Parser:
    """
    Left-to-right parser over a token stream.

    Words accumulate into the current stage, ``|`` closes a stage and ``;``
    closes a pipeline. Each file redirection consumes exactly one following
    word as its target.
    """

    def __init__(self, tokens: Iterable[Token]):
        self._tokens: Iterator[Token] = iter(tokens)

    def parse(self) -> Script:
        pipelines: list[Pipeline] = []
        stages: list[Stage] = []
        ignore_error = False
        current = _StageBuilder(pos=0)
        end_pos = 0

        for token in self._tokens:
            end_pos = token.pos + len(token.value)

            if token.type == TokenType.WORD:
                if current.is_empty():
                    current.pos = token.pos
                current.add_word(token.value, token.quoted_at)

            elif token.type == TokenType.PIPE:
                if current.is_empty():
                    raise CommandSyntaxError("Missing command before '|'", token.pos)
                stage, ignored = current.build(first=not stages)
                ignore_error = ignore_error or ignored
                stages.append(stage)
                current = _StageBuilder(pos=end_pos)

            elif token.type == TokenType.SEMICOLON:
                if current.is_empty():
                    if stages:
                        raise CommandSyntaxError("Missing command after '|'", token.pos)
                    raise CommandSyntaxError("Missing command before ';'", token.pos)
                stage, ignored = current.build(first=not stages)
                stages.append(stage)
                pipelines.append(
                    Pipeline(stages=tuple(stages), ignore_error=ignore_error or ignored)
                )
                stages = []
                ignore_error = False
                current = _StageBuilder(pos=end_pos)

            elif token.type in FILE_REDIRECTS:
                target = next(self._tokens, None)
                if target is None or target.type != TokenType.WORD:
                    raise CommandSyntaxError(
                        f"Missing target after '{token.value}'", token.pos
                    )
                if current.is_empty():
                    current.pos = token.pos
                current.redirect(token.type, target.value)
                end_pos = target.pos + len(target.value)

            else:
                if current.is_empty():
                    current.pos = token.pos
                current.redirect(token.type)

        if current.is_empty():
            if stages:
                raise CommandSyntaxError("Missing command after '|'", end_pos)
            if not pipelines:
                raise CommandSyntaxError("Empty command", 0)
        else:
            stage, ignored = current.build(first=not stages)
            stages.append(stage)
            pipelines.append(
                Pipeline(stages=tuple(stages), ignore_error=ignore_error or ignored)
            )

        return Script(pipelines=tuple(pipelines))
