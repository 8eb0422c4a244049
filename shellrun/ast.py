"""AST nodes for parsed command lines."""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Iterator, Optional


class TokenType(Enum):
    """Token types produced by the lexer.

    Attributes:
        WORD: An argument, with quoting already resolved.
        PIPE: ``|``
        SEMICOLON: ``;``
        REDIRECT_IN: ``<``
        REDIRECT_OUT: ``>`` or ``1>``
        REDIRECT_APPEND: ``>>`` or ``1>>``
        REDIRECT_ERR: ``2>``
        REDIRECT_ERR_APPEND: ``2>>``
        REDIRECT_ALL: ``&>``
        REDIRECT_ALL_APPEND: ``&>>``
        ERR_TO_OUT: ``2>&1``
        OUT_TO_ERR: ``>&2`` or ``1>&2``
    """

    WORD = auto()
    PIPE = auto()
    SEMICOLON = auto()
    REDIRECT_IN = auto()
    REDIRECT_OUT = auto()
    REDIRECT_APPEND = auto()
    REDIRECT_ERR = auto()
    REDIRECT_ERR_APPEND = auto()
    REDIRECT_ALL = auto()
    REDIRECT_ALL_APPEND = auto()
    ERR_TO_OUT = auto()
    OUT_TO_ERR = auto()


# Redirections that need a following path word
FILE_REDIRECTS = frozenset(
    {
        TokenType.REDIRECT_IN,
        TokenType.REDIRECT_OUT,
        TokenType.REDIRECT_APPEND,
        TokenType.REDIRECT_ERR,
        TokenType.REDIRECT_ERR_APPEND,
        TokenType.REDIRECT_ALL,
        TokenType.REDIRECT_ALL_APPEND,
    }
)


@dataclass(frozen=True)
class Token:
    """A lexed piece of the command line."""

    type: TokenType
    value: str
    pos: int = 0
    # Offset in value where the first quoted or escaped character sits
    quoted_at: Optional[int] = None

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, pos={self.pos})"


@dataclass(frozen=True)
class Node:
    """Base class for all AST nodes."""

    pass


@dataclass(frozen=True)
class Redirect(Node):
    """Target of a stream redirection.

    Either ``path`` names a file, or ``fd`` names the stream this one is
    duplicated into (1 for stdout, 2 for stderr).
    """

    path: Optional[str] = None
    append: bool = False
    fd: Optional[int] = None

    def describe(self, source_fd: int) -> str:
        if self.fd is not None:
            return f"{source_fd}>&{self.fd}"
        if source_fd == 0:
            return f"< {self.path}"
        op = ">>" if self.append else ">"
        return f"{source_fd}{op} {self.path}"


@dataclass(frozen=True)
class Stage(Node):
    """One command of a pipeline."""

    argv: tuple[str, ...]
    env: tuple[tuple[str, str], ...] = ()
    stdin: Optional[Redirect] = None
    stdout: Optional[Redirect] = None
    stderr: Optional[Redirect] = None

    def __post_init__(self):
        if not self.argv:
            raise ValueError("Stage requires at least one argument")

    @property
    def binary(self) -> str:
        return self.argv[0]

    @property
    def redirects(self) -> list[str]:
        """Redirections in fd order, rendered shell-style."""
        rendered = []
        for fd, target in ((0, self.stdin), (1, self.stdout), (2, self.stderr)):
            if target is not None:
                rendered.append(target.describe(fd))
        return rendered

    def describe(self) -> str:
        """Bracketed argv list, with env and redirects in parentheses."""
        text = repr(list(self.argv))
        extra = []
        if self.env:
            extra.append(repr(dict(self.env)))
        if self.redirects:
            extra.append(repr(self.redirects))
        if extra:
            text += f"({', '.join(extra)})"
        return text


@dataclass(frozen=True)
class Pipeline(Node):
    """Stages connected by pipes."""

    stages: tuple[Stage, ...]
    ignore_error: bool = False

    def __post_init__(self):
        if not self.stages:
            raise ValueError("Pipeline requires at least one stage")

    def __str__(self) -> str:
        return " | ".join(stage.describe() for stage in self.stages)


@dataclass(frozen=True)
class Script(Node):
    """Pipelines separated by ``;``, run in order."""

    pipelines: tuple[Pipeline, ...]

    def __str__(self) -> str:
        return "; ".join(str(p) for p in self.pipelines)


def walk_tree(node: Node) -> Iterator[Node]:
    """Generator that yields all nodes in the tree (depth-first)."""
    yield node
    if isinstance(node, Script):
        for pipeline in node.pipelines:
            yield from walk_tree(pipeline)
    elif isinstance(node, Pipeline):
        for stage in node.stages:
            yield from walk_tree(stage)
    elif isinstance(node, Stage):
        for target in (node.stdin, node.stdout, node.stderr):
            if target is not None:
                yield target


def iter_stages(node: Node) -> Iterator[Stage]:
    """Yield every Stage in a tree, in execution order."""
    for n in walk_tree(node):
        if isinstance(n, Stage):
            yield n
