"""Tokenizer for shell-style command lines."""

from typing import Iterator, Optional

from shellrun.ast import Token, TokenType
from shellrun.errors import CommandSyntaxError, EscapeError, QuoteError

OPERATOR_CHARS = "|;<>&"

# Escapes honoured inside double quotes; any other backslash is literal there
DQUOTE_ESCAPES = '"\\'


def tokenize(line: str) -> Iterator[Token]:
    """
    Split a command line into tokens.

    Args:
        line: Command line with all values already interpolated.

    Yields:
        Tokens in input order.

    Raises:
        QuoteError: If a quote is never closed.
        EscapeError: If the line ends with an unescaped backslash.
        CommandSyntaxError: For unsupported operators such as a lone ``&``.

    Example:
        >>> [t.value for t in tokenize("grep -F 'a b' | wc -l")]
        ['grep', '-F', 'a b', '|', 'wc', '-l']
    """
    return Lexer(line).tokens()


class Lexer:
    """
    Single pass scanner over a command line.

    Quoted and unquoted parts that touch each other form one word. Operators
    split words even when glued to them, so ``a>b`` lexes as ``a``, ``>``,
    ``b``. A bare ``1`` or ``2`` directly before ``>`` is taken as the fd
    being redirected.
    """

    def __init__(self, line: str):
        self.line = line
        self._reset_word()

    def _reset_word(self) -> None:
        self._buf: list[str] = []
        self._in_word = False
        self._quoted_at: Optional[int] = None
        self._start = 0

    def _begin_word(self, pos: int) -> None:
        if not self._in_word:
            self._in_word = True
            self._start = pos

    def _take_word(self) -> Optional[Token]:
        if not self._in_word:
            return None
        token = Token(TokenType.WORD, "".join(self._buf), self._start, self._quoted_at)
        self._reset_word()
        return token

    def _mark_quoted(self) -> None:
        if self._quoted_at is None:
            self._quoted_at = sum(len(part) for part in self._buf)

    def _fd_prefix(self) -> Optional[str]:
        """Return '1' or '2' if the pending word is a bare fd number."""
        if self._in_word and self._quoted_at is None:
            word = "".join(self._buf)
            if word in ("1", "2"):
                return word
        return None

    def tokens(self) -> Iterator[Token]:
        line = self.line
        length = len(line)
        i = 0
        while i < length:
            ch = line[i]

            if ch.isspace():
                word = self._take_word()
                if word is not None:
                    yield word
                i += 1

            elif ch == "'":
                end = line.find("'", i + 1)
                if end < 0:
                    raise QuoteError("Unterminated single quote", i)
                self._begin_word(i)
                self._mark_quoted()
                self._buf.append(line[i + 1 : end])
                i = end + 1

            elif ch == '"':
                self._begin_word(i)
                self._mark_quoted()
                i = self._scan_double_quoted(i)

            elif ch == "\\":
                if i + 1 >= length:
                    raise EscapeError("Trailing backslash", i)
                self._begin_word(i)
                self._mark_quoted()
                self._buf.append(line[i + 1])
                i += 2

            elif ch in OPERATOR_CHARS:
                fd = self._fd_prefix() if ch == ">" else None
                if fd is not None:
                    start = self._start
                    self._reset_word()
                else:
                    start = i
                    word = self._take_word()
                    if word is not None:
                        yield word
                token, i = self._scan_operator(i, start, fd)
                yield token

            else:
                self._begin_word(i)
                self._buf.append(ch)
                i += 1

        word = self._take_word()
        if word is not None:
            yield word

    def _scan_double_quoted(self, open_pos: int) -> int:
        """Consume a double-quoted region and return the index after it."""
        line = self.line
        j = open_pos + 1
        while j < len(line):
            c = line[j]
            if c == '"':
                return j + 1
            if c == "\\" and j + 1 < len(line) and line[j + 1] in DQUOTE_ESCAPES:
                self._buf.append(line[j + 1])
                j += 2
                continue
            self._buf.append(c)
            j += 1
        raise QuoteError("Unterminated double quote", open_pos)

    def _scan_operator(self, i: int, start: int, fd: Optional[str]) -> tuple[Token, int]:
        """Read the operator at ``i``; return the token and the next index."""
        line = self.line
        ch = line[i]
        nxt = line[i + 1 : i + 2]
        prefix = fd or ""

        if ch == "|":
            return Token(TokenType.PIPE, "|", start), i + 1
        if ch == ";":
            return Token(TokenType.SEMICOLON, ";", start), i + 1
        if ch == "<":
            return Token(TokenType.REDIRECT_IN, "<", start), i + 1

        if ch == "&":
            if nxt != ">":
                raise CommandSyntaxError("Background jobs are not supported", i)
            if line[i + 2 : i + 3] == ">":
                return Token(TokenType.REDIRECT_ALL_APPEND, "&>>", start), i + 3
            return Token(TokenType.REDIRECT_ALL, "&>", start), i + 2

        # ch == ">"
        if nxt == ">":
            kind = TokenType.REDIRECT_ERR_APPEND if fd == "2" else TokenType.REDIRECT_APPEND
            return Token(kind, prefix + ">>", start), i + 2
        if nxt == "&":
            target = line[i + 2 : i + 3]
            if fd == "2" and target == "1":
                return Token(TokenType.ERR_TO_OUT, "2>&1", start), i + 3
            if fd != "2" and target == "2":
                return Token(TokenType.OUT_TO_ERR, prefix + ">&2", start), i + 3
            raise CommandSyntaxError(
                f"Unsupported fd duplication '{prefix}>&{target}'", start
            )
        kind = TokenType.REDIRECT_ERR if fd == "2" else TokenType.REDIRECT_OUT
        return Token(kind, prefix + ">", start), i + 1
