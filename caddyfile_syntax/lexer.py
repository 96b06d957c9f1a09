"""Context-driven lexer and token disambiguation.

The parser asks for a token in a given :class:`LexContext`. Each context has
a fixed, ordered table of classifiers (:data:`PRIORITY_TABLES`). When more
than one classifier matches at the cursor, the winner is chosen by:

1. highest ``precedence`` (``path`` and quoted CEL content use 2),
2. then the longest match,
3. then the earliest entry in the table.

Every character of the input ends up in exactly one emitted token; spaces,
line breaks and comments are emitted as trivia so the stream can be joined
back into the original text.
"""
from __future__ import annotations

import logging
import re
from enum import Enum

from . import classifiers as cls
from .classifiers import Classifier, LexicalError
from .errors import CaddyfileSyntaxError, ErrorKind, SyntaxDiagnostic
from .heredoc import HeredocScanner, line_end
from .tokens import START_POSITION, Position, Token, TokenKind, advance_position

logger = logging.getLogger(__name__)


class LexContext(Enum):
    TOP_LEVEL = "top_level"
    SITE_ADDRESS = "site_address"
    DEFINITION = "definition"
    MATCHER = "matcher"
    DIRECTIVE_FIELD = "directive_field"
    MATCHER_DIRECTIVE = "matcher_directive"
    MATCHER_FIELD = "matcher_field"
    CEL_EXPRESSION = "cel_expression"


_FIELD_TABLE: tuple[Classifier, ...] = (
    cls.NETWORK_ADDRESS,
    cls.BARE_IPV6_OR_CIDR,
    cls.ENVIRONMENT_VARIABLE_CLASSIFIER,
    cls.PLACEHOLDER,
    cls.RAW_STRING,
    cls.INTERPRETED_STRING,
    cls.DURATION,
    cls.INTEGER,
    cls.STATUS_CODE_FALLBACK,
    cls.ARGUMENT,
    cls.HEREDOC_OPEN,
    cls.BLOCK_OPEN,
)

PRIORITY_TABLES: dict[LexContext, tuple[Classifier, ...]] = {
    LexContext.TOP_LEVEL: (
        cls.NAMED_ROUTE_IDENTIFIER,
        cls.SNIPPET_NAME,
        cls.SITE_ADDRESS,
        cls.BLOCK_OPEN,
    ),
    LexContext.SITE_ADDRESS: (cls.SITE_ADDRESS,),
    LexContext.DEFINITION: (
        cls.MATCHER_IDENTIFIER,
        cls.DIRECTIVE_NAME,
    ),
    # First field after a directive name: a matcher wins ties with fields.
    LexContext.MATCHER: (
        cls.WILDCARD,
        cls.PATH_MATCHER,
        cls.MATCHER_IDENTIFIER,
    )
    + _FIELD_TABLE,
    LexContext.DIRECTIVE_FIELD: _FIELD_TABLE,
    LexContext.MATCHER_DIRECTIVE: (cls.MATCHER_DIRECTIVE_NAME,),
    LexContext.MATCHER_FIELD: (
        cls.IP_ADDRESS_OR_CIDR,
        cls.NETWORK_ADDRESS,
        cls.ENVIRONMENT_VARIABLE_CLASSIFIER,
        cls.PLACEHOLDER,
        cls.PATH,
        cls.RAW_STRING,
        cls.INTERPRETED_STRING,
        cls.DURATION,
        cls.INTEGER,
        cls.ARGUMENT,
        cls.HEREDOC_OPEN,
        cls.BLOCK_OPEN,
    ),
    # A back-quote opens quoted content, which outranks the bare form.
    LexContext.CEL_EXPRESSION: (
        cls.QUOTED_CEL_EXPRESSION,
        cls.BARE_CEL_EXPRESSION,
    ),
}

_SPACE_RE = re.compile(r"[^\S\r\n]+")


def select(table: tuple[Classifier, ...], text: str, pos: int) -> tuple[Classifier, int] | None:
    """Resolve the classifiers of ``table`` at ``pos`` to a single winner."""
    best: tuple[int, int, int] | None = None
    winner: tuple[Classifier, int] | None = None
    for index, classifier in enumerate(table):
        length = classifier.match(text, pos)
        if not length:
            continue
        key = (classifier.precedence, length, -index)
        if best is None or key > best:
            best = key
            winner = (classifier, length)
    return winner


def classify(text: str, context: LexContext = LexContext.DIRECTIVE_FIELD) -> TokenKind | None:
    """Return the kind ``text`` lexes to as one whole token, or None."""
    if not text:
        return None
    try:
        hit = select(PRIORITY_TABLES[context], text, 0)
    except LexicalError:
        return None
    if hit is None or hit[1] != len(text):
        return None
    return hit[0].kind


class Lexer:
    """Cursor over the source text that records every emitted token."""

    def __init__(self, text: str) -> None:
        self.text = text
        self.pos = 0
        self.position: Position = START_POSITION
        self.tokens: list[Token] = []
        self.heredoc = HeredocScanner(text)

    # -- cursor ------------------------------------------------------------

    @property
    def at_end(self) -> bool:
        return self.pos >= len(self.text)

    def peek(self, offset: int = 0) -> str:
        idx = self.pos + offset
        return self.text[idx] if idx < len(self.text) else ""

    def startswith(self, prefix: str) -> bool:
        return self.text.startswith(prefix, self.pos)

    def at_line_end(self) -> bool:
        return self.at_end or self.text[self.pos] in "\r\n"

    def rest_of_line(self) -> str:
        eol, _ = line_end(self.text, self.pos)
        return self.text[self.pos : eol]

    def position_at(self, offset: int) -> Position:
        if offset >= self.pos:
            return advance_position(self.position, self.text[self.pos : offset])
        return advance_position(START_POSITION, self.text[:offset])

    # -- emitting ----------------------------------------------------------

    def emit(self, kind: TokenKind, length: int) -> Token:
        text = self.text[self.pos : self.pos + length]
        end = advance_position(self.position, text)
        token = Token(kind=kind, text=text, start=self.position, end=end)
        self.tokens.append(token)
        self.pos += len(text)
        self.position = end
        return token

    def skip_space(self) -> None:
        """Consume spaces and a trailing comment, stopping at a line break."""
        while not self.at_end:
            match = _SPACE_RE.match(self.text, self.pos)
            if match is not None:
                self.emit(TokenKind.WHITESPACE, match.end() - self.pos)
                continue
            length = cls.COMMENT.match(self.text, self.pos)
            if length:
                self.emit(TokenKind.COMMENT, length)
                continue
            break

    def newline(self) -> Token | None:
        if self.at_end:
            return None
        if self.startswith("\r\n"):
            return self.emit(TokenKind.NEWLINE, 2)
        if self.text[self.pos] in "\r\n":
            return self.emit(TokenKind.NEWLINE, 1)
        return None

    def skip_blank(self) -> None:
        """Consume spaces, comments and line breaks."""
        while True:
            self.skip_space()
            if self.newline() is None:
                return

    def skip_line(self) -> Token | None:
        """Emit the rest of the current line as an error token."""
        eol, _ = line_end(self.text, self.pos)
        if eol == self.pos:
            return None
        return self.emit(TokenKind.ERROR, eol - self.pos)

    # -- classification ----------------------------------------------------

    def match(self, classifier: Classifier) -> int:
        try:
            return classifier.match(self.text, self.pos)
        except LexicalError as exc:
            raise self.error_from(exc) from None

    def select(self, context: LexContext) -> tuple[Classifier, int] | None:
        try:
            return select(PRIORITY_TABLES[context], self.text, self.pos)
        except LexicalError as exc:
            raise self.error_from(exc) from None

    def take(self, classifier: Classifier) -> Token | None:
        length = self.match(classifier)
        if not length:
            return None
        return self.emit(classifier.kind, length)

    # -- heredocs ----------------------------------------------------------

    def heredoc_open(self) -> Token:
        token = self.emit(TokenKind.PUNCTUATION, 2)
        self.heredoc.begin(self.pos)
        return token

    def heredoc_tag(self) -> Token:
        try:
            length = self.heredoc.read_tag(self.pos)
        except LexicalError as exc:
            raise self.error_from(exc) from None
        token = self.emit(TokenKind.HEREDOC_START, length)
        self.newline()
        return token

    def heredoc_line(self) -> Token:
        try:
            line = self.heredoc.next_line(self.pos)
        except LexicalError as exc:
            raise self.error_from(exc) from None
        if not line.is_end:
            return self.emit(TokenKind.HEREDOC_BODY, len(line.text))
        if line.indent:
            self.emit(TokenKind.WHITESPACE, len(line.indent))
        return self.emit(TokenKind.HEREDOC_END, len(line.text))

    # -- errors ------------------------------------------------------------

    def diagnostic(
        self,
        kind: ErrorKind,
        message: str,
        *,
        expected: str | None = None,
        offset: int | None = None,
    ) -> SyntaxDiagnostic:
        position = self.position if offset is None else self.position_at(offset)
        return SyntaxDiagnostic(kind=kind, message=message, position=position, expected=expected)

    def error(
        self,
        kind: ErrorKind,
        message: str,
        *,
        expected: str | None = None,
        offset: int | None = None,
    ) -> CaddyfileSyntaxError:
        return CaddyfileSyntaxError([self.diagnostic(kind, message, expected=expected, offset=offset)])

    def error_from(self, exc: LexicalError) -> CaddyfileSyntaxError:
        return self.error(exc.kind, exc.message, expected=exc.expected, offset=exc.offset)

    def unexpected(self, expected: str) -> CaddyfileSyntaxError:
        """Build an error for whatever sits at the cursor."""
        if self.at_end:
            return self.error(ErrorKind.UNEXPECTED_TOKEN, "unexpected end of input", expected=expected)
        hint = cls.invalid_address_hint(self.text, self.pos)
        if hint is not None:
            return self.error(ErrorKind.INVALID_ADDRESS_LITERAL, hint, expected=expected)
        snippet = self.rest_of_line().split(None, 1)
        shown = snippet[0] if snippet else self.text[self.pos]
        return self.error(ErrorKind.UNEXPECTED_TOKEN, f"unexpected {shown!r}", expected=expected)
