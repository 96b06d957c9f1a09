"""Structural grammar that turns a Caddyfile into a syntax tree.

The top level moves through :class:`Phase` values in one direction only::

    START -> GLOBAL_OPTIONS -> DEFINITIONS -> SITE_BLOCKS | SINGLE_SITE

Each top-level production checks the phase before it is accepted, so
ordering mistakes are reported where they happen instead of by a later
validation pass.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Callable

from . import classifiers as cls
from .config import ParseOptions
from .errors import CaddyfileSyntaxError, ErrorKind, SyntaxDiagnostic
from .lexer import LexContext, Lexer
from .models import Node, NodeBuilder, NodeType
from .tokens import START_POSITION, Position, Token, TokenKind

logger = logging.getLogger(__name__)

_NOT_RE = re.compile(r"not[^\S\r\n]")
_SPACE_RE = re.compile(r"[^\S\r\n]*")
# Shape characters that set a site address apart from a bare directive name.
_SITE_SHAPE_CHARS = frozenset(".:/[{*")


class Phase(IntEnum):
    START = 0
    GLOBAL_OPTIONS = 1
    DEFINITIONS = 2
    SITE_BLOCKS = 3
    SINGLE_SITE = 4


@dataclass(slots=True)
class ParseResult:
    tree: Node | None
    tokens: tuple[Token, ...] = ()
    diagnostics: list[SyntaxDiagnostic] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.tree is not None and not self.diagnostics


class CaddyfileParser:
    """Recursive descent parser driving a :class:`Lexer` one token at a time."""

    def __init__(self, text: str, options: ParseOptions | None = None) -> None:
        self.lexer = Lexer(text)
        self.options = options or ParseOptions()
        self.phase = Phase.START
        self.diagnostics: list[SyntaxDiagnostic] = []
        self.stopped = False

    # -- entry points ------------------------------------------------------

    def parse_source_file(self) -> Node:
        lx = self.lexer
        root = NodeBuilder(NodeType.SOURCE_FILE, START_POSITION, anchored=True)
        while True:
            lx.skip_blank()
            if lx.at_end or self.stopped:
                break
            self._guarded(root, self._top_level)
        return root.build(end=lx.position)

    def parse_definitions(self) -> list[Node]:
        """Parse the text as the inside of a block."""
        lx = self.lexer
        items = NodeBuilder(NodeType.BLOCK, START_POSITION, anchored=True)
        while True:
            lx.skip_blank()
            if lx.at_end or self.stopped:
                break
            self._guarded(items, self._definition)
        return [child for child in items.children if isinstance(child, Node)]

    # -- top level ---------------------------------------------------------

    def _top_level(self) -> Node:
        lx = self.lexer
        hit = lx.select(LexContext.TOP_LEVEL)
        if hit is None:
            raise lx.unexpected("global options, snippet, named route or site address")
        classifier, length = hit
        if classifier is cls.BLOCK_OPEN:
            if self.phase is not Phase.START:
                raise lx.error(
                    ErrorKind.UNEXPECTED_TOKEN,
                    "global options must be the first block in the file",
                    expected="site address, snippet or named route",
                )
            self._advance(Phase.GLOBAL_OPTIONS)
            return self._global_options()
        if classifier is cls.SNIPPET_NAME or classifier is cls.NAMED_ROUTE_IDENTIFIER:
            if self.phase >= Phase.SITE_BLOCKS:
                raise self._misplaced_definition(length)
            self._advance(Phase.DEFINITIONS)
            return self._snippet_or_route(classifier, length)
        return self._site()

    def _global_options(self) -> Node:
        builder = NodeBuilder(NodeType.GLOBAL_OPTIONS, self.lexer.position)
        opener = self._block_open(builder)
        self._block_body(builder, opener, self._global_option, None)
        return builder.build()

    def _global_option(self) -> Node:
        lx = self.lexer
        hit = lx.select(LexContext.DEFINITION)
        if hit is not None and hit[0] is cls.MATCHER_IDENTIFIER:
            raise lx.error(
                ErrorKind.UNEXPECTED_TOKEN,
                "named matchers are not allowed in global options",
                expected="directive",
            )
        if hit is None:
            raise lx.unexpected("directive")
        return self._directive(hit[1])

    def _snippet_or_route(self, classifier: cls.Classifier, length: int) -> Node:
        lx = self.lexer
        node_type = NodeType.SNIPPET_DEFINITION if classifier is cls.SNIPPET_NAME else NodeType.NAMED_ROUTE
        builder = NodeBuilder(node_type, lx.position)
        builder.add(lx.emit(classifier.kind, length), "name")
        lx.skip_space()
        if lx.peek() != "{":
            raise lx.unexpected("'{'")
        builder.add(self._block())
        return builder.build()

    def _site(self) -> Node:
        lx = self.lexer
        start = lx.position
        builder = NodeBuilder(NodeType.SITE_BLOCK, start)
        self._site_names(builder)
        lx.skip_space()
        if lx.peek() == "{":
            self._advance(Phase.SITE_BLOCKS)
            builder.add(self._block())
            return builder.build()
        if not lx.at_line_end():
            raise lx.unexpected("',' or '{'")
        if self.phase is Phase.SITE_BLOCKS:
            raise self._error(
                ErrorKind.MULTIPLE_BARE_AND_BLOCK_SITES,
                "a site without braces cannot follow site blocks",
                start,
                expected="'{'",
            )
        self._advance(Phase.SINGLE_SITE)
        builder.type = NodeType.SINGLE_SITE
        self._single_site_body(builder)
        return builder.build()

    def _site_names(self, builder: NodeBuilder) -> None:
        lx = self.lexer
        token = lx.take(cls.SITE_ADDRESS)
        if token is None:
            raise lx.unexpected("site address")
        builder.add(token, "name")
        while lx.peek() == ",":
            builder.add(lx.emit(TokenKind.PUNCTUATION, 1))
            lx.skip_blank()
            token = lx.take(cls.SITE_ADDRESS)
            if token is None:
                raise lx.unexpected("site address")
            builder.add(token, "name")

    def _single_site_body(self, builder: NodeBuilder) -> None:
        lx = self.lexer
        while True:
            lx.skip_blank()
            if lx.at_end or self.stopped:
                return
            self._guarded(builder, self._single_site_definition, "body")

    def _single_site_definition(self) -> Node:
        lx = self.lexer
        if self._looks_like_site_block():
            raise lx.error(
                ErrorKind.MULTIPLE_BARE_AND_BLOCK_SITES,
                "a site block cannot follow a site without braces",
                expected="directive or named matcher",
            )
        length = lx.match(cls.SNIPPET_NAME) or lx.match(cls.NAMED_ROUTE_IDENTIFIER)
        if length:
            raise self._misplaced_definition(length)
        return self._definition()

    def _looks_like_site_block(self) -> bool:
        """True when the current line reads like ``host.tld, other.tld {``."""
        lx = self.lexer
        text = lx.text
        idx = lx.pos
        length = cls.SITE_ADDRESS.match(text, idx)
        if not length or not _SITE_SHAPE_CHARS.intersection(text[idx : idx + length]):
            return False
        idx += length
        while text.startswith(",", idx):
            idx = _SPACE_RE.match(text, idx + 1).end()
            length = cls.SITE_ADDRESS.match(text, idx)
            if not length:
                return False
            idx += length
        idx = _SPACE_RE.match(text, idx).end()
        if not text.startswith("{", idx):
            return False
        idx = _SPACE_RE.match(text, idx + 1).end()
        return idx >= len(text) or text[idx] in "\r\n#"

    def _misplaced_definition(self, length: int) -> CaddyfileSyntaxError:
        name = self.lexer.text[self.lexer.pos : self.lexer.pos + length]
        return self.lexer.error(
            ErrorKind.MISPLACED_SNIPPET_OR_ROUTE,
            f"{name} must be defined before the first site",
            expected="directive or site address",
        )

    # -- blocks ------------------------------------------------------------

    def _block(self) -> Node:
        builder = NodeBuilder(NodeType.BLOCK, self.lexer.position)
        opener = self._block_open(builder)
        self._block_body(builder, opener, self._definition, "body")
        return builder.build()

    def _block_open(self, builder: NodeBuilder) -> Token:
        lx = self.lexer
        token = lx.emit(TokenKind.PUNCTUATION, 1)
        builder.add(token)
        self._expect_line_end("line break after '{'")
        return token

    def _block_body(
        self,
        builder: NodeBuilder,
        opener: Token,
        item: Callable[[], Node],
        label: str | None,
    ) -> None:
        lx = self.lexer
        while True:
            lx.skip_blank()
            if self.stopped:
                return
            if lx.at_end:
                self._report(
                    SyntaxDiagnostic(
                        kind=ErrorKind.UNTERMINATED_BLOCK,
                        message=f"block opened at {opener.start} is never closed",
                        position=opener.start,
                        expected="'}'",
                    )
                )
                return
            if lx.peek() == "}":
                builder.add(lx.emit(TokenKind.PUNCTUATION, 1))
                self._expect_line_end("line break after '}'")
                return
            self._guarded(builder, item, label)

    def _expect_line_end(self, expected: str) -> None:
        lx = self.lexer
        lx.skip_space()
        if lx.at_line_end():
            return
        error = lx.unexpected(expected)
        self._report(error.diagnostic)
        lx.skip_line()

    # -- definitions -------------------------------------------------------

    def _definition(self) -> Node:
        lx = self.lexer
        hit = lx.select(LexContext.DEFINITION)
        if hit is None:
            raise lx.unexpected("directive or named matcher")
        classifier, length = hit
        if classifier is cls.MATCHER_IDENTIFIER:
            return self._named_matcher(length)
        return self._directive(length)

    def _directive(self, length: int) -> Node:
        lx = self.lexer
        builder = NodeBuilder(NodeType.DIRECTIVE, lx.position)
        builder.add(lx.emit(TokenKind.DIRECTIVE_NAME, length), "name")
        context = LexContext.MATCHER
        while True:
            lx.skip_space()
            if lx.at_line_end():
                break
            hit = lx.select(context)
            if hit is None:
                raise lx.unexpected("argument, '{' or line break")
            classifier, length = hit
            if classifier is cls.BLOCK_OPEN:
                builder.add(self._block())
                break
            if classifier is cls.HEREDOC_OPEN:
                builder.add(self._heredoc())
            elif context is LexContext.MATCHER and classifier in (
                cls.WILDCARD,
                cls.PATH_MATCHER,
                cls.MATCHER_IDENTIFIER,
            ):
                matcher = NodeBuilder(NodeType.MATCHER, lx.position)
                matcher.add(lx.emit(classifier.kind, length))
                builder.add(matcher.build(), "matcher")
            else:
                builder.add(lx.emit(classifier.kind, length))
            context = LexContext.DIRECTIVE_FIELD
        return builder.build()

    def _heredoc(self) -> Node:
        lx = self.lexer
        builder = NodeBuilder(NodeType.HEREDOC, lx.position)
        try:
            builder.add(lx.heredoc_open())
            builder.add(lx.heredoc_tag(), "identifier")
            while True:
                token = lx.heredoc_line()
                if token.kind is TokenKind.HEREDOC_END:
                    builder.add(token, "end_tag")
                    break
                builder.add(token, "value")
        finally:
            lx.heredoc.reset()
        return builder.build()

    # -- matchers ----------------------------------------------------------

    def _named_matcher(self, length: int) -> Node:
        lx = self.lexer
        builder = NodeBuilder(NodeType.NAMED_MATCHER, lx.position)
        builder.add(lx.emit(TokenKind.MATCHER_IDENTIFIER, length), "name")
        lx.skip_space()
        if lx.at_line_end():
            raise lx.unexpected("matcher block or matcher directive")
        if self._at_block_open():
            builder.add(self._matcher_block())
        else:
            builder.add(self._matcher_directive())
        return builder.build()

    def _matcher_block(self) -> Node:
        builder = NodeBuilder(NodeType.MATCHER_BLOCK, self.lexer.position)
        opener = self._block_open(builder)
        self._block_body(builder, opener, self._matcher_directive, "body")
        return builder.build()

    def _matcher_directive(self) -> Node:
        lx = self.lexer
        builder = NodeBuilder(NodeType.MATCHER_DIRECTIVE, lx.position)
        if lx.peek() == "`":
            self._quoted_expression(builder)
            self._end_matcher_directive()
            return builder.build()

        negated = _NOT_RE.match(lx.text, lx.pos) is not None
        if negated:
            builder.add(lx.emit(TokenKind.KEYWORD, 3))
            lx.skip_space()
            if self._at_block_open():
                builder.add(self._matcher_block())
                return builder.build()

        length = lx.match(cls.MATCHER_DIRECTIVE_NAME)
        if not length:
            raise lx.unexpected("matcher name or expression")
        if not negated and lx.text[lx.pos : lx.pos + length] == "expression":
            builder.add(lx.emit(TokenKind.KEYWORD, length))
            lx.skip_space()
            hit = lx.select(LexContext.CEL_EXPRESSION)
            if hit is None:
                raise lx.unexpected("CEL expression")
            if hit[0] is cls.QUOTED_CEL_EXPRESSION:
                self._quoted_expression(builder)
            else:
                builder.add(lx.emit(TokenKind.CEL_EXPRESSION, hit[1]), "expression")
            self._end_matcher_directive()
            return builder.build()

        builder.add(lx.emit(TokenKind.MATCHER_DIRECTIVE_NAME, length), "name")
        lx.skip_space()
        fields = 0
        while not lx.at_line_end():
            hit = lx.select(LexContext.MATCHER_FIELD)
            if hit is None:
                raise lx.unexpected("matcher argument or line break")
            classifier, length = hit
            if classifier is cls.BLOCK_OPEN:
                if fields:
                    raise lx.unexpected("matcher argument or line break")
                builder.add(self._matcher_block())
                return builder.build()
            if classifier is cls.HEREDOC_OPEN:
                builder.add(self._heredoc())
            else:
                builder.add(lx.emit(classifier.kind, length))
            fields += 1
            lx.skip_space()
        if not fields:
            raise lx.unexpected("matcher argument")
        return builder.build()

    def _at_block_open(self) -> bool:
        """True at a `{` that opens a block rather than a placeholder."""
        lx = self.lexer
        if lx.peek() != "{":
            return False
        hit = lx.select(LexContext.MATCHER_FIELD)
        return hit is not None and hit[0] is cls.BLOCK_OPEN

    def _quoted_expression(self, builder: NodeBuilder) -> None:
        lx = self.lexer
        length = lx.match(cls.QUOTED_CEL_EXPRESSION)
        if not length:
            raise lx.error(
                ErrorKind.UNTERMINATED_STRING,
                "unterminated CEL expression",
                expected="closing '`'",
            )
        builder.add(lx.emit(TokenKind.PUNCTUATION, 1))
        builder.add(lx.emit(TokenKind.CEL_EXPRESSION, length - 2), "expression")
        builder.add(lx.emit(TokenKind.PUNCTUATION, 1))

    def _end_matcher_directive(self) -> None:
        lx = self.lexer
        lx.skip_space()
        if not lx.at_line_end():
            raise lx.unexpected("line break")

    # -- errors and recovery -----------------------------------------------

    def _error(
        self,
        kind: ErrorKind,
        message: str,
        position: Position,
        *,
        expected: str | None = None,
    ) -> CaddyfileSyntaxError:
        return CaddyfileSyntaxError([SyntaxDiagnostic(kind=kind, message=message, position=position, expected=expected)])

    def _report(self, diagnostic: SyntaxDiagnostic) -> None:
        """Raise in strict mode; record and carry on when recovering."""
        if not self.options.recover:
            raise CaddyfileSyntaxError([diagnostic])
        self.diagnostics.append(diagnostic)
        logger.debug("recorded %s", diagnostic.format())
        if len(self.diagnostics) >= self.options.max_errors:
            self._halt()

    def _guarded(self, builder: NodeBuilder, item: Callable[[], Node], label: str | None = None) -> None:
        mark = len(self.lexer.tokens)
        try:
            node = item()
        except CaddyfileSyntaxError as exc:
            if not self.options.recover:
                raise
            self._recover(builder, mark, exc)
        else:
            builder.add(node, label)

    def _recover(self, builder: NodeBuilder, mark: int, exc: CaddyfileSyntaxError) -> None:
        lx = self.lexer
        lx.heredoc.reset()
        self.diagnostics.extend(exc.diagnostics)
        logger.debug("recovering from %s", exc.diagnostic.format())
        if exc.diagnostic.fatal or len(self.diagnostics) >= self.options.max_errors:
            self._halt()
        else:
            lx.skip_line()
        skipped = [token for token in lx.tokens[mark:] if not token.is_trivia]
        if skipped:
            error = NodeBuilder(NodeType.ERROR, skipped[0].start)
            for token in skipped:
                error.add(token)
            builder.add(error.build())

    def _halt(self) -> None:
        lx = self.lexer
        if not lx.at_end:
            lx.emit(TokenKind.ERROR, len(lx.text) - lx.pos)
        if not self.stopped:
            logger.debug("parsing stopped after %d error(s)", len(self.diagnostics))
        self.stopped = True

    def _advance(self, phase: Phase) -> None:
        if phase is not self.phase:
            logger.debug("phase %s -> %s", self.phase.name, phase.name)
            self.phase = phase


def parse(text: str, options: ParseOptions | None = None) -> ParseResult:
    """Parse ``text`` and return the tree, the token stream and any diagnostics.

    In strict mode the first error stops the parse and ``tree`` is ``None``.
    With ``options.recover`` a partial tree with ``ERROR`` nodes is returned.
    """
    parser = CaddyfileParser(text, options)
    try:
        tree = parser.parse_source_file()
    except CaddyfileSyntaxError as exc:
        return ParseResult(tree=None, tokens=tuple(parser.lexer.tokens), diagnostics=list(exc.diagnostics))
    return ParseResult(tree=tree, tokens=tuple(parser.lexer.tokens), diagnostics=list(parser.diagnostics))


def parse_caddyfile_text(text: str) -> Node:
    """Parse a whole Caddyfile, raising :class:`CaddyfileSyntaxError` on the first error."""
    return CaddyfileParser(text, ParseOptions(recover=False)).parse_source_file()


def parse_single_directive(text: str) -> Node:
    """Parse ``text`` as block content holding exactly one directive."""
    parser = CaddyfileParser(text, ParseOptions(recover=False))
    nodes = parser.parse_definitions()
    if len(nodes) != 1 or nodes[0].type is not NodeType.DIRECTIVE:
        raise CaddyfileSyntaxError(
            [
                SyntaxDiagnostic(
                    kind=ErrorKind.UNEXPECTED_TOKEN,
                    message=f"expected exactly one directive, found {len(nodes)} definition(s)",
                    position=nodes[1].start if len(nodes) > 1 else START_POSITION,
                    expected="directive",
                )
            ]
        )
    return nodes[0]


def tokenize(text: str, *, recover: bool = False) -> list[Token]:
    """Return every token of ``text``, trivia included.

    The token texts always join back into ``text`` when the parse succeeds,
    and also in recover mode where skipped input becomes ``error`` tokens.
    """
    parser = CaddyfileParser(text, ParseOptions(recover=recover))
    parser.parse_source_file()
    return list(parser.lexer.tokens)
