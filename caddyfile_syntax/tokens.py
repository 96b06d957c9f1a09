"""Token data model shared by the lexer and the parser."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class TokenKind(str, Enum):
    NETWORK_ADDRESS = "network_address"
    BARE_IPV6_OR_CIDR = "bare_ipv6"
    IP_ADDRESS_OR_CIDR = "ip_address_or_cidr"
    ENVIRONMENT_VARIABLE = "environment_variable"
    PLACEHOLDER = "placeholder"
    RAW_STRING = "raw_string_literal"
    INTERPRETED_STRING = "interpreted_string_literal"
    DURATION = "duration_literal"
    INTEGER = "int_literal"
    STATUS_CODE_FALLBACK = "status_code_fallback"
    ARGUMENT = "argument"
    COMMENT = "comment"
    PUNCTUATION = "punctuation"
    KEYWORD = "keyword"
    HEREDOC_START = "heredoc_start"
    HEREDOC_BODY = "heredoc_body"
    HEREDOC_END = "heredoc_end"

    SITE_ADDRESS = "site_address"
    SNIPPET_NAME = "snippet_name"
    NAMED_ROUTE_IDENTIFIER = "named_route_identifier"
    DIRECTIVE_NAME = "directive_name"
    MATCHER_IDENTIFIER = "matcher_identifier"
    PATH_MATCHER = "path_matcher"
    PATH = "path"
    MATCHER_DIRECTIVE_NAME = "matcher_directive_name"
    CEL_EXPRESSION = "cel_expression"

    WHITESPACE = "whitespace"
    NEWLINE = "newline"
    ERROR = "error"


TRIVIA_KINDS = frozenset({TokenKind.WHITESPACE, TokenKind.NEWLINE, TokenKind.COMMENT})


@dataclass(frozen=True, slots=True)
class Position:
    """A location in the source text.

    ``offset`` indexes the Python string, ``byte_offset`` the UTF-8 encoding.
    ``line`` and ``column`` are 1-based; columns count characters.
    """

    offset: int
    byte_offset: int
    line: int
    column: int

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


START_POSITION = Position(offset=0, byte_offset=0, line=1, column=1)


@dataclass(frozen=True, slots=True)
class Token:
    kind: TokenKind
    text: str
    start: Position
    end: Position

    @property
    def is_trivia(self) -> bool:
        return self.kind in TRIVIA_KINDS

    @property
    def is_named(self) -> bool:
        """Named tokens show up in s-expressions; punctuation, keywords and trivia do not."""
        return self.kind not in TRIVIA_KINDS and self.kind not in (TokenKind.PUNCTUATION, TokenKind.KEYWORD)

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "text": self.text,
            "start": {"offset": self.start.byte_offset, "line": self.start.line, "column": self.start.column},
            "end": {"offset": self.end.byte_offset, "line": self.end.line, "column": self.end.column},
        }

    def __repr__(self) -> str:
        return f"Token({self.kind.value}, {self.text!r}, {self.start})"


def advance_position(position: Position, text: str) -> Position:
    """Return the position reached after consuming ``text`` from ``position``."""
    if not text:
        return position
    line = position.line
    column = position.column
    idx = 0
    length = len(text)
    while idx < length:
        ch = text[idx]
        if ch == "\r":
            if idx + 1 < length and text[idx + 1] == "\n":
                idx += 1
            line += 1
            column = 1
        elif ch == "\n":
            line += 1
            column = 1
        else:
            column += 1
        idx += 1
    return Position(
        offset=position.offset + length,
        byte_offset=position.byte_offset + len(text.encode("utf-8")),
        line=line,
        column=column,
    )
