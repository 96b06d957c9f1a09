"""Syntax tree nodes for parsed Caddyfiles."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Iterator, Union

from .classifiers import split_network_address
from .tokens import Position, Token, TokenKind


class NodeType(str, Enum):
    SOURCE_FILE = "source_file"
    GLOBAL_OPTIONS = "global_options"
    SNIPPET_DEFINITION = "snippet_definition"
    NAMED_ROUTE = "named_route"
    SITE_BLOCK = "site_block"
    SINGLE_SITE = "single_site"
    BLOCK = "block"
    DIRECTIVE = "directive"
    MATCHER = "matcher"
    MATCHER_BLOCK = "matcher_block"
    MATCHER_DIRECTIVE = "matcher_directive"
    NAMED_MATCHER = "named_matcher"
    HEREDOC = "heredoc"
    ERROR = "ERROR"


MATCHER_WILDCARD = "wildcard"
MATCHER_PATH = "path"
MATCHER_NAMED = "named"
MATCHER_DIRECTIVE_EXPRESSION = "expression"
MATCHER_DIRECTIVE_NAMED = "named"

Child = Union["Node", Token]


@dataclass(frozen=True, slots=True)
class Node:
    """An immutable syntax tree node.

    ``children`` keeps source order and includes anonymous punctuation but no
    trivia. ``labels`` runs parallel to ``children`` and names the field each
    child fills (``None`` for unlabelled children).
    """

    type: NodeType
    children: tuple[Child, ...]
    labels: tuple[str | None, ...]
    start: Position
    end: Position

    # -- navigation --------------------------------------------------------

    @property
    def named_children(self) -> tuple[Child, ...]:
        return tuple(child for child in self.children if isinstance(child, Node) or child.is_named)

    def child_by_field(self, label: str) -> Child | None:
        for child, child_label in zip(self.children, self.labels):
            if child_label == label:
                return child
        return None

    def children_by_field(self, label: str) -> tuple[Child, ...]:
        return tuple(child for child, child_label in zip(self.children, self.labels) if child_label == label)

    def nodes_of_type(self, node_type: NodeType) -> tuple[Node, ...]:
        return tuple(child for child in self.children if isinstance(child, Node) and child.type is node_type)

    def walk(self) -> Iterator[Node]:
        """Yield this node and every descendant node, depth first."""
        yield self
        for child in self.children:
            if isinstance(child, Node):
                yield from child.walk()

    def tokens(self) -> Iterator[Token]:
        for child in self.children:
            if isinstance(child, Node):
                yield from child.tokens()
            else:
                yield child

    def text_of(self, source: str) -> str:
        return source[self.start.offset : self.end.offset]

    # -- typed views -------------------------------------------------------

    @property
    def name(self) -> str | None:
        names = [child for child in self.children_by_field("name") if isinstance(child, Token)]
        if names:
            return ", ".join(token.text for token in names)
        if self.type is NodeType.MATCHER:
            token = self.children[0]
            return token.text if isinstance(token, Token) else None
        return None

    @property
    def block(self) -> Node | None:
        for child in self.children:
            if isinstance(child, Node) and child.type in (NodeType.BLOCK, NodeType.MATCHER_BLOCK):
                return child
        return None

    @property
    def matcher(self) -> Node | None:
        child = self.child_by_field("matcher")
        return child if isinstance(child, Node) else None

    @property
    def arguments(self) -> tuple[Child, ...]:
        """Directive fields: everything after the name and matcher, before any block."""
        return tuple(
            child
            for child, label in zip(self.children, self.labels)
            if label is None
            and (
                (isinstance(child, Token) and child.is_named)
                or (isinstance(child, Node) and child.type is NodeType.HEREDOC)
            )
        )

    @property
    def variant(self) -> str | None:
        if self.type is NodeType.MATCHER:
            token = self.children[0]
            if isinstance(token, Token):
                if token.kind is TokenKind.PATH_MATCHER:
                    return MATCHER_PATH
                if token.kind is TokenKind.MATCHER_IDENTIFIER:
                    return MATCHER_NAMED
            return MATCHER_WILDCARD
        if self.type is NodeType.MATCHER_DIRECTIVE:
            if self.child_by_field("expression") is not None:
                return MATCHER_DIRECTIVE_EXPRESSION
            return MATCHER_DIRECTIVE_NAMED
        return None

    @property
    def negated(self) -> bool:
        return any(
            isinstance(child, Token) and child.kind is TokenKind.KEYWORD and child.text == "not"
            for child in self.children
        )

    @property
    def expression(self) -> str | None:
        child = self.child_by_field("expression")
        return child.text if isinstance(child, Token) else None

    @property
    def heredoc_value(self) -> str | None:
        """Heredoc text with the closing tag's indentation removed from each line."""
        if self.type is not NodeType.HEREDOC:
            return None
        end_tag = self.child_by_field("end_tag")
        indent = end_tag.start.column - 1 if isinstance(end_tag, Token) else 0
        lines = []
        for token in self.children_by_field("value"):
            line = token.text
            stripped = 0
            while stripped < indent and stripped < len(line) and line[stripped] in " \t":
                stripped += 1
            lines.append(line[stripped:])
        value = "".join(lines)
        if value.endswith("\r\n"):
            return value[:-2]
        if value.endswith(("\n", "\r")):
            return value[:-1]
        return value

    # -- serialisation -----------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        children = []
        for child, label in zip(self.children, self.labels):
            if isinstance(child, Token) and not child.is_named:
                continue
            entry = child.to_dict() if isinstance(child, Node) else token_to_dict(child)
            if label:
                entry["field"] = label
            children.append(entry)
        data: dict[str, Any] = {
            "type": self.type.value,
            "start": {"offset": self.start.byte_offset, "line": self.start.line, "column": self.start.column},
            "end": {"offset": self.end.byte_offset, "line": self.end.line, "column": self.end.column},
            "children": children,
        }
        if self.type is NodeType.MATCHER_DIRECTIVE:
            data["negated"] = self.negated
        return data

    def sexp(self) -> str:
        """Render the tree as a tree-sitter style s-expression."""
        parts = [self.type.value]
        for child, label in zip(self.children, self.labels):
            if isinstance(child, Token):
                if not child.is_named:
                    continue
                rendered = f"({child.kind.value})"
            else:
                rendered = child.sexp()
            parts.append(f"{label}: {rendered}" if label else rendered)
        return "(" + " ".join(parts) + ")"


def token_to_dict(token: Token) -> dict[str, Any]:
    data = token.to_dict()
    if token.kind is TokenKind.NETWORK_ADDRESS:
        parts = split_network_address(token.text)
        if parts is not None:
            data.update(parts.to_dict())
    return data


class NodeBuilder:
    """Accumulates children while a production is being parsed."""

    __slots__ = ("type", "children", "labels", "start", "end", "anchored")

    def __init__(self, node_type: NodeType, start: Position, *, anchored: bool = False) -> None:
        self.type = node_type
        self.children: list[Child] = []
        self.labels: list[str | None] = []
        self.start = start
        self.end = start
        self.anchored = anchored

    def add(self, child: Child, label: str | None = None) -> Child:
        if not self.children and not self.anchored:
            self.start = child.start
        self.children.append(child)
        self.labels.append(label)
        self.end = child.end
        return child

    def build(self, end: Position | None = None) -> Node:
        return Node(
            type=self.type,
            children=tuple(self.children),
            labels=tuple(self.labels),
            start=self.start,
            end=end or self.end,
        )
