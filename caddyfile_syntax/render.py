"""Rich renderings of syntax trees, token streams and diagnostics."""
from __future__ import annotations

from typing import Iterable, Sequence

from colorama import Fore, Style, init as colorama_init
from rich.console import Console, Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text
from rich.tree import Tree

from .errors import SyntaxDiagnostic
from .models import Node, NodeType
from .tokens import Token, TokenKind

_NODE_STYLES = {
    NodeType.SOURCE_FILE: "bold",
    NodeType.GLOBAL_OPTIONS: "magenta",
    NodeType.SNIPPET_DEFINITION: "cyan",
    NodeType.NAMED_ROUTE: "cyan",
    NodeType.SITE_BLOCK: "bold green",
    NodeType.SINGLE_SITE: "bold green",
    NodeType.DIRECTIVE: "yellow",
    NodeType.NAMED_MATCHER: "blue",
    NodeType.MATCHER: "blue",
    NodeType.HEREDOC: "green",
    NodeType.ERROR: "bold red",
}

_TOKEN_STYLES = {
    TokenKind.COMMENT: "grey50",
    TokenKind.WHITESPACE: "grey35",
    TokenKind.NEWLINE: "grey35",
    TokenKind.ERROR: "bold red",
    TokenKind.PUNCTUATION: "dim",
    TokenKind.KEYWORD: "magenta",
    TokenKind.INTERPRETED_STRING: "green",
    TokenKind.RAW_STRING: "green",
    TokenKind.NETWORK_ADDRESS: "cyan",
    TokenKind.SITE_ADDRESS: "bold cyan",
}


def _node_label(node: Node) -> Text:
    label = Text(node.type.value, style=_NODE_STYLES.get(node.type, ""))
    name = node.name
    if name and node.type is not NodeType.MATCHER:
        label.append(f" {name}", style="bold")
    variant = node.variant
    if variant:
        label.append(f" [{variant}]", style="dim")
    if node.negated:
        label.append(" not", style="magenta")
    label.append(f"  {node.start}-{node.end}", style="grey50")
    return label


def _token_label(token: Token, field: str | None) -> Text:
    label = Text()
    if field:
        label.append(f"{field}: ", style="dim")
    label.append(token.kind.value, style=_TOKEN_STYLES.get(token.kind, "yellow"))
    label.append(f" {token.text!r}")
    return label


def render_tree(node: Node, *, tree: Tree | None = None) -> Tree:
    """Build a :class:`rich.tree.Tree` for ``node`` and its descendants."""
    branch = tree.add(_node_label(node)) if tree is not None else Tree(_node_label(node))
    for child, field in zip(node.children, node.labels):
        if isinstance(child, Node):
            sub = render_tree(child, tree=branch)
            if field:
                sub.label = Text(f"{field}: ", style="dim") + sub.label
        elif child.is_named or child.kind is TokenKind.ERROR:
            branch.add(_token_label(child, field))
    return branch


def token_table(tokens: Iterable[Token], *, trivia: bool = True) -> Table:
    table = Table(title="Tokens", show_lines=False)
    table.add_column("#", justify="right", style="grey50")
    table.add_column("Kind", style="bold")
    table.add_column("Text")
    table.add_column("Start", justify="right")
    table.add_column("End", justify="right")
    for index, token in enumerate(tokens):
        if token.is_trivia and not trivia:
            continue
        table.add_row(
            str(index),
            Text(token.kind.value, style=_TOKEN_STYLES.get(token.kind, "")),
            repr(token.text),
            str(token.start),
            str(token.end),
        )
    return table


def _source_line(source: str, line: int) -> str:
    lines = source.splitlines()
    if 1 <= line <= len(lines):
        return lines[line - 1]
    return ""


def diagnostics_panel(source: str, diagnostics: Sequence[SyntaxDiagnostic], *, title: str | None = None) -> Panel:
    """Show each diagnostic with its source line and a caret under the column."""
    parts: list[Text] = []
    for diagnostic in diagnostics:
        header = Text(diagnostic.format(), style="bold red")
        line = _source_line(source, diagnostic.position.line)
        gutter = f"{diagnostic.position.line:>4} | "
        body = Text(gutter, style="grey50")
        body.append(line)
        caret = Text(" " * (len(gutter) + diagnostic.position.column - 1) + "^", style="bold red")
        parts.extend([header, body, caret])
    summary = title or f"{len(diagnostics)} syntax error(s)"
    return Panel(Group(*parts), title=summary, border_style="red", expand=False)


def reconstruct_text(tokens: Iterable[Token]) -> str:
    return "".join(token.text for token in tokens)


def status_line(label: str, ok: bool, detail: str = "") -> str:
    colour = Fore.GREEN if ok else Fore.RED
    word = "ok" if ok else "error"
    line = f"{colour}{word}{Style.RESET_ALL} {label}"
    if detail:
        line = f"{line} ({detail})"
    return line


class Printer:
    """Terminal output for the CLI."""

    def __init__(self, console: Console | None = None) -> None:
        colorama_init(autoreset=True)
        self.console = console or Console()

    def print(self, renderable) -> None:
        self.console.print(renderable)
