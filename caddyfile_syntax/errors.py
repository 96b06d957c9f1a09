"""Syntax error records and the exceptions that carry them."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable

from .tokens import Position


class ErrorKind(str, Enum):
    UNTERMINATED_BLOCK = "UnterminatedBlock"
    UNTERMINATED_STRING = "UnterminatedString"
    UNTERMINATED_HEREDOC = "UnterminatedHeredoc"
    INVALID_ADDRESS_LITERAL = "InvalidAddressLiteral"
    UNEXPECTED_TOKEN = "UnexpectedToken"
    INVALID_ESCAPE_SEQUENCE = "InvalidEscapeSequence"
    MISPLACED_SNIPPET_OR_ROUTE = "MisplacedSnippetOrRoute"
    MULTIPLE_BARE_AND_BLOCK_SITES = "MultipleBareAndBlockSites"


# Errors after which the rest of the input cannot be resynchronised.
FATAL_KINDS = frozenset(
    {
        ErrorKind.UNTERMINATED_BLOCK,
        ErrorKind.UNTERMINATED_HEREDOC,
    }
)


@dataclass(frozen=True, slots=True)
class SyntaxDiagnostic:
    kind: ErrorKind
    message: str
    position: Position
    expected: str | None = None

    @property
    def fatal(self) -> bool:
        return self.kind in FATAL_KINDS

    def format(self) -> str:
        text = f"{self.position.line}:{self.position.column}: {self.kind.value}: {self.message}"
        if self.expected:
            text = f"{text} (expected {self.expected})"
        return text

    def to_dict(self) -> dict:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "expected": self.expected,
            "offset": self.position.byte_offset,
            "line": self.position.line,
            "column": self.position.column,
        }


class CaddyfileSyntaxError(RuntimeError):
    """Raised when a Caddyfile cannot be parsed.

    ``diagnostics`` holds every collected error; the first one is the
    error that stopped a strict parse.
    """

    def __init__(self, diagnostics: Iterable[SyntaxDiagnostic]):
        self.diagnostics: tuple[SyntaxDiagnostic, ...] = tuple(diagnostics)
        if not self.diagnostics:
            raise ValueError("CaddyfileSyntaxError needs at least one diagnostic")
        super().__init__(self.diagnostics[0].format())

    @property
    def diagnostic(self) -> SyntaxDiagnostic:
        return self.diagnostics[0]

    @property
    def kind(self) -> ErrorKind:
        return self.diagnostics[0].kind


class CaddyfilePermissionError(PermissionError):
    """Raised when the Caddyfile cannot be read due to permissions."""

    def __init__(self, path: Path, helper_command: str | None = None):
        self.path = path
        self.helper_command = helper_command
        message = f"Permission denied reading {path}. Re-run with elevated permissions or copy the file to a readable location."
        if helper_command:
            message = f"{message} You can run: {helper_command}"
        super().__init__(message)

    @property
    def suggested_command(self) -> str:
        if self.helper_command:
            return self.helper_command
        return f"sudo caddyfile-syntax check {self.path}"
