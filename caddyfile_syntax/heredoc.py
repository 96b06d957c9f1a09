"""Heredoc sub-scanner.

A heredoc is opened by ``<<TAG`` at the end of a line and runs until a line
whose stripped text is exactly ``TAG``. The terminator is chosen by the
author, so the scanner keeps state between calls instead of matching a
fixed pattern::

    IDLE --begin()--> AWAIT_TAG --read_tag()--> IN_BODY --next_line()--> DONE

The parser drives the transitions; :meth:`HeredocScanner.reset` returns
the scanner to ``IDLE`` for the next heredoc.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum

from .classifiers import LexicalError
from .errors import ErrorKind

logger = logging.getLogger(__name__)

TAG_RE = re.compile(r"[A-Za-z0-9_\-]+")


class HeredocState(Enum):
    IDLE = "idle"
    AWAIT_TAG = "await_tag"
    IN_BODY = "in_body"
    DONE = "done"


@dataclass(frozen=True, slots=True)
class HeredocLine:
    """One step of the body scan.

    For body lines ``text`` is the full line including its line break.
    For the closing line ``indent`` is the whitespace before the tag and
    ``text`` is the tag itself.
    """

    text: str
    is_end: bool = False
    indent: str = ""


def line_end(text: str, pos: int) -> tuple[int, int]:
    """Return ``(index of the line break, length of the line break)``."""
    length = len(text)
    idx = pos
    while idx < length:
        ch = text[idx]
        if ch == "\n":
            return idx, 1
        if ch == "\r":
            return idx, 2 if text.startswith("\r\n", idx) else 1
        idx += 1
    return length, 0


class HeredocScanner:
    def __init__(self, text: str) -> None:
        self.text = text
        self.state = HeredocState.IDLE
        self.tag: str | None = None
        self.opened_at: int | None = None

    def begin(self, pos: int) -> None:
        """Record a ``<<`` opener that ends at ``pos``."""
        if self.state is not HeredocState.IDLE:
            raise RuntimeError(f"heredoc scanner is busy ({self.state.value})")
        self.opened_at = pos - 2
        self._transition(HeredocState.AWAIT_TAG)

    def read_tag(self, pos: int) -> int:
        """Capture the terminator tag at ``pos`` and return its length."""
        if self.state is not HeredocState.AWAIT_TAG:
            raise RuntimeError("read_tag() called outside AWAIT_TAG")
        match = TAG_RE.match(self.text, pos)
        if match is None:
            if pos >= len(self.text):
                raise self._unterminated()
            raise LexicalError(
                ErrorKind.UNEXPECTED_TOKEN,
                pos,
                "heredoc marker must be followed by a tag",
                expected="heredoc tag such as EOF",
            )
        end = match.end()
        eol, newline = line_end(self.text, end)
        if eol != end:
            raise LexicalError(
                ErrorKind.UNEXPECTED_TOKEN,
                end,
                f"unexpected text after heredoc tag {match.group()!r}",
                expected="line break",
            )
        if newline == 0:
            self.tag = match.group()
            raise self._unterminated()
        self.tag = match.group()
        self._transition(HeredocState.IN_BODY)
        return end - pos

    def next_line(self, pos: int) -> HeredocLine:
        """Scan the line starting at ``pos``; either body text or the end tag."""
        if self.state is not HeredocState.IN_BODY:
            raise RuntimeError("next_line() called outside IN_BODY")
        if pos >= len(self.text):
            raise self._unterminated()
        eol, newline = line_end(self.text, pos)
        line = self.text[pos:eol]
        if line.strip() == self.tag:
            indent = line[: len(line) - len(line.lstrip())]
            self._transition(HeredocState.DONE)
            return HeredocLine(text=self.tag, is_end=True, indent=indent)
        return HeredocLine(text=self.text[pos : eol + newline])

    def reset(self) -> None:
        if self.state is not HeredocState.IDLE:
            self._transition(HeredocState.IDLE)
        self.tag = None
        self.opened_at = None

    def _transition(self, state: HeredocState) -> None:
        logger.debug("heredoc %s -> %s (tag=%s)", self.state.value, state.value, self.tag)
        self.state = state

    def _unterminated(self) -> LexicalError:
        tag = self.tag or "?"
        return LexicalError(
            ErrorKind.UNTERMINATED_HEREDOC,
            self.opened_at if self.opened_at is not None else len(self.text),
            f"unterminated heredoc {tag!r}",
            expected=f"closing heredoc tag `{tag}`",
        )
