"""Application configuration helpers."""
from __future__ import annotations

from dataclasses import dataclass
import os

OUTPUT_FORMATS = ("tree", "json", "sexp")


def _env_flag(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_choice(name: str, choices: tuple[str, ...], default: str) -> str:
    raw = (os.environ.get(name) or "").strip().lower()
    return raw if raw in choices else default


RECOVER = _env_flag("CADDYFILE_SYNTAX_RECOVER", False)
MAX_ERRORS = max(1, _env_int("CADDYFILE_SYNTAX_MAX_ERRORS", 25))
OUTPUT_FORMAT = _env_choice("CADDYFILE_SYNTAX_FORMAT", OUTPUT_FORMATS, "tree")
LOG_LEVEL = os.environ.get("CADDYFILE_SYNTAX_LOG_LEVEL", "WARNING").upper()


@dataclass(slots=True)
class ParseOptions:
    """Knobs for a single parse.

    ``recover`` keeps parsing after an error and returns a partial tree with
    ``ERROR`` nodes; ``max_errors`` caps how many diagnostics are kept.
    """

    recover: bool = RECOVER
    max_errors: int = MAX_ERRORS
