"""Locate and read Caddyfiles from disk."""
from __future__ import annotations

import logging
from itertools import islice
from pathlib import Path
from typing import Iterator

from .errors import CaddyfilePermissionError

logger = logging.getLogger(__name__)

CADDYFILE_NAME = "Caddyfile"

# Checked in order when no path is given or nothing is found near it.
DEFAULT_CADDYFILE_PATHS: tuple[Path, ...] = (
    Path("./Caddyfile"),
    Path("/etc/caddy/Caddyfile"),
    Path("/usr/local/etc/caddy/Caddyfile"),
    Path("/etc/Caddyfile"),
)

MAX_PARENT_SEARCH_DEPTH = 5


def _nearby_candidates(explicit: Path) -> Iterator[Path]:
    """Yield the places a Caddyfile for ``explicit`` may live, closest first.

    A directory is searched for a ``Caddyfile`` of its own. After that the
    enclosing directories are tried, up to ``MAX_PARENT_SEARCH_DEPTH`` levels.
    """
    path = explicit.expanduser()
    yield path
    if path.is_dir():
        yield path / CADDYFILE_NAME
    for parent in islice(path.parents, MAX_PARENT_SEARCH_DEPTH):
        yield parent / CADDYFILE_NAME


def find_caddyfile(explicit: Path | None = None) -> Path:
    """Return the Caddyfile to parse.

    Raises:
        FileNotFoundError: When neither ``explicit``, its surroundings nor
            any default location holds a Caddyfile.
    """
    if explicit is not None:
        for candidate in _nearby_candidates(explicit):
            if candidate.is_file():
                if candidate != explicit:
                    logger.debug("Using %s for %s", candidate, explicit)
                return candidate
        logger.debug("Nothing found near %s, trying default locations", explicit)
    for candidate in DEFAULT_CADDYFILE_PATHS:
        if candidate.is_file():
            return candidate
    raise FileNotFoundError("Unable to locate a Caddyfile to parse")


def read_caddyfile(path: Path) -> str:
    """Read ``path`` as UTF-8 text."""
    try:
        return path.read_text(encoding="utf-8")
    except PermissionError as exc:
        raise CaddyfilePermissionError(path) from exc


def load_caddyfile(explicit: Path | None = None) -> tuple[Path, str]:
    source = find_caddyfile(explicit)
    return source, read_caddyfile(source)
