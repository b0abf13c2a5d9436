# File: resolvergen/utils.py
"""
NexaFlow ResolverGen - Utility Functions & Helpers
===================================================
Naming, hashing, timing and file I/O helpers shared by the compiler and the
exporter.

- Naming helpers are ``@lru_cache``'d; the same model names are converted
  many times per run.
- File writes go through a temporary file and an atomic rename.
- No external dependencies beyond the Python standard library.
"""

from __future__ import annotations

import functools
import hashlib
import json
import logging
import os
import shutil
import tempfile
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence

# ---------------------------------------------------------------------------
# Logger
# ---------------------------------------------------------------------------
logger: logging.Logger = logging.getLogger("resolvergen.utils")


# ---------------------------------------------------------------------------
# Cached naming helpers
# ---------------------------------------------------------------------------

# Irregular plurals that show up in model names
_IRREGULAR_PLURALS: Dict[str, str] = {
    "person": "people",
    "child": "children",
    "man": "men",
    "woman": "women",
    "mouse": "mice",
    "datum": "data",
    "index": "indices",
    "matrix": "matrices",
    "analysis": "analyses",
    "status": "statuses",
    "address": "addresses",
}


@functools.lru_cache(maxsize=None)
def to_plural(name: str) -> str:
    """
    Naive English pluralisation, good enough for field and table names.

    Examples:
        >>> to_plural("Post")
        'Posts'
        >>> to_plural("Category")
        'Categories'
        >>> to_plural("Person")
        'People'
        >>> to_plural("Campus")
        'Campuses'
    """
    if not name:
        return ""

    lower: str = name.lower()

    if lower in _IRREGULAR_PLURALS:
        plural: str = _IRREGULAR_PLURALS[lower]
        if name[0].isupper():
            return plural[0].upper() + plural[1:]
        return plural

    if lower.endswith(("s", "sh", "ch", "x", "z")):
        return name + "es"
    if lower.endswith("y") and len(name) > 1 and lower[-2] not in "aeiou":
        return name[:-1] + "ies"

    return name + "s"


@functools.lru_cache(maxsize=None)
def table_name_for(model_name: str) -> str:
    """Relational table name for a model: lowercase plural (``Post`` → ``posts``)."""
    return to_plural(model_name).lower()


# ---------------------------------------------------------------------------
# Template text helpers
# ---------------------------------------------------------------------------


def indent_lines(lines: Sequence[str], level: int = 1, size: int = 2) -> List[str]:
    """Indent a list of lines, returning a new list. Blank lines stay blank."""
    prefix: str = " " * (level * size)
    return [prefix + line if line.strip() else line for line in lines]


def quote(value: str) -> str:
    """Double-quoted literal safe inside both JSON and Velocity string contexts."""
    return json.dumps(value)


# ---------------------------------------------------------------------------
# File I/O helpers
# ---------------------------------------------------------------------------


def ensure_directory(path: Path) -> None:
    """Create directory (and parents) if it doesn't exist."""
    path.mkdir(parents=True, exist_ok=True)
    logger.debug("Ensured directory exists: %s", path)


def write_file(path: Path, content: str, atomic: bool = True) -> int:
    """
    Write *content* to *path*.

    When *atomic* is True, writes to a temporary file first then renames —
    a crash never leaves a half-written artifact behind.

    Returns the number of bytes written.
    """
    ensure_directory(path.parent)

    encoded: bytes = content.encode("utf-8")
    byte_count: int = len(encoded)

    if atomic:
        fd: int
        tmp_path: str
        fd, tmp_path = tempfile.mkstemp(
            dir=str(path.parent),
            prefix=f".{path.name}.",
            suffix=".tmp",
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(encoded)
            shutil.move(tmp_path, str(path))
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
    else:
        path.write_bytes(encoded)

    logger.debug("Wrote %d bytes to %s", byte_count, path)
    return byte_count


def clean_directory(path: Path, keep_git: bool = True) -> None:
    """
    Remove all contents of a directory without removing the directory itself.

    If *keep_git* is True, ``.git`` and ``.gitignore`` are preserved.
    """
    if not path.exists():
        return

    for item in path.iterdir():
        if keep_git and item.name in {".git", ".gitignore"}:
            continue
        if item.is_dir():
            shutil.rmtree(item)
        else:
            item.unlink()

    logger.debug("Cleaned directory: %s (keep_git=%s)", path, keep_git)


# ---------------------------------------------------------------------------
# Checksum & metrics
# ---------------------------------------------------------------------------


def sha256_hex(content: str) -> str:
    """Return SHA-256 hex digest of a string."""
    return hashlib.sha256(content.encode("utf-8")).hexdigest()


def count_lines(content: str) -> int:
    """Count the number of lines in a string."""
    if not content:
        return 0
    return content.count("\n") + (1 if not content.endswith("\n") else 0)


# ---------------------------------------------------------------------------
# Timer context manager
# ---------------------------------------------------------------------------


class Timer:
    """
    Context-manager timer for the compilation steps.

    Usage:
        with Timer("assemble schema") as t:
            ...
        print(t.elapsed)
    """

    __slots__ = ("label", "start_time", "end_time", "elapsed")

    def __init__(self, label: str = "operation") -> None:
        self.label: str = label
        self.start_time: float = 0.0
        self.end_time: float = 0.0
        self.elapsed: float = 0.0

    def __enter__(self) -> "Timer":
        self.start_time = time.perf_counter()
        return self

    def __exit__(
        self,
        exc_type: Optional[type],
        exc_val: Optional[BaseException],
        exc_tb: Optional[object],
    ) -> None:
        self.end_time = time.perf_counter()
        self.elapsed = self.end_time - self.start_time
        logger.debug("Timer [%s]: %.4f seconds", self.label, self.elapsed)

    def __repr__(self) -> str:
        return f"<Timer {self.label}: {self.elapsed:.4f}s>"


# ---------------------------------------------------------------------------
# Module-level exports
# ---------------------------------------------------------------------------

__all__: List[str] = [
    "to_plural",
    "table_name_for",
    "indent_lines",
    "quote",
    "ensure_directory",
    "write_file",
    "clean_directory",
    "sha256_hex",
    "count_lines",
    "Timer",
]

logger.debug("resolvergen.utils loaded — %d public symbols.", len(__all__))
