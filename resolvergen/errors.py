# File: resolvergen/errors.py
"""
NexaFlow ResolverGen - Error Taxonomy
======================================
Three kinds of failure, each handled at a different level:

* ``ModelLoadError``   — one malformed model, seed or config source.  The
  repository recovers locally (skip + warn) unless running strict.
* ``CompilationError`` — the model set failed semantic validation.  Raised
  once, carrying every problem, before any template is emitted.
* ``GenerationError``  — the compiler met a case it has no branch for.  A
  defect in the compiler, never a data problem.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING, List, Union

if TYPE_CHECKING:
    from resolvergen.validators import ValidationResult

logger: logging.Logger = logging.getLogger("resolvergen.errors")


class ResolverGenError(Exception):
    """Base class for every error raised by this package."""


class ModelLoadError(ResolverGenError):
    """A model, seed or config source could not be read or parsed."""

    def __init__(self, source: Union[str, Path], reason: str) -> None:
        self.source: str = str(source)
        self.reason: str = reason
        super().__init__(f"Failed to load '{self.source}': {reason}")


class CompilationError(ResolverGenError):
    """The model set is invalid; ``result`` holds every validation issue."""

    def __init__(self, result: "ValidationResult") -> None:
        self.result: "ValidationResult" = result
        super().__init__(
            f"Model set failed validation with {result.error_count} error(s)."
        )

    @property
    def messages(self) -> List[str]:
        return [str(issue) for issue in self.result.errors]


class GenerationError(ResolverGenError):
    """An engine/operation combination the compiler does not cover."""


__all__: List[str] = [
    "ResolverGenError",
    "ModelLoadError",
    "CompilationError",
    "GenerationError",
]

logger.debug("resolvergen.errors loaded.")
