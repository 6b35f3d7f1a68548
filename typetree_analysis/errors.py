# typetree_analysis/errors.py
"""
Error types raised by the type-tree analysis.

Hierarchy
─────────
::

    TypeTreeError (base)
    ├── MalformedPathError       - path contract violation (fatal)
    ├── RecursionLimitExceeded   - descriptor walk hit the depth bound
    ├── TypeTreeParseError       - textual codec could not decode input
    ├── FrozenTypeTreeError      - mutation of a finalized tree
    ├── DescriptorError          - ill-formed structural descriptor
    ├── ProgramError             - inconsistent program model
    └── ConfigError              - invalid analysis options

Conflicting type information is *not* an error: the lattice merge resolves it
to ``Anything``.  Only contract violations and (when configured as fatal) the
recursion bound abort a run.
"""

from __future__ import annotations

from typing import Any, Optional, Sequence


class TypeTreeError(Exception):
    """Base exception for every error raised by :mod:`typetree_analysis`."""


class MalformedPathError(TypeTreeError, ValueError):
    """A path element is not an integer ``>= -1``, or the path is empty.

    Indicates a bug in the caller, never bad input data.
    """

    def __init__(self, message: str, hops: Optional[Sequence[Any]] = None) -> None:
        super().__init__(message)
        self.hops = tuple(hops) if hops is not None else None


class RecursionLimitExceeded(TypeTreeError):
    """The descriptor walk needed more than ``max_depth`` dereferences."""

    def __init__(self, path: Any, depth: int, max_depth: int) -> None:
        super().__init__(
            f"dereference depth {depth} at {path} exceeds the limit of {max_depth}"
        )
        self.path = path
        self.depth = depth
        self.max_depth = max_depth


class TypeTreeParseError(TypeTreeError, ValueError):
    """The textual form of a TypeTree could not be decoded."""

    def __init__(self, message: str, position: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.position = position

    def __str__(self) -> str:
        if self.position is not None:
            return f"column {self.position}: {self.message}"
        return self.message


class FrozenTypeTreeError(TypeTreeError):
    """Attempt to mutate a TypeTree after the fixpoint froze it."""


class DescriptorError(TypeTreeError, ValueError):
    """A structural descriptor cannot describe any finite layout."""


class ProgramError(TypeTreeError):
    """The program model handed to the propagator is inconsistent."""


class ConfigError(TypeTreeError, ValueError):
    """Invalid :class:`~typetree_analysis.config.AnalysisOptions`."""


__all__ = [
    "TypeTreeError",
    "MalformedPathError",
    "RecursionLimitExceeded",
    "TypeTreeParseError",
    "FrozenTypeTreeError",
    "DescriptorError",
    "ProgramError",
    "ConfigError",
]
