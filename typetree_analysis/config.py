"""
typetree_analysis.config
=========================

Explicit configuration for the descriptor builder and the fixpoint
propagator.  Every tunable lives on :class:`AnalysisOptions`; nothing is read
from module-level registries or the environment, so two analyses with
different settings can run side by side.

Usage::

    from typetree_analysis.config import AnalysisOptions

    opts = AnalysisOptions(max_depth=4, recursion_limit_fatal=True)
    opts = AnalysisOptions.from_mapping({"max_depth": 4})
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from typing import Any, Mapping

from .errors import ConfigError


@dataclass(frozen=True)
class AnalysisOptions:
    """Options shared by the builder and the propagator.

    Attributes
    ----------
    max_depth : int
        Maximum number of pointer dereferences a path may describe.  The
        builder marks the pointee of a pointer at the bound as ``Anything``
        one hop further; the propagator drops every other deeper entry.
    max_type_offset : int
        Largest byte offset kept in any path hop.  Entries addressing bytes
        beyond it are dropped.
    recursion_limit_fatal : bool
        If ``True``, :class:`~typetree_analysis.errors.RecursionLimitExceeded`
        propagates out of the builder instead of being recovered locally.
    pointer_int_same : bool
        If ``True``, an Integer/Pointer clash merges to ``Pointer`` rather
        than ``Anything``.
    max_iterations : int
        Safety bound on the number of worklist pops.
    """

    max_depth: int = 6
    max_type_offset: int = 500
    recursion_limit_fatal: bool = False
    pointer_int_same: bool = False
    max_iterations: int = 1_000_000

    def __post_init__(self) -> None:
        if self.max_depth < 1:
            raise ConfigError(f"max_depth must be >= 1, got {self.max_depth}")
        if self.max_type_offset < 0:
            raise ConfigError(
                f"max_type_offset must be >= 0, got {self.max_type_offset}"
            )
        if self.max_iterations < 1:
            raise ConfigError(
                f"max_iterations must be >= 1, got {self.max_iterations}"
            )

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Any]) -> AnalysisOptions:
        """Build options from a plain mapping, rejecting unknown keys."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = sorted(set(mapping) - known)
        if unknown:
            raise ConfigError(f"unknown analysis option(s): {', '.join(unknown)}")
        try:
            return cls(**dict(mapping))
        except TypeError as exc:
            raise ConfigError(str(exc)) from exc

    def replace(self, **changes: Any) -> AnalysisOptions:
        """Return a copy with *changes* applied."""
        try:
            return dataclasses.replace(self, **changes)
        except TypeError as exc:
            raise ConfigError(str(exc)) from exc


DEFAULT_OPTIONS = AnalysisOptions()


__all__ = ["AnalysisOptions", "DEFAULT_OPTIONS"]
