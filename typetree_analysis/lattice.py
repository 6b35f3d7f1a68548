"""
typetree_analysis.lattice
==========================

Lattice interface used by the fixpoint propagator, with the TypeTree lattice
the type analysis runs over.

Theory
------
A lattice ``(L, ⊑, ⊥, ⊤, ⊔)`` provides a least element, a greatest element,
a join and a partial order.  The propagator depends only on this interface,
so the merge policy (for example whether integers may carry pointers) is a
property of the lattice object handed to it, not of global state.

Built-in lattices
-----------------
    TypeTreeLattice     - pointwise lift of the concrete-type lattice over paths
"""

from __future__ import annotations

import abc
from typing import Generic, Iterable, TypeVar

from .type_tree import TypeTree

L = TypeVar("L")          # Lattice value type


# ===========================================================================
# LATTICE: ABSTRACT BASE
# ===========================================================================

class Lattice(abc.ABC, Generic[L]):
    """Abstract base class for a lattice.

    Subclasses provide ``bottom()``, ``top()``, ``join(a, b)`` and
    ``leq(a, b)``; ``meet`` is optional.
    """

    @abc.abstractmethod
    def bottom(self) -> L:
        """Return the least element ⊥."""
        ...

    @abc.abstractmethod
    def top(self) -> L:
        """Return the greatest element ⊤."""
        ...

    @abc.abstractmethod
    def join(self, a: L, b: L) -> L:
        """Return the least upper bound ``a ⊔ b``."""
        ...

    @abc.abstractmethod
    def leq(self, a: L, b: L) -> bool:
        """Return ``True`` iff ``a ⊑ b``."""
        ...

    def meet(self, a: L, b: L) -> L:
        raise NotImplementedError("meet() not implemented for this lattice")

    def join_all(self, values: Iterable[L]) -> L:
        """Join a sequence of values."""
        result = self.bottom()
        for v in values:
            result = self.join(result, v)
        return result


# ===========================================================================
# BUILT-IN LATTICES
# ===========================================================================

class TypeTreeLattice(Lattice[TypeTree]):
    """Pointwise lattice of TypeTrees; missing paths are ``Bottom``.

    ``top()`` is not representable (it would need every path) and raises
    ``NotImplementedError``.

    Parameters
    ----------
    pointer_int_same : bool
        Treat Integer as below Pointer, so their join is Pointer.
    """

    #: Height of the per-path tag lattice (Bottom, concrete kind, Anything).
    HEIGHT = 3

    def __init__(self, pointer_int_same: bool = False) -> None:
        self.pointer_int_same = pointer_int_same

    def bottom(self) -> TypeTree:
        return TypeTree()

    def top(self) -> TypeTree:
        raise NotImplementedError("TypeTreeLattice has no finite top element")

    def join(self, a: TypeTree, b: TypeTree) -> TypeTree:
        return a.merge(b, pointer_int_same=self.pointer_int_same)

    def leq(self, a: TypeTree, b: TypeTree) -> bool:
        return self.join(a, b) == b

    def meet(self, a: TypeTree, b: TypeTree) -> TypeTree:
        return a.meet(b)


__all__ = [
    "Lattice",
    "TypeTreeLattice",
]
