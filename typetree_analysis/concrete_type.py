"""
typetree_analysis/concrete_type.py
═══════════════════════════════════

The tag attached to every path of a TypeTree.

Lattice
───────
::

                      Anything
          ┌──────┬──────┴──────┬──────────┐
       Integer  Pointer  Float@float  Float@double  …
          └──────┴──────┬──────┴──────────┘
                       Bottom

Height is 3, so any chain of merges stabilises after at most two strict
increases per entry.  Distinct middle elements are incomparable; two floats
of different precision are distinct elements.

``ConcreteType`` is a closed variant: a :class:`BaseType` discriminant plus a
:class:`FloatPrecision` that is present exactly when the base is ``FLOAT``.
All lattice operations match on the discriminant exhaustively.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Dict, Optional, Tuple


class BaseType(Enum):
    """Discriminant of a :class:`ConcreteType`."""

    BOTTOM = "Bottom"
    INTEGER = "Integer"
    FLOAT = "Float"
    POINTER = "Pointer"
    ANYTHING = "Anything"


class FloatPrecision(Enum):
    """Supported floating-point widths, named as in LLVM IR."""

    HALF = "half"
    BFLOAT = "bfloat"
    FLOAT = "float"
    DOUBLE = "double"
    X86_FP80 = "x86_fp80"
    FP128 = "fp128"
    PPC_FP128 = "ppc_fp128"

    @property
    def size(self) -> int:
        """Storage size in bytes (excluding alignment padding)."""
        return _FLOAT_SIZES[self]

    @classmethod
    def parse(cls, name: str) -> FloatPrecision:
        try:
            return cls(name)
        except ValueError:
            raise ValueError(f"unknown float precision {name!r}") from None


_FLOAT_SIZES: Dict[FloatPrecision, int] = {
    FloatPrecision.HALF: 2,
    FloatPrecision.BFLOAT: 2,
    FloatPrecision.FLOAT: 4,
    FloatPrecision.DOUBLE: 8,
    FloatPrecision.X86_FP80: 10,
    FloatPrecision.FP128: 16,
    FloatPrecision.PPC_FP128: 16,
}


@dataclass(frozen=True, slots=True)
class ConcreteType:
    """One element of the concrete-type lattice."""

    base: BaseType
    precision: Optional[FloatPrecision] = None

    BOTTOM: ClassVar[ConcreteType]
    INTEGER: ClassVar[ConcreteType]
    POINTER: ClassVar[ConcreteType]
    ANYTHING: ClassVar[ConcreteType]

    def __post_init__(self) -> None:
        if (self.base is BaseType.FLOAT) != (self.precision is not None):
            raise ValueError(
                "a precision is required for Float and forbidden otherwise"
            )

    # ---- constructors ----------------------------------------------------

    @classmethod
    def float_of(cls, precision: FloatPrecision | str) -> ConcreteType:
        if isinstance(precision, str):
            precision = FloatPrecision.parse(precision)
        return cls(BaseType.FLOAT, precision)

    @classmethod
    def parse(cls, text: str) -> ConcreteType:
        """Inverse of :meth:`__str__`: ``"Integer"``, ``"Float@double"``, …"""
        kind, sep, sub = text.partition("@")
        try:
            base = BaseType(kind)
        except ValueError:
            raise ValueError(f"unknown type tag {kind!r}") from None
        if base is BaseType.FLOAT:
            if not sep:
                raise ValueError("Float requires a precision, e.g. Float@double")
            return cls.float_of(sub)
        if sep:
            raise ValueError(f"{kind} does not take a precision")
        return cls(base)

    # ---- predicates ------------------------------------------------------

    @property
    def is_known(self) -> bool:
        """Neither Bottom nor Anything."""
        return self.base not in (BaseType.BOTTOM, BaseType.ANYTHING)

    @property
    def is_bottom(self) -> bool:
        return self.base is BaseType.BOTTOM

    @property
    def is_anything(self) -> bool:
        return self.base is BaseType.ANYTHING

    @property
    def is_float(self) -> bool:
        return self.base is BaseType.FLOAT

    @property
    def is_integral(self) -> bool:
        return self.base is BaseType.INTEGER

    @property
    def is_pointer(self) -> bool:
        return self.base is BaseType.POINTER

    @property
    def is_scalar(self) -> bool:
        """Integer or Float: a leaf that cannot have sub-structure."""
        return self.base in (BaseType.INTEGER, BaseType.FLOAT)

    @property
    def is_possible_pointer(self) -> bool:
        return self.base in (BaseType.BOTTOM, BaseType.POINTER, BaseType.ANYTHING)

    @property
    def is_possible_float(self) -> bool:
        return self.base in (BaseType.BOTTOM, BaseType.FLOAT, BaseType.ANYTHING)

    @property
    def float_size(self) -> int:
        if self.precision is None:
            raise ValueError(f"{self} is not a floating-point type")
        return self.precision.size

    # ---- lattice ---------------------------------------------------------

    def merge(self, other: ConcreteType) -> ConcreteType:
        """Least upper bound."""
        return merge(self, other)

    def meet(self, other: ConcreteType) -> ConcreteType:
        """Greatest lower bound."""
        return meet(self, other)

    def leq(self, other: ConcreteType) -> bool:
        return leq(self, other)

    def __str__(self) -> str:
        if self.precision is not None:
            return f"{self.base.value}@{self.precision.value}"
        return self.base.value

    def __repr__(self) -> str:
        return f"ConcreteType({self})"


ConcreteType.BOTTOM = ConcreteType(BaseType.BOTTOM)
ConcreteType.INTEGER = ConcreteType(BaseType.INTEGER)
ConcreteType.POINTER = ConcreteType(BaseType.POINTER)
ConcreteType.ANYTHING = ConcreteType(BaseType.ANYTHING)

BOTTOM = ConcreteType.BOTTOM
INTEGER = ConcreteType.INTEGER
POINTER = ConcreteType.POINTER
ANYTHING = ConcreteType.ANYTHING
FLOAT = ConcreteType.float_of(FloatPrecision.FLOAT)
DOUBLE = ConcreteType.float_of(FloatPrecision.DOUBLE)


def merge(a: ConcreteType, b: ConcreteType) -> ConcreteType:
    """``a ⊔ b``.

    ==============================  ===========
    operands                        result
    ==============================  ===========
    Bottom, x                       x
    x, x                            x
    Anything, x                     Anything
    Float(p1), Float(p2), p1 ≠ p2   Anything
    any other distinct pair         Anything
    ==============================  ===========
    """
    if a.base is BaseType.BOTTOM:
        return b
    if b.base is BaseType.BOTTOM:
        return a
    if a.base is BaseType.ANYTHING or b.base is BaseType.ANYTHING:
        return ANYTHING
    if a == b:
        return a
    return ANYTHING


def checked_merge(
    a: ConcreteType,
    b: ConcreteType,
    *,
    pointer_int_same: bool = False,
) -> Tuple[ConcreteType, bool]:
    """Merge and report legality.

    Returns ``(result, legal)`` where ``legal`` is ``False`` when two known,
    distinct types collided.  With *pointer_int_same*, Integer and Pointer are
    reconciled to Pointer (integers may carry addresses) and stay legal.
    """
    if a.is_known and b.is_known and a != b:
        if pointer_int_same and {a.base, b.base} == {
            BaseType.INTEGER,
            BaseType.POINTER,
        }:
            return POINTER, True
        return ANYTHING, False
    return merge(a, b), True


def meet(a: ConcreteType, b: ConcreteType) -> ConcreteType:
    """``a ⊓ b``; incomparable middle elements meet at Bottom."""
    if a.base is BaseType.ANYTHING:
        return b
    if b.base is BaseType.ANYTHING:
        return a
    if a == b:
        return a
    return BOTTOM


def leq(a: ConcreteType, b: ConcreteType) -> bool:
    """``a ⊑ b``."""
    if a.base is BaseType.BOTTOM or b.base is BaseType.ANYTHING:
        return True
    return a == b


__all__ = [
    "BaseType",
    "FloatPrecision",
    "ConcreteType",
    "BOTTOM",
    "INTEGER",
    "POINTER",
    "ANYTHING",
    "FLOAT",
    "DOUBLE",
    "merge",
    "checked_merge",
    "meet",
    "leq",
]
