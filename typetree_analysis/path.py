"""
typetree_analysis.path
=======================

Byte addresses reachable from a value, expressed as a chain of
dereference/offset hops.

A :class:`Path` is a non-empty tuple of integers.  Element ``d`` is the byte
offset inside the object reached after ``d`` dereferences from the root
value; ``-1`` at any position stands for "every offset at this depth".

::

    [-1]          the root value itself
    [-1, 0]       byte 0 of what the root points to
    [-1, 8]       byte 8 of the pointee
    [-1, 8, 0]    byte 0 of what the pointer stored at pointee+8 points to
    [-1, -1]      every byte of the pointee

Paths are immutable and totally ordered (tuple ordering: a proper prefix
sorts before its extensions, ``-1`` before any concrete offset), which gives
the canonical order used by the textual codec.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator, Tuple

from .errors import MalformedPathError

#: The hop value meaning "every offset at this depth".
ANY_OFFSET = -1


def _check_hop(hop: object, hops: Iterable[object]) -> int:
    if isinstance(hop, bool) or not isinstance(hop, int):
        raise MalformedPathError(
            f"path element {hop!r} is not an integer", tuple(hops)
        )
    if hop < ANY_OFFSET:
        raise MalformedPathError(
            f"path element {hop} is below -1", tuple(hops)
        )
    return hop


@dataclass(frozen=True, order=True)
class Path:
    """An immutable dereference/offset address."""

    hops: Tuple[int, ...]

    def __post_init__(self) -> None:
        hops = tuple(self.hops)
        if not hops:
            raise MalformedPathError("a path needs at least the root hop", hops)
        for hop in hops:
            _check_hop(hop, hops)
        object.__setattr__(self, "hops", hops)

    # ---- construction ----------------------------------------------------

    @classmethod
    def of(cls, *hops: int) -> Path:
        """``Path.of(-1, 0)`` is shorthand for ``Path((-1, 0))``."""
        return cls(hops)

    @classmethod
    def root(cls) -> Path:
        """The path addressing the root value as a whole."""
        return cls((ANY_OFFSET,))

    @classmethod
    def from_access_chain(cls, steps: Iterable[int]) -> Path:
        """Build a path from a bitcast/GEP-like access chain.

        The chain starts at the root value.  A ``-1`` step dereferences the
        current object (opening a new depth at offset 0); a non-negative step
        is a member byte offset added to the current depth.

        >>> Path.from_access_chain([-1, 8, 4, -1])
        Path(hops=(-1, 12, 0))
        """
        path = cls.root()
        for step in steps:
            _check_hop(step, (step,))
            if step == ANY_OFFSET:
                path = path.append_offset(0)
            else:
                path = path.shift_last(step)
        return path

    # ---- derivation ------------------------------------------------------

    def prepend_dereference(self) -> Path:
        """Wrap the address behind one more pointer indirection."""
        return Path((ANY_OFFSET,) + self.hops)

    def append_offset(self, offset: int) -> Path:
        """Descend into the pointee of the object at this path."""
        _check_hop(offset, self.hops + (offset,))
        return Path(self.hops + (offset,))

    def shift_last(self, offset: int) -> Path:
        """Move *offset* bytes forward inside the object at the current depth.

        A wildcard last hop is replaced by *offset*.
        """
        if offset < 0:
            raise MalformedPathError(
                f"field offset {offset} is negative", self.hops
            )
        last = self.hops[-1]
        new_last = offset if last == ANY_OFFSET else last + offset
        return Path(self.hops[:-1] + (new_last,))

    def rebase_first(self, delta: int) -> Path:
        """Add *delta* to the first hop; wildcards are left alone."""
        first = self.hops[0]
        if first == ANY_OFFSET:
            return self
        return Path((first + delta,) + self.hops[1:])

    def strip_first(self) -> Path:
        """Drop the first hop (the path must have at least two hops)."""
        if len(self.hops) < 2:
            raise MalformedPathError(
                "cannot strip the only hop of a path", self.hops
            )
        return Path(self.hops[1:])

    @property
    def parent(self) -> Path:
        return Path(self.hops[:-1]) if len(self.hops) > 1 else self

    # ---- queries ---------------------------------------------------------

    @property
    def depth(self) -> int:
        """Number of dereferences separating the addressed bytes from the root."""
        return len(self.hops) - 1

    @property
    def first(self) -> int:
        return self.hops[0]

    @property
    def last(self) -> int:
        return self.hops[-1]

    def is_prefix_of(self, other: Path) -> bool:
        """``True`` iff this path is a *proper* prefix (ancestor) of *other*."""
        n = len(self.hops)
        return n < len(other.hops) and other.hops[:n] == self.hops

    def ancestors(self) -> Iterator[Path]:
        """Proper prefixes, shortest first."""
        for n in range(1, len(self.hops)):
            yield Path(self.hops[:n])

    def matches(self, pattern: Path) -> bool:
        """Wildcard match: a ``-1`` hop in *pattern* accepts any offset."""
        if len(pattern.hops) != len(self.hops):
            return False
        return all(
            p == ANY_OFFSET or p == h for p, h in zip(pattern.hops, self.hops)
        )

    def max_offset(self) -> int:
        return max(self.hops)

    def __len__(self) -> int:
        return len(self.hops)

    def __iter__(self) -> Iterator[int]:
        return iter(self.hops)

    def __getitem__(self, index: int) -> int:
        return self.hops[index]

    def __str__(self) -> str:
        return "[" + ",".join(str(h) for h in self.hops) + "]"


def prepend_dereference(path: Path) -> Path:
    return path.prepend_dereference()


def append_offset(path: Path, offset: int) -> Path:
    return path.append_offset(offset)


def is_prefix_of(a: Path, b: Path) -> bool:
    return a.is_prefix_of(b)


def compare(a: Path, b: Path) -> int:
    """Three-way comparison in canonical order."""
    if a.hops < b.hops:
        return -1
    if a.hops > b.hops:
        return 1
    return 0


ROOT = Path.root()


__all__ = [
    "ANY_OFFSET",
    "Path",
    "ROOT",
    "prepend_dereference",
    "append_offset",
    "is_prefix_of",
    "compare",
]
