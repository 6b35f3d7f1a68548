"""
typetree_analysis/type_tree.py
═══════════════════════════════

TypeTree — the mapping from :class:`~typetree_analysis.path.Path` to
:class:`~typetree_analysis.concrete_type.ConcreteType` that describes the
byte layout reachable from one value.

Invariants
──────────
* ``Bottom`` is never stored; an absent path reads as ``Bottom``.
* No stored path has a proper ancestor tagged ``Integer`` or ``Float``: a
  scalar leaf has no sub-structure.  When a merge gives a scalar entry a
  descendant, the entry is joined with ``Pointer`` (degrading it to
  ``Anything`` unless pointer/int unification is enabled).
* No stored path has a proper ancestor tagged ``Anything``: opaque data has no
  interesting sub-structure, so such descendants are dropped.

A ``Pointer`` entry with deeper descendants is the normal case; the two
describe different dereference depths, not the same byte.

The normalisation above is applied after every pointwise merge, which keeps
``merge`` commutative, associative and idempotent.

Two rootings
────────────
*Value trees* describe a register value: first hop ``-1`` is the value as a
whole (``{[-1]:Pointer, [-1,0]:Float@float}`` is a pointer to a float).
*Memory trees* describe the bytes of an object: first hop is a byte offset
(``{[0]:Float@float, [4]:Float@float}``).  :meth:`TypeTree.offset_subtree`
turns a pointer's value tree into the memory tree of its pointee,
:meth:`TypeTree.lookup_value` reads a value out of a memory tree, and
:meth:`TypeTree.to_memory` / :meth:`TypeTree.only` go the other way.
"""

from __future__ import annotations

from typing import (
    Dict,
    Iterable,
    Iterator,
    List,
    Mapping,
    Optional,
    Tuple,
    Union,
)

from .concrete_type import (
    ANYTHING,
    BOTTOM,
    POINTER,
    BaseType,
    ConcreteType,
    checked_merge,
    meet as meet_types,
)
from .errors import FrozenTypeTreeError, MalformedPathError
from .path import ANY_OFFSET, Path

PathLike = Union[Path, Tuple[int, ...], List[int]]


def _as_path(path: PathLike) -> Path:
    if isinstance(path, Path):
        return path
    return Path(tuple(path))


def _join_into(
    entries: Dict[Path, ConcreteType],
    path: Path,
    ct: ConcreteType,
    pointer_int_same: bool,
) -> None:
    if ct.is_bottom:
        return
    old = entries.get(path, BOTTOM)
    entries[path], _ = checked_merge(old, ct, pointer_int_same=pointer_int_same)


def _normalize(
    entries: Dict[Path, ConcreteType],
    pointer_int_same: bool = False,
) -> Dict[Path, ConcreteType]:
    """Restore the leaf/opaque invariants on a pointwise-merged mapping."""
    entries = {p: t for p, t in entries.items() if not t.is_bottom}

    # An entry with a stored descendant must be able to hold an address.
    for path in list(entries):
        for anc in path.ancestors():
            t = entries.get(anc)
            if t is not None and t.is_scalar:
                entries[anc], _ = checked_merge(
                    t, POINTER, pointer_int_same=pointer_int_same
                )

    return {
        p: t
        for p, t in entries.items()
        if not any(
            entries.get(anc, BOTTOM).base is BaseType.ANYTHING
            for anc in p.ancestors()
        )
    }


def _is_cutoff_marker(path: Path, ct: ConcreteType, max_depth: int) -> bool:
    return path.depth == max_depth + 1 and path.last == ANY_OFFSET and ct.is_anything


class TypeTree:
    """Byte-layout description of one value.

    A tree is mutable until :meth:`freeze` is called; afterwards every
    mutating method raises :class:`~typetree_analysis.errors.FrozenTypeTreeError`
    and the tree becomes hashable.

    >>> t = TypeTree({(-1,): POINTER, (-1, 0): ConcreteType.float_of("float")})
    >>> str(t)
    '{[-1]:Pointer, [-1,0]:Float@float}'
    """

    __slots__ = ("_entries", "_frozen")

    def __init__(
        self,
        entries: Optional[Mapping[PathLike, ConcreteType]] = None,
        *,
        pointer_int_same: bool = False,
    ) -> None:
        raw: Dict[Path, ConcreteType] = {}
        for path, ct in (entries or {}).items():
            _join_into(raw, _as_path(path), ct, pointer_int_same)
        self._entries: Dict[Path, ConcreteType] = _normalize(raw, pointer_int_same)
        self._frozen = False

    # ---- constructors ----------------------------------------------------

    @classmethod
    def scalar(cls, ct: ConcreteType) -> TypeTree:
        """Tree of a register value that is entirely *ct*."""
        return cls({Path.root(): ct})

    @classmethod
    def _from_normalized(cls, entries: Dict[Path, ConcreteType]) -> TypeTree:
        tree = cls.__new__(cls)
        tree._entries = entries
        tree._frozen = False
        return tree

    # ---- lifecycle -------------------------------------------------------

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> TypeTree:
        """Make the tree read-only (idempotent); returns ``self``."""
        self._frozen = True
        return self

    def copy(self) -> TypeTree:
        """A mutable copy, regardless of whether this tree is frozen."""
        return TypeTree._from_normalized(dict(self._entries))

    def _check_mutable(self) -> None:
        if self._frozen:
            raise FrozenTypeTreeError("TypeTree is frozen and cannot be modified")

    # ---- queries ---------------------------------------------------------

    def get(self, path: PathLike) -> ConcreteType:
        """Exact-match lookup; absent paths are ``Bottom``."""
        return self._entries.get(_as_path(path), BOTTOM)

    __getitem__ = get

    def lookup(self, path: PathLike) -> ConcreteType:
        """Lookup honouring wildcards and opaque ancestors.

        Exact match first; otherwise the merge of every stored entry whose
        ``-1`` hops wildcard-match *path*; otherwise ``Anything`` when an
        ancestor is opaque; otherwise ``Bottom``.
        """
        path = _as_path(path)
        exact = self._entries.get(path)
        if exact is not None:
            return exact
        found = BOTTOM
        for stored, ct in self._entries.items():
            if path.matches(stored):
                found, _ = checked_merge(found, ct)
        if not found.is_bottom:
            return found
        for anc in path.ancestors():
            for stored, ct in self._entries.items():
                if ct.is_anything and anc.matches(stored):
                    return ANYTHING
        return BOTTOM

    def __contains__(self, path: object) -> bool:
        if isinstance(path, (Path, tuple, list)):
            try:
                return _as_path(path) in self._entries
            except MalformedPathError:
                return False
        return False

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[Path]:
        return iter(sorted(self._entries))

    def paths(self) -> List[Path]:
        return sorted(self._entries)

    def items(self) -> List[Tuple[Path, ConcreteType]]:
        """Entries in canonical path order."""
        return sorted(self._entries.items(), key=lambda kv: kv[0])

    @property
    def is_empty(self) -> bool:
        return not self._entries

    def is_fully_determined(self) -> bool:
        """``True`` iff no entry is ``Anything``."""
        return not any(ct.is_anything for ct in self._entries.values())

    def max_depth(self) -> int:
        return max((p.depth for p in self._entries), default=-1)

    # ---- merge -----------------------------------------------------------

    def merge(self, other: TypeTree, *, pointer_int_same: bool = False) -> TypeTree:
        """``self ⊔ other`` as a new (mutable) tree."""
        raw = dict(self._entries)
        for path, ct in other._entries.items():
            _join_into(raw, path, ct, pointer_int_same)
        return TypeTree._from_normalized(_normalize(raw, pointer_int_same))

    __or__ = merge

    def merge_in(self, other: TypeTree, *, pointer_int_same: bool = False) -> bool:
        """In-place ``self ⊔= other``; returns whether anything changed."""
        self._check_mutable()
        merged = self.merge(other, pointer_int_same=pointer_int_same)
        if merged._entries == self._entries:
            return False
        self._entries = merged._entries
        return True

    def insert(
        self,
        path: PathLike,
        ct: ConcreteType,
        *,
        pointer_int_same: bool = False,
    ) -> bool:
        """Merge a single entry in place; returns whether anything changed."""
        self._check_mutable()
        return self.merge_in(
            TypeTree({_as_path(path): ct}), pointer_int_same=pointer_int_same
        )

    def meet(self, other: TypeTree) -> TypeTree:
        """Pointwise greatest lower bound over the common path set."""
        raw = {
            path: meet_types(ct, other._entries[path])
            for path, ct in self._entries.items()
            if path in other._entries
        }
        return TypeTree._from_normalized(_normalize(raw))

    __and__ = meet

    # ---- re-rooting ------------------------------------------------------

    def offset_subtree(self, base_offset: int) -> TypeTree:
        """Memory tree of the pointee, starting at byte *base_offset*.

        Every path ``[-1, k, …]`` (or ``[0, k, …]``) loses its first hop and
        ``k`` is rebased to ``k - base_offset``; entries before
        *base_offset* are dropped and a wildcard ``k`` stays a wildcard.
        """
        if base_offset < 0:
            raise MalformedPathError(
                f"base offset {base_offset} is negative", (base_offset,)
            )
        raw: Dict[Path, ConcreteType] = {}
        for path, ct in self._entries.items():
            if len(path) < 2 or path.first not in (ANY_OFFSET, 0):
                continue
            sub = path.strip_first()
            if sub.first != ANY_OFFSET:
                if sub.first < base_offset:
                    continue
                sub = sub.rebase_first(-base_offset)
            _join_into(raw, sub, ct, False)
        return TypeTree._from_normalized(_normalize(raw))

    def only(self, offset: int) -> TypeTree:
        """Prefix every path with *offset*.

        ``only(-1)`` wraps the layout behind one more pointer indirection.
        """
        return TypeTree._from_normalized(
            {Path((offset,) + p.hops): ct for p, ct in self._entries.items()}
        )

    def shift_indices(
        self,
        offset: int,
        max_size: int,
        add_offset: int = 0,
    ) -> TypeTree:
        """Select first hops in ``[offset, offset + max_size)`` and rebase.

        Selected first hops move by ``add_offset - offset``.  ``max_size=-1``
        means unbounded, in which case wildcard first hops are kept; for a
        bounded window a wildcard first hop lands at *add_offset*.
        """
        raw: Dict[Path, ConcreteType] = {}
        for path, ct in self._entries.items():
            first = path.first
            if first == ANY_OFFSET:
                if max_size == -1:
                    new = path
                else:
                    new = Path((add_offset,) + path.hops[1:])
            else:
                if first < offset:
                    continue
                if max_size != -1 and first >= offset + max_size:
                    continue
                new = Path((first - offset + add_offset,) + path.hops[1:])
            _join_into(raw, new, ct, False)
        return TypeTree._from_normalized(_normalize(raw))

    def lookup_value(self, size: int) -> TypeTree:
        """Value tree of a *size*-byte load from this memory tree.

        Keeps first hops in ``[0, size)`` and wildcards.  When offset 0 is the
        only concrete first hop, the loaded value is that object as a whole
        and its first hop becomes ``-1``.
        """
        if size <= 0:
            raise ValueError(f"load size must be positive, got {size}")
        kept = {
            p: ct
            for p, ct in self._entries.items()
            if p.first == ANY_OFFSET or p.first < size
        }
        firsts = {p.first for p in kept if p.first != ANY_OFFSET}
        if firsts != {0}:
            return TypeTree._from_normalized(_normalize(kept))
        raw: Dict[Path, ConcreteType] = {}
        for path, ct in kept.items():
            new = Path((ANY_OFFSET,) + path.hops[1:]) if path.first == 0 else path
            _join_into(raw, new, ct, False)
        return TypeTree._from_normalized(_normalize(raw))

    def to_memory(self) -> TypeTree:
        """Memory tree of the bytes holding this value (first ``-1`` → 0)."""
        raw: Dict[Path, ConcreteType] = {}
        for path, ct in self._entries.items():
            new = Path((0,) + path.hops[1:]) if path.first == ANY_OFFSET else path
            _join_into(raw, new, ct, False)
        return TypeTree._from_normalized(_normalize(raw))

    # ---- filtering -------------------------------------------------------

    def purge_anything(self) -> TypeTree:
        """Drop every ``Anything`` entry."""
        return TypeTree._from_normalized(
            {p: ct for p, ct in self._entries.items() if not ct.is_anything}
        )

    def at_most(self, max_offset: int) -> TypeTree:
        """Drop entries that address any hop beyond *max_offset*."""
        return TypeTree._from_normalized(
            {p: ct for p, ct in self._entries.items() if p.max_offset() <= max_offset}
        )

    def truncate(self, max_depth: int) -> TypeTree:
        """Drop entries more than *max_depth* dereferences deep.

        Cutoff markers survive: an ``Anything`` entry whose last hop is ``-1``
        one dereference past the bound stands for a pointee the builder did
        not lay out.
        """
        return TypeTree._from_normalized({
            p: ct
            for p, ct in self._entries.items()
            if p.depth <= max_depth or _is_cutoff_marker(p, ct, max_depth)
        })

    # ---- dunder ----------------------------------------------------------

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TypeTree):
            return NotImplemented
        return self._entries == other._entries

    def __hash__(self) -> int:
        if not self._frozen:
            raise TypeError("unhashable: TypeTree is mutable until frozen")
        return hash(frozenset(self._entries.items()))

    def __str__(self) -> str:
        from .codec import encode

        return encode(self)

    def __repr__(self) -> str:
        state = ", frozen" if self._frozen else ""
        return f"TypeTree({self}{state})"


# ---------------------------------------------------------------------------
# Functional aliases
# ---------------------------------------------------------------------------

def merge(a: TypeTree, b: TypeTree, *, pointer_int_same: bool = False) -> TypeTree:
    return a.merge(b, pointer_int_same=pointer_int_same)


def merge_all(trees: Iterable[TypeTree], *, pointer_int_same: bool = False) -> TypeTree:
    result = TypeTree()
    for tree in trees:
        result = result.merge(tree, pointer_int_same=pointer_int_same)
    return result


def get(tree: TypeTree, path: PathLike) -> ConcreteType:
    return tree.get(path)


def offset_subtree(tree: TypeTree, base_offset: int) -> TypeTree:
    return tree.offset_subtree(base_offset)


__all__ = [
    "TypeTree",
    "merge",
    "merge_all",
    "get",
    "offset_subtree",
]
