"""
typetree_analysis/descriptors.py
═════════════════════════════════

Structural layout descriptors and the descriptor → TypeTree builder.

Descriptors are produced by whatever extracts layouts from a source type
system; the builder makes no assumption about where they came from.

::

    d ::= Scalar(ct)                          primitive bytes
        | Struct([(offset, d), …])            fields at byte offsets
        | Array(d, stride, count)             homogeneous elements
        | PointerTo(d)                        an address of a d
        | DescriptorRef(name)                 named layout (allows cycles)

Walk
────
The builder walks top-down from the root path ``[-1]`` with an explicit work
stack:

* ``Scalar``    inserts ``(path, ct)``;
* ``Struct``    visits each field at ``path.shift_last(offset)``;
* ``Array``     visits one representative element at ``path.shift_last(0)``;
                per-index paths are never created;
* ``PointerTo`` inserts ``(path, Pointer)`` and visits the pointee at
                ``path.append_offset(0)``.

Self-referential layouts are cut off at ``options.max_depth`` dereferences:
the pointer at the cutoff keeps its ``Pointer`` tag and its whole pointee
becomes ``Anything`` at ``path.append_offset(-1)``.  The cutoff raises
:class:`~typetree_analysis.errors.RecursionLimitExceeded`, which is recovered
locally unless ``options.recursion_limit_fatal`` is set.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from .concrete_type import ANYTHING, POINTER, ConcreteType, checked_merge
from .config import DEFAULT_OPTIONS, AnalysisOptions
from .errors import DescriptorError, RecursionLimitExceeded
from .path import Path
from .type_tree import TypeTree

logger = logging.getLogger(__name__)

#: Size of a pointer in bytes, used by :func:`byte_size`.
POINTER_SIZE = 8


# ---------------------------------------------------------------------------
# Descriptor nodes
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Scalar:
    """Primitive bytes of a single concrete type.

    ``size`` is optional for Integer/Pointer; a Float's size follows from its
    precision.
    """

    type: ConcreteType
    size: Optional[int] = None

    def __post_init__(self) -> None:
        if self.size is not None and self.size <= 0:
            raise DescriptorError(f"scalar size must be positive, got {self.size}")


@dataclass(frozen=True)
class Struct:
    """Fields at explicit byte offsets."""

    fields: Tuple[Tuple[int, "Descriptor"], ...]
    name: Optional[str] = None
    size: Optional[int] = None

    def __post_init__(self) -> None:
        fields = tuple((int(off), sub) for off, sub in self.fields)
        for off, _ in fields:
            if off < 0:
                raise DescriptorError(
                    f"field offset {off} of struct {self.name or '<anon>'} is negative"
                )
        object.__setattr__(self, "fields", fields)


@dataclass(frozen=True)
class Array:
    """``count`` elements, ``stride`` bytes apart."""

    element: "Descriptor"
    stride: int
    count: int

    def __post_init__(self) -> None:
        if self.stride < 0 or self.count < 0:
            raise DescriptorError(
                f"array stride/count must be non-negative, got {self.stride}/{self.count}"
            )


@dataclass(frozen=True)
class PointerTo:
    """An address of a ``pointee``."""

    pointee: "Descriptor"


@dataclass(frozen=True)
class DescriptorRef:
    """Reference to a named descriptor in a :class:`DescriptorRegistry`."""

    name: str


Descriptor = Union[Scalar, Struct, Array, PointerTo, DescriptorRef]


class DescriptorRegistry:
    """Named descriptors, so recursive layouts need no Python object cycles.

    ::

        reg = DescriptorRegistry()
        reg.define("node", Struct([(0, PointerTo(DescriptorRef("node"))),
                                   (8, Scalar(DOUBLE))]))
    """

    def __init__(self, definitions: Optional[Mapping[str, Descriptor]] = None) -> None:
        self._defs: Dict[str, Descriptor] = dict(definitions or {})

    def define(self, name: str, descriptor: Descriptor) -> DescriptorRef:
        self._defs[name] = descriptor
        return DescriptorRef(name)

    def resolve(self, ref: DescriptorRef) -> Descriptor:
        try:
            return self._defs[ref.name]
        except KeyError:
            raise DescriptorError(f"unresolved descriptor reference {ref.name!r}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._defs

    def __len__(self) -> int:
        return len(self._defs)


def byte_size(
    descriptor: Descriptor,
    registry: Optional[DescriptorRegistry] = None,
) -> Optional[int]:
    """Size of *descriptor* in bytes, or ``None`` if it cannot be derived."""
    if isinstance(descriptor, Scalar):
        if descriptor.size is not None:
            return descriptor.size
        if descriptor.type.is_float:
            return descriptor.type.float_size
        if descriptor.type.is_pointer:
            return POINTER_SIZE
        return None
    if isinstance(descriptor, PointerTo):
        return POINTER_SIZE
    if isinstance(descriptor, Array):
        return descriptor.stride * descriptor.count
    if isinstance(descriptor, Struct):
        if descriptor.size is not None:
            return descriptor.size
        end = 0
        for off, sub in descriptor.fields:
            sub_size = byte_size(sub, registry)
            if sub_size is None:
                return None
            end = max(end, off + sub_size)
        return end
    if isinstance(descriptor, DescriptorRef):
        if registry is None:
            return None
        return byte_size(registry.resolve(descriptor), registry)
    raise DescriptorError(f"unknown descriptor {descriptor!r}")


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------

@dataclass
class _Frame:
    descriptor: Descriptor
    path: Path
    # Names resolved since the last pointer; a repeat means an infinitely
    # sized layout.
    refs: Tuple[str, ...] = ()


@dataclass
class BuildReport:
    """What the last :meth:`TypeTreeBuilder.build` call had to truncate."""

    truncations: List[RecursionLimitExceeded] = field(default_factory=list)

    @property
    def truncated(self) -> bool:
        return bool(self.truncations)


class TypeTreeBuilder:
    """Synthesises an initial TypeTree from a structural descriptor.

    Parameters
    ----------
    options : AnalysisOptions, optional
        Supplies ``max_depth``, ``recursion_limit_fatal`` and
        ``pointer_int_same``.
    registry : DescriptorRegistry, optional
        Resolves :class:`DescriptorRef` nodes.
    """

    def __init__(
        self,
        options: Optional[AnalysisOptions] = None,
        registry: Optional[DescriptorRegistry] = None,
    ) -> None:
        self.options = options or DEFAULT_OPTIONS
        self.registry = registry or DescriptorRegistry()
        self.last_report = BuildReport()

    def build(self, descriptor: Descriptor, root: Optional[Path] = None) -> TypeTree:
        """Build the tree of a value laid out as *descriptor*."""
        opts = self.options
        report = BuildReport()
        entries: Dict[Path, ConcreteType] = {}

        def add(path: Path, ct: ConcreteType) -> None:
            if ct.is_bottom:
                return
            old = entries.get(path)
            if old is None:
                entries[path] = ct
            else:
                entries[path], _ = checked_merge(
                    old, ct, pointer_int_same=opts.pointer_int_same
                )

        stack: List[_Frame] = [_Frame(descriptor, root or Path.root())]
        while stack:
            frame = stack.pop()
            desc = frame.descriptor
            path = frame.path

            if isinstance(desc, Scalar):
                add(path, desc.type)

            elif isinstance(desc, Struct):
                for off, sub in reversed(desc.fields):
                    stack.append(_Frame(sub, path.shift_last(off), frame.refs))

            elif isinstance(desc, Array):
                if desc.count > 0:
                    stack.append(_Frame(desc.element, path.shift_last(0), frame.refs))

            elif isinstance(desc, PointerTo):
                add(path, POINTER)
                try:
                    self._check_depth(path)
                except RecursionLimitExceeded as exc:
                    if opts.recursion_limit_fatal:
                        raise
                    logger.debug("truncating descriptor walk: %s", exc)
                    report.truncations.append(exc)
                    add(path.append_offset(-1), ANYTHING)
                    continue
                stack.append(_Frame(desc.pointee, path.append_offset(0)))

            elif isinstance(desc, DescriptorRef):
                if desc.name in frame.refs:
                    cycle = " -> ".join(frame.refs + (desc.name,))
                    raise DescriptorError(
                        f"descriptor {desc.name!r} contains itself without "
                        f"an intervening pointer ({cycle})"
                    )
                stack.append(
                    _Frame(self.registry.resolve(desc), path, frame.refs + (desc.name,))
                )

            else:
                raise DescriptorError(f"unknown descriptor {desc!r}")

        if report.truncated:
            logger.warning(
                "descriptor truncated at %d pointer(s) beyond max_depth=%d",
                len(report.truncations),
                opts.max_depth,
            )
        self.last_report = report
        return TypeTree(entries, pointer_int_same=opts.pointer_int_same)

    def _check_depth(self, path: Path) -> None:
        depth = path.depth + 1
        if depth > self.options.max_depth:
            raise RecursionLimitExceeded(path, depth, self.options.max_depth)


def build_type_tree(
    descriptor: Descriptor,
    options: Optional[AnalysisOptions] = None,
    registry: Optional[DescriptorRegistry] = None,
) -> TypeTree:
    """Convenience wrapper around :class:`TypeTreeBuilder`."""
    return TypeTreeBuilder(options, registry).build(descriptor)


def struct(*fields: Tuple[int, Descriptor], name: Optional[str] = None) -> Struct:
    """Shorthand for :class:`Struct`, e.g. ``struct((0, f32), (4, f32))``."""
    return Struct(tuple(fields), name=name)


__all__ = [
    "Scalar",
    "Struct",
    "Array",
    "PointerTo",
    "DescriptorRef",
    "Descriptor",
    "DescriptorRegistry",
    "TypeTreeBuilder",
    "BuildReport",
    "build_type_tree",
    "byte_size",
    "struct",
    "POINTER_SIZE",
]
