"""
typetree_analysis — Type-Tree Inference for Automatic Differentiation
======================================================================

Infers, for every value of a lowered program, a *TypeTree*: which bytes
reachable from the value are integers, floats (and of which precision),
pointers, or unknown.  A differentiation transform uses the result to decide
which memory carries derivatives.

Core modules
------------
errors
    Exception hierarchy shared by every module.
config
    ``AnalysisOptions``: depth and offset bounds, merge policy, iteration cap.
path
    Dereference/offset addresses into a value.
concrete_type
    The height-3 lattice of type tags.
type_tree
    Path → tag mappings with normalising merge and re-rooting operations.
lattice
    Lattice interface plus the TypeTree lattice.
codec
    Canonical textual form of TypeTrees (parsimonious grammar).
descriptors
    Structural layout descriptors and the descriptor → TypeTree builder.
program
    Functions, instructions and seeds handed to the propagator.
callgraph
    Call graph with Tarjan SCCs and bottom-up ordering.
propagator
    Whole-program worklist fixpoint over TypeTrees.

Quick start
-----------
>>> from typetree_analysis import Scalar, Struct, PointerTo, FLOAT, build_type_tree
>>> print(build_type_tree(PointerTo(Struct(((0, Scalar(FLOAT)), (4, Scalar(FLOAT)))))))
{[-1]:Pointer, [-1,0]:Float@float, [-1,4]:Float@float}
"""

from __future__ import annotations

import importlib
import sys
from typing import TYPE_CHECKING, List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.1.0"
__all__: List[str] = []          # populated incrementally below

# ---------------------------------------------------------------------------
# Internal registry: (module_name, list_of_names_to_import)
# ---------------------------------------------------------------------------

_CORE_MODULES = {
    "errors": [
        "TypeTreeError",
        "MalformedPathError",
        "RecursionLimitExceeded",
        "TypeTreeParseError",
        "FrozenTypeTreeError",
        "DescriptorError",
        "ProgramError",
        "ConfigError",
    ],
    "config": [
        "AnalysisOptions",
        "DEFAULT_OPTIONS",
    ],
    "path": [
        "ANY_OFFSET",
        "Path",
        "ROOT",
    ],
    "concrete_type": [
        "BaseType",
        "FloatPrecision",
        "ConcreteType",
        "BOTTOM",
        "INTEGER",
        "POINTER",
        "ANYTHING",
        "FLOAT",
        "DOUBLE",
        "checked_merge",
    ],
    "type_tree": [
        "TypeTree",
        "merge_all",
    ],
    "lattice": [
        "Lattice",
        "TypeTreeLattice",
    ],
    "codec": [
        "encode",
        "decode",
    ],
    "descriptors": [
        "Scalar",
        "Struct",
        "Array",
        "PointerTo",
        "DescriptorRef",
        "DescriptorRegistry",
        "TypeTreeBuilder",
        "build_type_tree",
        "struct",
    ],
    "program": [
        "OpKind",
        "Instruction",
        "Function",
        "Program",
    ],
    "callgraph": [
        "CallGraph",
        "CallGraphNode",
        "CallGraphEdge",
        "build_callgraph",
    ],
    "propagator": [
        "ValueState",
        "TransferRule",
        "FunctionTypeInfo",
        "PropagationResult",
        "FixpointPropagator",
        "analyze",
    ],
}


def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace."""
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        raise ImportError(
            f"typetree_analysis: required submodule '{module_rel_name}' "
            f"failed to import: {exc}"
        ) from exc

    current_module = sys.modules[__name__]
    for name in names:
        try:
            obj = getattr(mod, name)
        except AttributeError:
            raise ImportError(
                f"typetree_analysis: '{name}' not found in '{fq_name}'"
            ) from None
        setattr(current_module, name, obj)
        __all__.append(name)

    if module_rel_name not in __all__:
        __all__.append(module_rel_name)


for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names)

del _mod, _names

if TYPE_CHECKING:
    from .codec import decode, encode
    from .config import DEFAULT_OPTIONS, AnalysisOptions
    from .descriptors import (
        Array,
        DescriptorRef,
        DescriptorRegistry,
        PointerTo,
        Scalar,
        Struct,
        TypeTreeBuilder,
        build_type_tree,
        struct,
    )
    from .path import ANY_OFFSET, ROOT, Path
    from .program import Function, Instruction, OpKind, Program
    from .propagator import FixpointPropagator, PropagationResult, analyze
    from .type_tree import TypeTree


def list_submodules() -> List[str]:
    """Return the names of all submodules in the package."""
    return sorted(_CORE_MODULES)
