"""
typetree_analysis.propagator
=============================

Whole-program fixpoint propagation of TypeTrees.

Every value in a :class:`~typetree_analysis.program.Program` carries one
TypeTree.  Each instruction is compiled into a handful of
:class:`TransferRule`\\ s ("the tree of *target* is at least ``f(trees of
sources)``"); the propagator then runs a chaotic worklist iteration:

::

    tree[v] := truncate(tree[v] ⊔ seed[v] ⊔ ⨆ rule(v)(sources))

and re-queues the targets of every rule reading ``v`` whenever ``tree[v]``
grows.  Trees only grow, the tag lattice has height 3 and paths are bounded
by ``max_depth`` / ``max_type_offset``, so the iteration terminates.

Transfer rules
--------------
``COPY``    result ≡ each operand (both directions)
``LOAD``    result ⊒ memory of ptr read at offset 0 for ``size`` bytes;
            ptr ⊒ Pointer to the result's bytes
``STORE``   the mirror image of ``LOAD`` for ``(value, ptr)``
``OFFSET``  result ⊒ Pointer to ptr's memory from ``offset`` on;
            ptr ⊒ Pointer to result's memory shifted back by ``offset``
``ARITH``   result and every operand ⊒ the instruction's scalar type
``CALL``    formal ≡ actual for every argument; call result ⊒ callee return
``RETURN``  function return ⊒ returned value

Value states
------------
Every value starts ``UNVISITED``, becomes ``QUEUED`` when scheduled and
``STABLE`` once processing leaves its tree unchanged; growth of a source
sends its dependents back to ``QUEUED``.  After the run every tree is frozen.

Usage
-----
::

    result = analyze(program, AnalysisOptions(max_depth=4))
    print(result.tree_of("main.%p"))
    print(result.function_summary("axpy"))
"""

from __future__ import annotations

import enum
import logging
import time
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional, Tuple

from .callgraph import CallGraph, build_callgraph
from .concrete_type import POINTER, ConcreteType
from .config import DEFAULT_OPTIONS, AnalysisOptions
from .errors import ProgramError
from .lattice import TypeTreeLattice
from .program import Function, Instruction, OpKind, Program
from .type_tree import TypeTree

logger = logging.getLogger(__name__)


class ValueState(enum.Enum):
    """Per-value worklist state."""

    UNVISITED = "unvisited"
    QUEUED    = "queued"
    STABLE    = "stable"


@dataclass(frozen=True)
class TransferRule:
    """``tree[target] ⊒ apply(tree[s] for s in sources)``.

    A rule with no sources contributes a constant.
    """

    target: str
    sources: Tuple[str, ...]
    apply: Callable[..., TypeTree]
    origin: Optional[Instruction] = None

    def __str__(self) -> str:
        src = ", ".join(self.sources) or "const"
        where = f" ({self.origin})" if self.origin is not None else ""
        return f"{self.target} <- {src}{where}"


# ---------------------------------------------------------------------------
# Tree transformers shared by the rules
# ---------------------------------------------------------------------------

def _identity(tree: TypeTree) -> TypeTree:
    return tree


def _constant(ct: ConcreteType) -> Callable[[], TypeTree]:
    def rule() -> TypeTree:
        return TypeTree.scalar(ct)
    return rule


def _pointer_to(memory: TypeTree) -> TypeTree:
    """Value tree of a pointer whose pointee bytes are *memory*."""
    return TypeTree.scalar(POINTER).merge(memory.only(-1))


def _loaded(size: int) -> Callable[[TypeTree], TypeTree]:
    def rule(pointer: TypeTree) -> TypeTree:
        return pointer.offset_subtree(0).lookup_value(size)
    return rule


def _stored(value: TypeTree) -> TypeTree:
    return _pointer_to(value.to_memory())


def _offset_forward(offset: int) -> Callable[[TypeTree], TypeTree]:
    def rule(pointer: TypeTree) -> TypeTree:
        return _pointer_to(pointer.offset_subtree(offset))
    return rule


def _offset_backward(offset: int) -> Callable[[TypeTree], TypeTree]:
    def rule(result: TypeTree) -> TypeTree:
        return _pointer_to(result.offset_subtree(0).shift_indices(0, -1, offset))
    return rule


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FunctionTypeInfo:
    """Argument and return trees of one function after propagation."""

    name: str
    arguments: Tuple[TypeTree, ...]
    return_tree: Optional[TypeTree] = None

    def __str__(self) -> str:
        args = ", ".join(str(t) for t in self.arguments)
        ret = str(self.return_tree) if self.return_tree is not None else "void"
        return f"{self.name}({args}) -> {ret}"


@dataclass
class PropagationResult:
    """Container for propagation results.

    Attributes
    ----------
    trees : dict
        Map from value id → frozen TypeTree.
    states : dict
        Map from value id → :class:`ValueState` at the end of the run.
    iterations : int
        Number of value updates performed.
    converged : bool
        Whether the worklist drained (vs. hitting ``max_iterations``).
    elapsed_seconds : float
        Wall-clock time.
    """

    program: Program
    trees: Dict[str, TypeTree] = field(default_factory=dict)
    states: Dict[str, ValueState] = field(default_factory=dict)
    iterations: int = 0
    converged: bool = False
    elapsed_seconds: float = 0.0

    def tree_of(self, value: str) -> TypeTree:
        try:
            return self.trees[value]
        except KeyError:
            raise ProgramError(f"unknown value {value!r}") from None

    def offset_subtree(self, value: str, base_offset: int) -> TypeTree:
        """Memory tree of what *value* points to, from *base_offset* on."""
        return self.tree_of(value).offset_subtree(base_offset)

    def function_summary(self, name: str) -> FunctionTypeInfo:
        fn = self.program.function(name)
        ret = self.tree_of(fn.return_value) if fn.return_value is not None else None
        return FunctionTypeInfo(
            name=fn.name,
            arguments=tuple(self.tree_of(a) for a in fn.arguments),
            return_tree=ret,
        )

    def dump(self) -> str:
        """One ``value: tree`` line per value, in program order."""
        return "\n".join(f"{value}: {tree}" for value, tree in self.trees.items())


# ---------------------------------------------------------------------------
# Propagator
# ---------------------------------------------------------------------------

class FixpointPropagator:
    """Worklist solver over the TypeTree lattice.

    Parameters
    ----------
    program : Program
        Functions, instructions and seeds.
    options : AnalysisOptions, optional
        Depth/offset bounds, merge policy and the iteration safety valve.
    """

    def __init__(
        self,
        program: Program,
        options: Optional[AnalysisOptions] = None,
    ) -> None:
        self.program = program
        self.options = options or DEFAULT_OPTIONS
        self.lattice = TypeTreeLattice(self.options.pointer_int_same)

        program.validate()
        self.callgraph: CallGraph = build_callgraph(program)

        self._rules: Dict[str, List[TransferRule]] = OrderedDict()
        self._dependents: Dict[str, Dict[str, None]] = {}
        for value in program.values():
            self._rules[value] = []
        for fn in program.functions.values():
            for instruction in fn.instructions:
                self._compile(fn, instruction)

    # ----- rule construction ----------------------------------------------

    def add_rule(self, rule: TransferRule) -> None:
        """Register *rule*; its target and sources become tracked values."""
        for value in (rule.target,) + rule.sources:
            self._rules.setdefault(value, [])
        self._rules[rule.target].append(rule)
        for source in rule.sources:
            self._dependents.setdefault(source, {})[rule.target] = None

    def _both_ways(self, a: str, b: str, origin: Instruction) -> None:
        self.add_rule(TransferRule(a, (b,), _identity, origin))
        self.add_rule(TransferRule(b, (a,), _identity, origin))

    def _compile(self, fn: Function, ins: Instruction) -> None:
        op = ins.op
        if op is OpKind.COPY:
            for operand in ins.operands:
                self._both_ways(ins.result, operand, ins)

        elif op is OpKind.LOAD:
            (pointer,) = ins.operands
            self.add_rule(TransferRule(ins.result, (pointer,), _loaded(ins.size), ins))
            self.add_rule(TransferRule(pointer, (ins.result,), _stored, ins))

        elif op is OpKind.STORE:
            value, pointer = ins.operands
            self.add_rule(TransferRule(pointer, (value,), _stored, ins))
            self.add_rule(TransferRule(value, (pointer,), _loaded(ins.size), ins))

        elif op is OpKind.OFFSET:
            (pointer,) = ins.operands
            self.add_rule(
                TransferRule(ins.result, (pointer,), _offset_forward(ins.offset), ins)
            )
            self.add_rule(
                TransferRule(pointer, (ins.result,), _offset_backward(ins.offset), ins)
            )

        elif op is OpKind.ARITH:
            for value in (ins.result,) + ins.operands:
                self.add_rule(TransferRule(value, (), _constant(ins.type), ins))

        elif op is OpKind.CALL:
            callee = self.program.function(ins.callee)
            for actual, formal in zip(ins.operands, callee.arguments):
                self._both_ways(formal, actual, ins)
            if ins.result is not None:
                self.add_rule(
                    TransferRule(ins.result, (callee.return_value,), _identity, ins)
                )

        elif op is OpKind.RETURN:
            if fn.return_value is None:
                raise ProgramError(f"function {fn.name!r} does not return a value")
            self.add_rule(TransferRule(fn.return_value, ins.operands, _identity, ins))

        else:
            raise ProgramError(f"unsupported instruction kind {op!r}")

    # ----- solving --------------------------------------------------------

    def _initial_order(self) -> List[str]:
        """Values of callees before callers, then anything left over."""
        seen: Dict[str, None] = OrderedDict()
        for node in self.callgraph.bottom_up_order():
            for value in node.function.values():
                seen[value] = None
        for value in self._rules:
            seen[value] = None
        return list(seen)

    def _bound(self, tree: TypeTree) -> TypeTree:
        return tree.truncate(self.options.max_depth).at_most(self.options.max_type_offset)

    def _update(self, value: str, trees: Dict[str, TypeTree]) -> bool:
        """Recompute ``trees[value]``; returns whether it grew."""
        current = trees[value]
        contributions = [
            rule.apply(*(trees[s] for s in rule.sources)) for rule in self._rules[value]
        ]
        seed = self.program.seeds.get(value) or self.lattice.bottom()
        new = self._bound(self.lattice.join_all([current, seed, *contributions]))
        if self.lattice.leq(new, current):
            return False
        if logger.isEnabledFor(logging.DEBUG):
            for path, ct in new.items():
                old = current.get(path)
                if ct.is_anything and old.is_known and not old.is_anything:
                    logger.debug("%s: %s degraded from %s to Anything", value, path, old)
            logger.debug("%s: %s -> %s", value, current, new)
        trees[value] = new
        return True

    def run(self) -> PropagationResult:
        """Propagate to a fixpoint (or until ``max_iterations``)."""
        t0 = time.monotonic()
        order = self._initial_order()

        trees: Dict[str, TypeTree] = OrderedDict()
        states: Dict[str, ValueState] = OrderedDict()
        for value in order:
            trees[value] = self._bound(self.program.seeds.get(value, TypeTree()).copy())
            states[value] = ValueState.UNVISITED

        worklist: Deque[str] = deque()
        for value in order:
            worklist.append(value)
            states[value] = ValueState.QUEUED

        iterations = 0
        while worklist and iterations < self.options.max_iterations:
            value = worklist.popleft()
            iterations += 1
            states[value] = ValueState.STABLE
            if not self._update(value, trees):
                continue
            # A rule may read its own target, so value can be re-queued here.
            for dependent in self._dependents.get(value, ()):
                if states[dependent] is not ValueState.QUEUED:
                    states[dependent] = ValueState.QUEUED
                    worklist.append(dependent)

        converged = len(worklist) == 0
        if not converged:
            logger.warning(
                "Type propagation did not converge after %d iterations "
                "(%d value(s) still queued)",
                iterations,
                len(worklist),
            )

        for tree in trees.values():
            tree.freeze()

        elapsed = time.monotonic() - t0
        logger.info(
            "Propagated %d value(s) across %d function(s) in %d iteration(s), %.3fs",
            len(trees),
            len(self.program.functions),
            iterations,
            elapsed,
        )
        for component in self.callgraph.recursive_components():
            logger.info(
                "Recursive component {%s}: argument and return trees are "
                "bounded by max_depth=%d",
                ", ".join(sorted(node.name for node in component)),
                self.options.max_depth,
            )
        return PropagationResult(
            program=self.program,
            trees=dict(trees),
            states=dict(states),
            iterations=iterations,
            converged=converged,
            elapsed_seconds=elapsed,
        )


def analyze(program: Program, options: Optional[AnalysisOptions] = None) -> PropagationResult:
    """Run :class:`FixpointPropagator` on *program* and return its result."""
    return FixpointPropagator(program, options).run()


__all__ = [
    "ValueState",
    "TransferRule",
    "FunctionTypeInfo",
    "PropagationResult",
    "FixpointPropagator",
    "analyze",
]
