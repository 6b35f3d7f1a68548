"""
typetree_analysis.program
==========================

The shape in which the IR-lowering collaborator hands a program to the
propagator.

Values are plain string identifiers, unique across the whole program (the
lowering usually qualifies them, e.g. ``"main.%3"``).  A :class:`Function`
owns argument values, an optional return summary value and a list of
:class:`Instruction`\\ s; each instruction only names values, it never holds
a TypeTree.  Initial knowledge enters through *seeds*: literal trees or trees
built from structural descriptors.

Instruction kinds
-----------------
``COPY``    cast / phi / select / move: ``result`` ≡ every operand
``LOAD``    ``result = *ptr`` reading ``size`` bytes
``STORE``   ``*ptr = value`` writing ``size`` bytes; operands ``(value, ptr)``
``OFFSET``  ``result = ptr + offset`` (constant GEP)
``ARITH``   ``result = op(operands…)`` where all of them are ``type``
``CALL``    ``result = callee(args…)``; ``result`` may be ``None``
``RETURN``  ``return value``
"""

from __future__ import annotations

import enum
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .concrete_type import ConcreteType
from .config import AnalysisOptions
from .descriptors import Descriptor, DescriptorRegistry, TypeTreeBuilder
from .errors import ProgramError
from .type_tree import TypeTree


class OpKind(enum.Enum):
    """Instruction kinds understood by the propagator."""

    COPY   = "copy"
    LOAD   = "load"
    STORE  = "store"
    OFFSET = "offset"
    ARITH  = "arith"
    CALL   = "call"
    RETURN = "return"


@dataclass(frozen=True)
class Instruction:
    """One IR instruction, reduced to what type propagation needs."""

    op: OpKind
    result: Optional[str] = None
    operands: Tuple[str, ...] = ()
    size: Optional[int] = None
    offset: int = 0
    type: Optional[ConcreteType] = None
    callee: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "operands", tuple(self.operands))
        op = self.op
        if op in (OpKind.LOAD, OpKind.STORE):
            if self.size is None or self.size <= 0:
                raise ProgramError(f"{op.value} needs a positive size, got {self.size}")
        if op is OpKind.LOAD and (self.result is None or len(self.operands) != 1):
            raise ProgramError("load takes a result and exactly one pointer operand")
        if op is OpKind.STORE and len(self.operands) != 2:
            raise ProgramError("store takes exactly (value, pointer) operands")
        if op is OpKind.OFFSET:
            if self.result is None or len(self.operands) != 1:
                raise ProgramError("offset takes a result and exactly one pointer operand")
            if self.offset < 0:
                raise ProgramError(f"offset must be non-negative, got {self.offset}")
        if op is OpKind.ARITH and (self.result is None or self.type is None):
            raise ProgramError("arith needs a result and a concrete type")
        if op is OpKind.COPY and (self.result is None or not self.operands):
            raise ProgramError("copy needs a result and at least one operand")
        if op is OpKind.CALL and not self.callee:
            raise ProgramError("call needs a callee name")
        if op is OpKind.RETURN and len(self.operands) != 1:
            raise ProgramError("return takes exactly one operand")

    # ---- constructors ----------------------------------------------------

    @classmethod
    def copy(cls, result: str, *operands: str) -> Instruction:
        return cls(OpKind.COPY, result, operands)

    @classmethod
    def load(cls, result: str, pointer: str, size: int) -> Instruction:
        return cls(OpKind.LOAD, result, (pointer,), size=size)

    @classmethod
    def store(cls, value: str, pointer: str, size: int) -> Instruction:
        return cls(OpKind.STORE, None, (value, pointer), size=size)

    @classmethod
    def gep(cls, result: str, pointer: str, offset: int) -> Instruction:
        return cls(OpKind.OFFSET, result, (pointer,), offset=offset)

    @classmethod
    def arith(cls, result: str, operands: Sequence[str], ct: ConcreteType) -> Instruction:
        return cls(OpKind.ARITH, result, tuple(operands), type=ct)

    @classmethod
    def call(cls, result: Optional[str], callee: str, args: Sequence[str] = ()) -> Instruction:
        return cls(OpKind.CALL, result, tuple(args), callee=callee)

    @classmethod
    def ret(cls, value: str) -> Instruction:
        return cls(OpKind.RETURN, None, (value,))

    def values(self) -> Tuple[str, ...]:
        """Every value the instruction names, result first."""
        if self.result is None:
            return self.operands
        return (self.result,) + self.operands

    def __str__(self) -> str:
        lhs = f"{self.result} = " if self.result else ""
        extra = ""
        if self.op in (OpKind.LOAD, OpKind.STORE):
            extra = f" [{self.size}B]"
        elif self.op is OpKind.OFFSET:
            extra = f" +{self.offset}"
        elif self.op is OpKind.ARITH:
            extra = f" : {self.type}"
        elif self.op is OpKind.CALL:
            extra = f" @{self.callee}"
        return f"{lhs}{self.op.value} {', '.join(self.operands)}{extra}"


@dataclass
class Function:
    """A function's argument values, return summary and body.

    An ``external`` function has no body; its argument and return trees are
    informed only by its call sites.
    """

    name: str
    arguments: List[str] = field(default_factory=list)
    returns: bool = False
    instructions: List[Instruction] = field(default_factory=list)
    external: bool = False

    @property
    def return_value(self) -> Optional[str]:
        """The value id holding the return summary (``None`` for void)."""
        return f"{self.name}.return" if self.returns else None

    def add(self, instruction: Instruction) -> Instruction:
        if self.external:
            raise ProgramError(f"external function {self.name!r} has no body")
        if instruction.op is OpKind.RETURN and not self.returns:
            raise ProgramError(f"function {self.name!r} does not return a value")
        self.instructions.append(instruction)
        return instruction

    def extend(self, instructions: Iterable[Instruction]) -> None:
        for instruction in instructions:
            self.add(instruction)

    def call_sites(self) -> List[Instruction]:
        return [i for i in self.instructions if i.op is OpKind.CALL]

    def values(self) -> List[str]:
        """Values owned by this function, in first-mention order."""
        seen: Dict[str, None] = OrderedDict()
        for arg in self.arguments:
            seen[arg] = None
        if self.return_value is not None:
            seen[self.return_value] = None
        for instruction in self.instructions:
            for value in instruction.values():
                seen[value] = None
        return list(seen)


class Program:
    """Functions plus seed trees: the propagator's whole input."""

    def __init__(self) -> None:
        self.functions: "OrderedDict[str, Function]" = OrderedDict()
        self.seeds: Dict[str, TypeTree] = {}

    def add_function(
        self,
        name: str,
        arguments: Sequence[str] = (),
        returns: bool = False,
        external: bool = False,
    ) -> Function:
        if name in self.functions:
            raise ProgramError(f"function {name!r} defined twice")
        fn = Function(name, list(arguments), returns, external=external)
        self.functions[name] = fn
        return fn

    def function(self, name: str) -> Function:
        try:
            return self.functions[name]
        except KeyError:
            raise ProgramError(f"unknown function {name!r}") from None

    def seed(self, value: str, tree: TypeTree) -> None:
        """Record initial knowledge about *value* (merged with any earlier seed)."""
        if value in self.seeds:
            self.seeds[value] = self.seeds[value].merge(tree)
        else:
            self.seeds[value] = tree.copy()

    def seed_descriptor(
        self,
        value: str,
        descriptor: Descriptor,
        options: Optional[AnalysisOptions] = None,
        registry: Optional[DescriptorRegistry] = None,
    ) -> TypeTree:
        """Seed *value* with the tree built from *descriptor*; returns that tree."""
        tree = TypeTreeBuilder(options, registry).build(descriptor)
        self.seed(value, tree)
        return tree

    def values(self) -> List[str]:
        """Every value id, function by function, then seed-only values."""
        seen: Dict[str, None] = OrderedDict()
        for fn in self.functions.values():
            for value in fn.values():
                seen[value] = None
        for value in self.seeds:
            seen[value] = None
        return list(seen)

    def validate(self) -> None:
        """Check every call names a known callee with matching arity."""
        for fn in self.functions.values():
            for call in fn.call_sites():
                callee = self.function(call.callee)
                if len(call.operands) != len(callee.arguments):
                    raise ProgramError(
                        f"{fn.name} calls {callee.name} with {len(call.operands)} "
                        f"argument(s), expected {len(callee.arguments)}"
                    )
                if call.result is not None and not callee.returns:
                    raise ProgramError(
                        f"{fn.name} uses the result of {callee.name}, which returns nothing"
                    )

    def __repr__(self) -> str:
        return f"Program(functions={len(self.functions)}, seeds={len(self.seeds)})"


__all__ = ["OpKind", "Instruction", "Function", "Program"]
