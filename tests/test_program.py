# tests/test_program.py
"""
Tests for the program model handed to the propagator.
"""

import pytest

from typetree_analysis.concrete_type import DOUBLE, FLOAT
from typetree_analysis.descriptors import PointerTo, Scalar
from typetree_analysis.errors import ProgramError
from typetree_analysis.program import Instruction, OpKind, Program
from typetree_analysis.type_tree import TypeTree


class TestInstruction:

    def test_constructors(self):
        assert Instruction.load("r", "p", 8).op is OpKind.LOAD
        assert Instruction.store("v", "p", 4).operands == ("v", "p")
        assert Instruction.gep("q", "p", 16).offset == 16
        assert Instruction.arith("z", ["x", "y"], DOUBLE).type == DOUBLE
        assert Instruction.call(None, "f", ["a"]).callee == "f"
        assert Instruction.ret("x").operands == ("x",)

    @pytest.mark.parametrize("build", [
        lambda: Instruction.load("r", "p", 0),
        lambda: Instruction.store("v", "p", -8),
        lambda: Instruction.gep("q", "p", -4),
        lambda: Instruction(OpKind.ARITH, "z", ("x",)),
        lambda: Instruction(OpKind.COPY, "z"),
        lambda: Instruction(OpKind.CALL, "r"),
        lambda: Instruction(OpKind.RETURN),
    ])
    def test_ill_formed(self, build):
        with pytest.raises(ProgramError):
            build()

    def test_values_result_first(self):
        assert Instruction.copy("r", "a", "b").values() == ("r", "a", "b")
        assert Instruction.store("v", "p", 8).values() == ("v", "p")

    def test_str(self):
        assert str(Instruction.load("r", "p", 8)) == "r = load p [8B]"
        assert str(Instruction.gep("q", "p", 4)) == "q = offset p +4"
        assert str(Instruction.ret("x")) == "return x"


class TestFunction:

    def test_return_value_id(self):
        prog = Program()
        assert prog.add_function("f", returns=True).return_value == "f.return"
        assert prog.add_function("g").return_value is None

    def test_return_requires_returning_function(self):
        fn = Program().add_function("g", ["g.x"])
        with pytest.raises(ProgramError):
            fn.add(Instruction.ret("g.x"))

    def test_external_has_no_body(self):
        fn = Program().add_function("ext", external=True)
        with pytest.raises(ProgramError):
            fn.add(Instruction.copy("a", "b"))

    def test_values_in_first_mention_order(self):
        fn = Program().add_function("f", ["f.p"], returns=True)
        fn.extend([Instruction.load("f.x", "f.p", 8), Instruction.ret("f.x")])
        assert fn.values() == ["f.p", "f.return", "f.x"]
        assert fn.call_sites() == []


class TestProgram:

    def test_duplicate_function(self):
        prog = Program()
        prog.add_function("f")
        with pytest.raises(ProgramError):
            prog.add_function("f")

    def test_unknown_function(self):
        with pytest.raises(ProgramError):
            Program().function("f")

    def test_seeds_merge(self):
        prog = Program()
        prog.seed("v", TypeTree({(-1,): DOUBLE}))
        prog.seed("v", TypeTree({(-1,): FLOAT}))
        assert str(prog.seeds["v"]) == "{[-1]:Anything}"

    def test_seed_is_copied(self):
        prog = Program()
        tree = TypeTree.scalar(DOUBLE)
        prog.seed("v", tree)
        tree.insert((-1,), FLOAT)
        assert prog.seeds["v"] == TypeTree.scalar(DOUBLE)

    def test_seed_descriptor(self):
        prog = Program()
        tree = prog.seed_descriptor("p", PointerTo(Scalar(DOUBLE)))
        assert str(tree) == "{[-1]:Pointer, [-1,0]:Float@double}"
        assert prog.seeds["p"] == tree

    def test_values_include_seed_only_values(self):
        prog = Program()
        prog.add_function("f", ["f.a"])
        prog.seed("global", TypeTree.scalar(DOUBLE))
        assert prog.values() == ["f.a", "global"]
