# tests/test_callgraph.py
"""
Tests for the program call graph: construction, SCCs and callee-first
ordering.
"""

import pytest

from typetree_analysis.callgraph import NodeKind, build_callgraph
from typetree_analysis.errors import ProgramError
from typetree_analysis.program import Instruction, Program


@pytest.fixture
def program():
    """main -> a, main -> ext, a <-> b (mutual recursion)."""
    prog = Program()
    main = prog.add_function("main")
    a = prog.add_function("a", ["a.x"])
    b = prog.add_function("b", ["b.x"])
    prog.add_function("ext", external=True)
    main.add(Instruction.call(None, "a", ["m.v"]))
    main.add(Instruction.call(None, "ext"))
    a.add(Instruction.call(None, "b", ["a.x"]))
    b.add(Instruction.call(None, "a", ["b.x"]))
    return prog


def _chain(length):
    """f0 -> f1 -> ... -> f<length-1>."""
    prog = Program()
    for i in range(length):
        prog.add_function(f"f{i}")
    for i in range(length - 1):
        prog.function(f"f{i}").add(Instruction.call(None, f"f{i + 1}"))
    return prog


def _names(nodes):
    return {n.name for n in nodes}


class TestConstruction:

    def test_nodes_and_edges(self, program):
        cg = build_callgraph(program)
        assert list(cg.nodes) == ["main", "a", "b", "ext"]
        assert len(cg.edges) == 4
        assert cg.node("ext").kind is NodeKind.EXTERNAL
        assert cg.node("main").kind is NodeKind.FUNCTION

    def test_edges_carry_call_instruction(self, program):
        cg = build_callgraph(program)
        edge = cg.node("main").out_edges[0]
        assert edge.callee.name == "a"
        assert edge.call.operands == ("m.v",)

    def test_in_edges(self, program):
        cg = build_callgraph(program)
        assert {e.caller.name for e in cg.node("a").in_edges} == {"main", "b"}

    def test_unknown_callee(self):
        prog = Program()
        prog.add_function("main").add(Instruction.call(None, "nowhere"))
        with pytest.raises(ProgramError):
            build_callgraph(prog)

    def test_unknown_node(self, program):
        with pytest.raises(ProgramError):
            build_callgraph(program).node("nowhere")


class TestRecursion:

    def test_sccs(self, program):
        sccs = build_callgraph(program).strongly_connected_components()
        assert sorted(sorted(n.name for n in scc) for scc in sccs) == [
            ["a", "b"], ["ext"], ["main"],
        ]

    def test_recursive_components(self, program):
        components = build_callgraph(program).recursive_components()
        assert [_names(c) for c in components] == [{"a", "b"}]

    def test_self_recursion(self):
        prog = Program()
        prog.add_function("r", ["r.n"]).add(Instruction.call(None, "r", ["r.n"]))
        cg = build_callgraph(prog)
        assert cg.node("r").is_self_recursive
        assert [_names(c) for c in cg.recursive_components()] == [{"r"}]

    def test_no_recursion(self):
        assert build_callgraph(_chain(4)).recursive_components() == []


class TestOrdering:

    def test_bottom_up_puts_callees_first(self, program):
        order = [n.name for n in build_callgraph(program).bottom_up_order()]
        assert order.index("main") == len(order) - 1
        assert order.index("ext") < order.index("main")
        assert {order[0], order[1]} == {"a", "b"}

    def test_deep_call_chain(self):
        length = 3000
        order = [n.name for n in build_callgraph(_chain(length)).bottom_up_order()]
        assert order == [f"f{i}" for i in reversed(range(length))]

    def test_long_cycle_is_one_component(self):
        prog = _chain(2000)
        prog.function("f1999").add(Instruction.call(None, "f0"))
        components = build_callgraph(prog).recursive_components()
        assert len(components) == 1
        assert len(components[0]) == 2000
