"""
typetree_analysis.callgraph
============================

Builds the call graph of a :class:`~typetree_analysis.program.Program`.

The call graph is a directed graph where:
- **Nodes** are the program's functions, classified as ``FUNCTION`` (has a
  body) or ``EXTERNAL`` (declaration only).
- **Edges** represent call sites, annotated with the ``CALL`` instruction
  and the name of the calling function.

The propagator uses it for two things: seeding its worklist callee-first
(:meth:`CallGraph.bottom_up_order`) and reporting recursive components,
whose argument/return trees are where truncation is most likely to bite.

Public API
----------
    CallGraphNode       - a node in the call graph
    CallGraphEdge       - a directed edge (call site)
    CallGraph           - the whole-program call graph
    build_callgraph     - build from a Program
    NodeKind            - FUNCTION / EXTERNAL

Typical usage::

    cg = build_callgraph(program)
    for node in cg.bottom_up_order():
        print(node.name, [e.callee.name for e in node.out_edges])
    print(cg.recursive_components())
"""

from __future__ import annotations

import enum
from collections import OrderedDict
from typing import Dict, Iterator, List, Set, Tuple

from .errors import ProgramError
from .program import Function, Instruction, Program


# ---------------------------------------------------------------------------
# Node kinds
# ---------------------------------------------------------------------------

class NodeKind(enum.Enum):
    """Classification of a call-graph node."""

    FUNCTION  = "function"      # A function with a body
    EXTERNAL  = "external"      # Declaration only


# ---------------------------------------------------------------------------
# CallGraphNode
# ---------------------------------------------------------------------------

class CallGraphNode:
    """A node in the call graph.

    Attributes
    ----------
    name : str
        Function name; unique within a program.
    kind : NodeKind
        What this node represents.
    function : Function
        The underlying program function.
    out_edges : list[CallGraphEdge]
        Outgoing call edges (this function calls …).
    in_edges : list[CallGraphEdge]
        Incoming call edges (… calls this function).
    """

    __slots__ = ("name", "kind", "function", "out_edges", "in_edges")

    def __init__(self, function: Function) -> None:
        self.name: str = function.name
        self.kind: NodeKind = NodeKind.EXTERNAL if function.external else NodeKind.FUNCTION
        self.function: Function = function
        self.out_edges: List[CallGraphEdge] = []
        self.in_edges: List[CallGraphEdge] = []

    # ----- queries ----------------------------------------------------------

    @property
    def is_self_recursive(self) -> bool:
        """Does this function call itself (directly)?"""
        return any(e.callee is self for e in self.out_edges)

    def __repr__(self) -> str:
        return f"CallGraphNode({self.name!r}, kind={self.kind.value})"

    def __hash__(self) -> int:
        return hash(self.name)

    def __eq__(self, other) -> bool:
        if isinstance(other, CallGraphNode):
            return self.name == other.name
        return NotImplemented


# ---------------------------------------------------------------------------
# CallGraphEdge
# ---------------------------------------------------------------------------

class CallGraphEdge:
    """A directed edge in the call graph representing a call site.

    Attributes
    ----------
    caller : CallGraphNode
        The calling function.
    callee : CallGraphNode
        The called function.
    call : Instruction
        The ``CALL`` instruction at the call site.
    """

    __slots__ = ("caller", "callee", "call")

    def __init__(
        self,
        caller: CallGraphNode,
        callee: CallGraphNode,
        call: Instruction,
    ) -> None:
        self.caller = caller
        self.callee = callee
        self.call = call

    def __repr__(self) -> str:
        return f"CallGraphEdge({self.caller.name} -> {self.callee.name}, {self.call})"


# ---------------------------------------------------------------------------
# CallGraph
# ---------------------------------------------------------------------------

class CallGraph:
    """Whole-program call graph.

    Attributes
    ----------
    nodes : OrderedDict[str, CallGraphNode]
        All nodes, keyed by function name, in program order.
    edges : list[CallGraphEdge]
        All edges.
    """

    def __init__(self) -> None:
        self.nodes: OrderedDict[str, CallGraphNode] = OrderedDict()
        self.edges: List[CallGraphEdge] = []

    # ----- graph management -------------------------------------------------

    def add_node(self, function: Function) -> CallGraphNode:
        """Return the node for *function*, creating it on first sight."""
        node = self.nodes.get(function.name)
        if node is None:
            node = CallGraphNode(function)
            self.nodes[function.name] = node
        return node

    def add_edge(
        self,
        caller: CallGraphNode,
        callee: CallGraphNode,
        call: Instruction,
    ) -> CallGraphEdge:
        """Create a call edge and wire it up."""
        edge = CallGraphEdge(caller, callee, call)
        self.edges.append(edge)
        caller.out_edges.append(edge)
        callee.in_edges.append(edge)
        return edge

    def node(self, name: str) -> CallGraphNode:
        try:
            return self.nodes[name]
        except KeyError:
            raise ProgramError(f"no call-graph node for {name!r}") from None

    # ----- whole-graph queries ----------------------------------------------

    def strongly_connected_components(self) -> List[List[CallGraphNode]]:
        """Compute SCCs using Tarjan's algorithm.

        Returns a list of SCCs in reverse topological order (callees before
        callers).  Each SCC with more than one node represents mutual
        recursion.  The depth-first search keeps its own stack of
        ``(node, edge iterator)`` frames, so call chains of any length are
        handled without Python recursion.
        """
        counter = 0
        stack: List[CallGraphNode] = []
        lowlink: Dict[str, int] = {}
        index: Dict[str, int] = {}
        on_stack: Set[str] = set()
        result: List[List[CallGraphNode]] = []

        def enter(v: CallGraphNode) -> Tuple[CallGraphNode, Iterator[CallGraphEdge]]:
            nonlocal counter
            index[v.name] = counter
            lowlink[v.name] = counter
            counter += 1
            stack.append(v)
            on_stack.add(v.name)
            return v, iter(v.out_edges)

        for start in self.nodes.values():
            if start.name in index:
                continue
            frames = [enter(start)]
            while frames:
                v, edges = frames[-1]
                for e in edges:
                    w = e.callee
                    if w.name not in index:
                        frames.append(enter(w))
                        break
                    if w.name in on_stack:
                        lowlink[v.name] = min(lowlink[v.name], index[w.name])
                else:
                    # Every edge of v is done.
                    frames.pop()
                    if frames:
                        parent = frames[-1][0]
                        lowlink[parent.name] = min(lowlink[parent.name], lowlink[v.name])
                    if lowlink[v.name] == index[v.name]:
                        scc: List[CallGraphNode] = []
                        while True:
                            w = stack.pop()
                            on_stack.discard(w.name)
                            scc.append(w)
                            if w.name == v.name:
                                break
                        result.append(scc)

        return result

    def recursive_components(self) -> List[Set[CallGraphNode]]:
        """Sets of mutually recursive functions (singletons for self-calls)."""
        result: List[Set[CallGraphNode]] = []
        for scc in self.strongly_connected_components():
            if len(scc) > 1 or scc[0].is_self_recursive:
                result.append(set(scc))
        return result

    def bottom_up_order(self) -> List[CallGraphNode]:
        """Callees before callers; nodes within an SCC in arbitrary order."""
        return [node for scc in self.strongly_connected_components() for node in scc]

    def __repr__(self) -> str:
        return (
            f"CallGraph(nodes={len(self.nodes)}, edges={len(self.edges)})"
        )


def build_callgraph(program: Program) -> CallGraph:
    """Build the call graph for *program*.

    Every function becomes a node (in program order); every ``CALL``
    instruction becomes an edge.  Calls to undeclared functions raise
    :class:`~typetree_analysis.errors.ProgramError`.
    """
    cg = CallGraph()
    for fn in program.functions.values():
        cg.add_node(fn)
    for fn in program.functions.values():
        caller = cg.nodes[fn.name]
        for call in fn.call_sites():
            callee = cg.add_node(program.function(call.callee))
            cg.add_edge(caller, callee, call)
    return cg


__all__ = [
    "NodeKind",
    "CallGraphNode",
    "CallGraphEdge",
    "CallGraph",
    "build_callgraph",
]
