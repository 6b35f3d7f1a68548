"""
typetree_analysis.codec
========================

Canonical textual form of a TypeTree, used for debug dumps and as the literal
format of test fixtures::

    {[-1]:Pointer, [-1,0]:Float@float, [-1,4]:Float@float}

Entries are sorted in path order; ``@sub`` appears only on ``Float`` and names
its precision.  The empty tree is ``{}``.

Decoding uses a PEG grammar (parsimonious) and a :class:`NodeVisitor`.  Every
failure surfaces as :class:`~typetree_analysis.errors.TypeTreeParseError`:
malformed brackets, non-integer path elements, unknown tags or precisions,
``Bottom`` entries, duplicate paths, and entries beneath a scalar or opaque
leaf.  For every tree ``t``: ``decode(encode(t)) == t``.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Tuple

from parsimonious.exceptions import ParseError
from parsimonious.grammar import Grammar
from parsimonious.nodes import Node, NodeVisitor

from .concrete_type import ConcreteType
from .errors import MalformedPathError, TypeTreeParseError
from .path import Path
from .type_tree import TypeTree

logger = logging.getLogger(__name__)


TYPETREE_GRAMMAR = Grammar(r'''
    tree        = ws "{" ws entries? ws "}" ws
    entries     = entry (ws "," ws entry)*
    entry       = path ws ":" ws tag
    path        = "[" ws hops? ws "]"
    hops        = int (ws "," ws int)*
    int         = ~r"[+-]?[0-9]+"
    tag         = name precision?
    precision   = "@" name
    name        = ~r"[A-Za-z_][A-Za-z0-9_]*"
    ws          = ~r"\s*"
''')


def _optional(visited: Any) -> List[Any]:
    """Children of an optional/repeated node (a bare Node when it matched nothing)."""
    return visited if isinstance(visited, list) else []


class TypeTreeVisitor(NodeVisitor):
    """Turns the parse tree into a validated :class:`TypeTree`."""

    unwrapped_exceptions = (TypeTreeParseError,)

    def generic_visit(self, node: Node, visited_children: List[Any]) -> Any:
        return visited_children or node

    def visit_tree(self, node: Node, visited_children: List[Any]) -> TypeTree:
        _, _, _, maybe_entries, _, _, _ = visited_children
        present = _optional(maybe_entries)
        entries: List[Tuple[Path, ConcreteType, int]] = present[0] if present else []

        seen: Dict[Path, ConcreteType] = {}
        for path, ct, pos in entries:
            if path in seen:
                raise TypeTreeParseError(f"duplicate path {path}", pos)
            seen[path] = ct

        for path, ct, pos in entries:
            for anc in path.ancestors():
                parent = seen.get(anc)
                if parent is not None and (parent.is_scalar or parent.is_anything):
                    raise TypeTreeParseError(
                        f"{path} lies beneath the {parent} leaf at {anc}", pos
                    )
        return TypeTree(seen)

    def visit_entries(self, node: Node, visited_children: List[Any]) -> List[Any]:
        first, rest = visited_children
        return [first] + [seq[-1] for seq in _optional(rest)]

    def visit_entry(self, node: Node, visited_children: List[Any]) -> Tuple[Path, ConcreteType, int]:
        path, _, _, _, ct = visited_children
        return path, ct, node.start

    def visit_path(self, node: Node, visited_children: List[Any]) -> Path:
        _, _, maybe_hops, _, _ = visited_children
        present = _optional(maybe_hops)
        hops = present[0] if present else []
        try:
            return Path(tuple(hops))
        except MalformedPathError as exc:
            raise TypeTreeParseError(str(exc), node.start) from exc

    def visit_hops(self, node: Node, visited_children: List[Any]) -> List[int]:
        first, rest = visited_children
        return [first] + [seq[-1] for seq in _optional(rest)]

    def visit_int(self, node: Node, visited_children: List[Any]) -> int:
        return int(node.text)

    def visit_tag(self, node: Node, visited_children: List[Any]) -> ConcreteType:
        try:
            ct = ConcreteType.parse(node.text)
        except ValueError as exc:
            raise TypeTreeParseError(str(exc), node.start) from exc
        if ct.is_bottom:
            raise TypeTreeParseError("Bottom is never stored in a tree", node.start)
        return ct


def encode(tree: TypeTree) -> str:
    """Render *tree* in canonical textual form."""
    return "{" + ", ".join(f"{path}:{ct}" for path, ct in tree.items()) + "}"


def decode(text: str) -> TypeTree:
    """Parse the textual form produced by :func:`encode`."""
    try:
        parse_tree = TYPETREE_GRAMMAR.parse(text)
    except ParseError as exc:
        logger.debug("type tree text rejected: %s", exc)
        raise TypeTreeParseError(f"malformed type tree: {exc}", exc.pos) from exc
    return TypeTreeVisitor().visit(parse_tree)


__all__ = ["TYPETREE_GRAMMAR", "TypeTreeVisitor", "encode", "decode"]
