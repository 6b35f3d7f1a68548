# tests/test_descriptors.py
"""
Tests for structural descriptors and the descriptor → TypeTree builder,
including the dereference-depth cutoff for self-referential layouts.
"""

import logging

import pytest

from typetree_analysis.codec import decode
from typetree_analysis.concrete_type import ANYTHING, DOUBLE, FLOAT, INTEGER, POINTER
from typetree_analysis.config import AnalysisOptions
from typetree_analysis.descriptors import (
    Array,
    DescriptorRef,
    DescriptorRegistry,
    PointerTo,
    Scalar,
    Struct,
    TypeTreeBuilder,
    build_type_tree,
    byte_size,
    struct,
)
from typetree_analysis.errors import DescriptorError, RecursionLimitExceeded
from typetree_analysis.path import Path
from typetree_analysis.type_tree import TypeTree


class TestLayouts:

    def test_struct_of_two_floats_behind_pointer(self):
        desc = PointerTo(struct((0, Scalar(FLOAT)), (4, Scalar(FLOAT))))
        assert build_type_tree(desc) == decode(
            "{[-1]:Pointer, [-1,0]:Float@float, [-1,4]:Float@float}"
        )

    def test_wider_first_field_shifts_second(self):
        desc = PointerTo(struct((0, Scalar(DOUBLE)), (8, Scalar(FLOAT))))
        assert str(build_type_tree(desc)) == (
            "{[-1]:Pointer, [-1,0]:Float@double, [-1,8]:Float@float}"
        )

    def test_scalar_behind_pointer(self):
        assert str(build_type_tree(PointerTo(Scalar(DOUBLE)))) == (
            "{[-1]:Pointer, [-1,0]:Float@double}"
        )

    def test_plain_scalar(self):
        assert build_type_tree(Scalar(INTEGER)) == TypeTree.scalar(INTEGER)

    def test_struct_by_value_is_laid_out_from_zero(self):
        desc = struct((0, Scalar(FLOAT)), (4, Scalar(FLOAT)))
        assert build_type_tree(desc) == TypeTree({(0,): FLOAT, (4,): FLOAT})

    def test_nested_struct_offsets_accumulate(self):
        inner = struct((0, Scalar(FLOAT)), (4, Scalar(FLOAT)))
        desc = PointerTo(struct((0, Scalar(INTEGER)), (8, inner)))
        assert build_type_tree(desc) == TypeTree(
            {(-1,): POINTER, (-1, 0): INTEGER, (-1, 8): FLOAT, (-1, 12): FLOAT}
        )

    def test_pointer_field(self):
        desc = PointerTo(struct((0, Scalar(INTEGER)), (8, PointerTo(Scalar(DOUBLE)))))
        assert build_type_tree(desc) == TypeTree(
            {(-1,): POINTER, (-1, 0): INTEGER, (-1, 8): POINTER, (-1, 8, 0): DOUBLE}
        )

    def test_array_uses_one_representative_element(self):
        desc = PointerTo(Array(Scalar(FLOAT), stride=4, count=16))
        assert build_type_tree(desc) == TypeTree({(-1,): POINTER, (-1, 0): FLOAT})

    def test_array_of_structs_inside_struct(self):
        elem = struct((0, Scalar(DOUBLE)), (8, Scalar(INTEGER)))
        desc = PointerTo(struct((0, Scalar(INTEGER)), (16, Array(elem, stride=16, count=4))))
        assert build_type_tree(desc) == TypeTree(
            {(-1,): POINTER, (-1, 0): INTEGER, (-1, 16): DOUBLE, (-1, 24): INTEGER}
        )

    def test_empty_array(self):
        assert build_type_tree(PointerTo(Array(Scalar(FLOAT), 4, 0))) == TypeTree.scalar(POINTER)

    def test_overlapping_fields_merge(self):
        desc = PointerTo(Struct(((0, Scalar(FLOAT)), (0, Scalar(INTEGER)))))
        assert build_type_tree(desc).get((-1, 0)) == ANYTHING

    def test_explicit_root(self):
        tree = TypeTreeBuilder().build(Scalar(DOUBLE), root=Path.of(0))
        assert tree == TypeTree({(0,): DOUBLE})


class TestValidation:

    def test_negative_field_offset(self):
        with pytest.raises(DescriptorError):
            struct((-4, Scalar(FLOAT)))

    def test_negative_array_shape(self):
        with pytest.raises(DescriptorError):
            Array(Scalar(FLOAT), stride=-4, count=2)

    def test_non_positive_scalar_size(self):
        with pytest.raises(DescriptorError):
            Scalar(INTEGER, size=0)

    def test_unresolved_reference(self):
        with pytest.raises(DescriptorError, match="unresolved"):
            build_type_tree(PointerTo(DescriptorRef("missing")))

    def test_cycle_without_pointer(self):
        registry = DescriptorRegistry()
        registry.define("bad", struct((0, Scalar(INTEGER)), (8, DescriptorRef("bad"))))
        with pytest.raises(DescriptorError, match="contains itself"):
            build_type_tree(DescriptorRef("bad"), registry=registry)


class TestRecursiveLayouts:

    def test_linked_list_is_truncated_at_max_depth(self, list_registry):
        opts = AnalysisOptions(max_depth=3)
        builder = TypeTreeBuilder(opts, list_registry)
        tree = builder.build(PointerTo(DescriptorRef("node")))
        assert tree == TypeTree({
            (-1,): POINTER,
            (-1, 0): POINTER,
            (-1, 8): DOUBLE,
            (-1, 0, 0): POINTER,
            (-1, 0, 8): DOUBLE,
            (-1, 0, 0, 0): POINTER,
            (-1, 0, 0, 0, -1): ANYTHING,
            (-1, 0, 0, 8): DOUBLE,
        })
        assert builder.last_report.truncated
        assert len(builder.last_report.truncations) == 1

    def test_cutoff_keeps_pointer_tag(self, list_registry):
        tree = build_type_tree(
            PointerTo(DescriptorRef("node")), AnalysisOptions(max_depth=1), list_registry
        )
        assert str(tree) == (
            "{[-1]:Pointer, [-1,0]:Pointer, [-1,0,-1]:Anything, [-1,8]:Float@double}"
        )

    @pytest.mark.parametrize("depth", [1, 2, 6])
    def test_depth_bound_holds(self, list_registry, depth):
        tree = build_type_tree(
            PointerTo(DescriptorRef("node")),
            AnalysisOptions(max_depth=depth),
            list_registry,
        )
        assert tree.get((-1,)) == POINTER
        beyond = [(p, ct) for p, ct in tree.items() if p.depth > depth]
        assert beyond == [(Path.of(-1, *([0] * depth), -1), ANYTHING)]
        assert tree.truncate(depth) == tree

    def test_fatal_limit_raises(self, list_registry):
        opts = AnalysisOptions(max_depth=2, recursion_limit_fatal=True)
        with pytest.raises(RecursionLimitExceeded) as info:
            build_type_tree(PointerTo(DescriptorRef("node")), opts, list_registry)
        assert info.value.max_depth == 2
        assert info.value.depth == 3

    def test_truncation_is_logged(self, list_registry, caplog):
        with caplog.at_level(logging.WARNING, logger="typetree_analysis.descriptors"):
            build_type_tree(
                PointerTo(DescriptorRef("node")), AnalysisOptions(max_depth=2), list_registry
            )
        assert any("max_depth=2" in r.getMessage() for r in caplog.records)

    def test_no_truncation_for_finite_layout(self):
        builder = TypeTreeBuilder()
        builder.build(PointerTo(Scalar(DOUBLE)))
        assert not builder.last_report.truncated


class TestByteSize:

    def test_sizes(self, list_registry):
        assert byte_size(struct((0, Scalar(DOUBLE)), (8, Scalar(FLOAT)))) == 12
        assert byte_size(PointerTo(Scalar(DOUBLE))) == 8
        assert byte_size(Array(Scalar(FLOAT), 4, 16)) == 64
        assert byte_size(Scalar(INTEGER)) is None
        assert byte_size(Scalar(INTEGER, 4)) == 4
        assert byte_size(DescriptorRef("node"), list_registry) == 16
        assert byte_size(DescriptorRef("node")) is None

    def test_registry(self, list_registry):
        assert "node" in list_registry
        assert len(list_registry) == 1
        ref = list_registry.define("pair", struct((0, Scalar(FLOAT)), (4, Scalar(FLOAT))))
        assert ref == DescriptorRef("pair")
        assert "pair" in list_registry
