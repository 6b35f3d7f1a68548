# tests/test_path.py
"""
Tests for Path: construction, validation, derivation and ordering.
"""

import pytest

from typetree_analysis.errors import MalformedPathError
from typetree_analysis.path import (
    ANY_OFFSET,
    ROOT,
    Path,
    append_offset,
    compare,
    is_prefix_of,
    prepend_dereference,
)


class TestConstruction:

    def test_root(self):
        assert Path.root().hops == (ANY_OFFSET,)
        assert ROOT == Path.of(-1)

    def test_list_is_normalised_to_tuple(self):
        assert Path([-1, 0]) == Path.of(-1, 0)
        assert Path([-1, 0]).hops == (-1, 0)

    def test_empty_path_rejected(self):
        with pytest.raises(MalformedPathError):
            Path(())

    @pytest.mark.parametrize("hop", [-2, -100])
    def test_below_minus_one_rejected(self, hop):
        with pytest.raises(MalformedPathError):
            Path.of(-1, hop)

    @pytest.mark.parametrize("hop", [1.5, "0", None, True])
    def test_non_integer_rejected(self, hop):
        with pytest.raises(MalformedPathError):
            Path((-1, hop))

    def test_malformed_is_value_error(self):
        with pytest.raises(ValueError):
            Path(())

    def test_error_carries_hops(self):
        with pytest.raises(MalformedPathError) as info:
            Path.of(-1, -5)
        assert info.value.hops == (-1, -5)


class TestDerivation:

    def test_append_offset_enters_pointee(self):
        assert ROOT.append_offset(0) == Path.of(-1, 0)
        assert append_offset(Path.of(-1, 8), 0) == Path.of(-1, 8, 0)

    def test_append_offset_validates(self):
        with pytest.raises(MalformedPathError):
            ROOT.append_offset(-3)

    def test_prepend_dereference(self):
        assert Path.of(0).prepend_dereference() == Path.of(-1, 0)
        assert prepend_dereference(Path.of(4, 0)) == Path.of(-1, 4, 0)

    def test_shift_last_moves_within_object(self):
        assert Path.of(-1, 0).shift_last(8) == Path.of(-1, 8)
        assert Path.of(-1, 8).shift_last(4) == Path.of(-1, 12)

    def test_shift_last_replaces_wildcard(self):
        assert ROOT.shift_last(4) == Path.of(4)
        assert Path.of(-1, -1).shift_last(0) == Path.of(-1, 0)

    def test_shift_last_negative_rejected(self):
        with pytest.raises(MalformedPathError):
            Path.of(-1, 0).shift_last(-4)

    def test_access_chain(self):
        assert Path.from_access_chain([]) == ROOT
        assert Path.from_access_chain([-1]) == Path.of(-1, 0)
        assert Path.from_access_chain([-1, 8, 4, -1]) == Path.of(-1, 12, 0)

    def test_rebase_first(self):
        assert Path.of(8, 0).rebase_first(-8) == Path.of(0, 0)
        assert Path.of(-1, 4).rebase_first(-8) == Path.of(-1, 4)

    def test_strip_first(self):
        assert Path.of(-1, 4, 0).strip_first() == Path.of(4, 0)
        with pytest.raises(MalformedPathError):
            ROOT.strip_first()

    def test_parent(self):
        assert Path.of(-1, 4, 0).parent == Path.of(-1, 4)
        assert ROOT.parent == ROOT


class TestQueries:

    def test_depth(self):
        assert ROOT.depth == 0
        assert Path.of(-1, 0, 8).depth == 2

    def test_prefix_is_proper(self):
        assert ROOT.is_prefix_of(Path.of(-1, 0))
        assert is_prefix_of(Path.of(-1, 0), Path.of(-1, 0, 4))
        assert not ROOT.is_prefix_of(ROOT)
        assert not Path.of(-1, 0).is_prefix_of(Path.of(-1, 4, 0))

    def test_ancestors_shortest_first(self):
        assert list(Path.of(-1, 0, 8).ancestors()) == [Path.of(-1), Path.of(-1, 0)]
        assert list(ROOT.ancestors()) == []

    def test_wildcard_match(self):
        assert Path.of(-1, 8).matches(Path.of(-1, -1))
        assert not Path.of(-1, 8).matches(Path.of(-1, 0))
        assert not Path.of(-1, 8).matches(Path.of(-1))

    def test_max_offset(self):
        assert Path.of(-1, 600, 4).max_offset() == 600
        assert ROOT.max_offset() == -1

    def test_sequence_protocol(self):
        p = Path.of(-1, 4, 0)
        assert len(p) == 3
        assert list(p) == [-1, 4, 0]
        assert p[1] == 4
        assert p.first == -1 and p.last == 0

    def test_str(self):
        assert str(Path.of(-1, 0)) == "[-1,0]"
        assert str(ROOT) == "[-1]"


class TestOrdering:

    def test_prefix_sorts_first_and_wildcard_before_offsets(self):
        paths = [Path.of(-1, 4), Path.of(-1, 0, 0), Path.of(-1), Path.of(-1, -1), Path.of(-1, 0)]
        assert sorted(paths) == [
            Path.of(-1),
            Path.of(-1, -1),
            Path.of(-1, 0),
            Path.of(-1, 0, 0),
            Path.of(-1, 4),
        ]

    def test_compare(self):
        assert compare(Path.of(-1, 0), Path.of(-1, 4)) == -1
        assert compare(Path.of(-1, 4), Path.of(-1, 0)) == 1
        assert compare(ROOT, Path.of(-1)) == 0

    def test_hashable(self):
        assert len({Path.of(-1, 0), Path([-1, 0]), ROOT}) == 2
