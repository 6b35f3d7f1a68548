# tests/test_package.py
"""
Tests for the package-level namespace.
"""

import typetree_analysis
from typetree_analysis import (
    FLOAT,
    PointerTo,
    Scalar,
    Struct,
    TypeTreeError,
    build_type_tree,
)


class TestNamespace:

    def test_version(self):
        assert typetree_analysis.__version__ == "0.1.0"

    def test_reexports(self):
        for name in ("TypeTree", "Path", "analyze", "decode", "encode", "Program"):
            assert name in typetree_analysis.__all__
            assert hasattr(typetree_analysis, name)

    def test_submodules_listed(self):
        assert "propagator" in typetree_analysis.list_submodules()
        assert typetree_analysis.propagator.analyze is typetree_analysis.analyze

    def test_errors_share_base(self):
        assert issubclass(typetree_analysis.ProgramError, TypeTreeError)
        assert issubclass(typetree_analysis.TypeTreeParseError, TypeTreeError)

    def test_quick_start(self):
        desc = PointerTo(Struct(((0, Scalar(FLOAT)), (4, Scalar(FLOAT)))))
        assert str(build_type_tree(desc)) == (
            "{[-1]:Pointer, [-1,0]:Float@float, [-1,4]:Float@float}"
        )
