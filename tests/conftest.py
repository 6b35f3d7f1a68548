# tests/conftest.py
"""
Shared fixtures for the typetree_analysis test suite.
"""

import pytest

from typetree_analysis.concrete_type import DOUBLE
from typetree_analysis.config import AnalysisOptions
from typetree_analysis.descriptors import (
    DescriptorRef,
    DescriptorRegistry,
    PointerTo,
    Scalar,
    struct,
)


@pytest.fixture
def options():
    return AnalysisOptions()


@pytest.fixture
def list_registry():
    """``struct node { struct node *next; double value; }``"""
    registry = DescriptorRegistry()
    registry.define(
        "node",
        struct(
            (0, PointerTo(DescriptorRef("node"))),
            (8, Scalar(DOUBLE)),
            name="node",
        ),
    )
    return registry
