"""
Pytest configuration and fixtures for MapStudio testing.

This module provides:
- Flat record lists as the generator returns them
- Small hand-built trees
- The default layout geometry
"""

import pytest

from mapstudio.schemas.mindmap import MindMapNode
from mapstudio.services.layout import LayoutConfig
from mapstudio.services.tree_builder import build

# Default geometry (matches Settings defaults)
W, H, GH, GV = 180, 80, 60, 60


# ============================================================
# RECORD FIXTURES
# ============================================================

@pytest.fixture
def solar_records():
    """Well-formed flat list: one root, three levels, shuffled order."""
    return [
        {"id": "earth", "parentId": "rocky", "topic": "Earth", "content": "One moon"},
        {"id": "sun", "parentId": "", "topic": "Solar System", "content": "The Sun and what orbits it"},
        {"id": "rocky", "parentId": "sun", "topic": "Terrestrial planets", "content": "Rock and metal"},
        {"id": "giants", "parentId": "sun", "topic": "Gas giants", "content": "Hydrogen and helium"},
        {"id": "mars", "parentId": "rocky", "topic": "Mars", "content": "Red from iron oxide"},
        {"id": "jupiter", "parentId": "giants", "topic": "Jupiter", "content": "Over 70 moons"},
    ]


# Well past the interpreter's default recursion limit
DEEP_CHAIN = 2000


@pytest.fixture
def chain_records():
    """n0 → n1 → … → n1999, each node the only child of the one before."""
    return [
        {"id": f"n{i}", "parentId": f"n{i - 1}" if i else "", "topic": f"Step {i}", "content": ""}
        for i in range(DEEP_CHAIN)
    ]


# ============================================================
# TREE FIXTURES
# ============================================================

def leaf(node_id, topic=None, content=""):
    return MindMapNode(id=node_id, topic=topic or node_id.upper(), content=content)


@pytest.fixture
def root_child_tree():
    """Root(children=[Child])."""
    return MindMapNode(id="a", topic="Root", content="", children=[
        MindMapNode(id="b", topic="Child", content=""),
    ])


@pytest.fixture
def uneven_tree():
    """Root → [A, B → [B1, B2]]."""
    return MindMapNode(id="root", topic="Root", content="top", children=[
        leaf("a", "Alpha", "first leaf"),
        MindMapNode(id="b", topic="Beta", content="branch", children=[
            leaf("b1", "Beta one", "Needle in content"),
            leaf("b2", "Beta two"),
        ]),
    ])


@pytest.fixture
def cfg():
    return LayoutConfig(node_width=W, node_height=H, h_gap=GH, v_gap=GV)


@pytest.fixture
def chain_tree(chain_records):
    return build(chain_records)
