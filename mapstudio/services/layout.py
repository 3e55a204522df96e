"""
MapStudio — Layout Engine
==========================
Deterministic tidy layout for a mind map tree:
  - every leaf reserves one box plus one horizontal gap
  - a parent's footprint is the sum of its children's footprints
  - each parent is centered over the span of its children
  - depth controls y

Coordinates are the top-left corner of each box in scene units.  The root
sits at (0, 0); anything left of it is negative.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Tuple

from mapstudio.core.config import settings
from mapstudio.schemas.mindmap import Connector, MindMapNode, PositionedNode


@dataclass(frozen=True)
class LayoutConfig:
    # Fixed box size; not derived from the text inside.
    node_width: float = 180
    node_height: float = 80

    # Gap between sibling columns.
    h_gap: float = 60

    # Gap between parent/child rows.
    v_gap: float = 60

    @classmethod
    def from_settings(cls) -> LayoutConfig:
        return cls(
            node_width=settings.NODE_WIDTH,
            node_height=settings.NODE_HEIGHT,
            h_gap=settings.HORIZONTAL_SPACING,
            v_gap=settings.VERTICAL_SPACING,
        )


def subtree_width(node: MindMapNode, cfg: Optional[LayoutConfig] = None) -> float:
    """Horizontal footprint of ``node`` and all its descendants."""
    cfg = cfg or LayoutConfig.from_settings()
    return _measure(node, cfg, {})


def _measure(root: MindMapNode, cfg: LayoutConfig, widths: Dict[int, float]) -> float:
    # Keyed by object identity: a client-supplied tree may repeat ids.
    stack: List[Tuple[MindMapNode, bool]] = [(root, False)]
    while stack:
        node, expanded = stack.pop()
        if id(node) in widths:
            continue
        if node.children and not expanded:
            stack.append((node, True))
            stack.extend((child, False) for child in node.children)
        elif node.children:
            widths[id(node)] = sum(widths[id(child)] for child in node.children)
        else:
            widths[id(node)] = cfg.node_width + cfg.h_gap
    return widths[id(root)]


@dataclass
class _Frame:
    """One node being placed; its children are placed left to right."""
    node: MindMapNode
    x: float
    y: float
    cursor: float
    placed: List[PositionedNode] = field(default_factory=list)


def layout(root: MindMapNode, cfg: Optional[LayoutConfig] = None) -> PositionedNode:
    """
    Return a positioned copy of ``root``; the input tree is left untouched.

    Same tree in, same coordinates out.  Child order is kept exactly.
    """
    cfg = cfg or LayoutConfig.from_settings()
    widths: Dict[int, float] = {}
    _measure(root, cfg, widths)

    def open_frame(node: MindMapNode, x: float, y: float) -> _Frame:
        children_width = sum(widths[id(child)] for child in node.children)
        total_width = max(cfg.node_width, children_width)
        return _Frame(node=node, x=x, y=y, cursor=x - total_width / 2 + cfg.node_width / 2)

    child_dy = cfg.node_height + cfg.v_gap
    stack = [open_frame(root, 0.0, 0.0)]
    while True:
        frame = stack[-1]
        node = frame.node
        if len(frame.placed) < len(node.children):
            child = node.children[len(frame.placed)]
            child_width = widths[id(child)]
            child_x = frame.cursor + child_width / 2 - cfg.node_width / 2
            frame.cursor += child_width
            stack.append(open_frame(child, child_x, frame.y + child_dy))
            continue

        stack.pop()
        positioned = PositionedNode(
            id=node.id,
            topic=node.topic,
            content=node.content,
            x=frame.x,
            y=frame.y,
            children=frame.placed,
        )
        if not stack:
            return positioned
        stack[-1].placed.append(positioned)


# ── Rendering helpers ────────────────────────────────────────────────────────

def flatten(node: PositionedNode) -> List[PositionedNode]:
    """All nodes, pre-order (node before its children, left to right)."""
    nodes: List[PositionedNode] = []
    stack = [node]
    while stack:
        current = stack.pop()
        nodes.append(current)
        stack.extend(reversed(current.children))
    return nodes


def bounds(
    nodes: Iterable[PositionedNode],
    cfg: Optional[LayoutConfig] = None,
) -> Optional[Tuple[float, float, float, float]]:
    """(min_x, min_y, max_x, max_y) covering every box, or None for no nodes."""
    cfg = cfg or LayoutConfig.from_settings()
    nodes = list(nodes)
    if not nodes:
        return None
    return (
        min(n.x for n in nodes),
        min(n.y for n in nodes),
        max(n.x for n in nodes) + cfg.node_width,
        max(n.y for n in nodes) + cfg.node_height,
    )


def connectors(root: PositionedNode, cfg: Optional[LayoutConfig] = None) -> List[Connector]:
    """
    One SVG path per parent-child edge.

    The curve leaves the parent's box center and lands on the top-center of
    the child's box.
    """
    cfg = cfg or LayoutConfig.from_settings()
    edges: List[Connector] = []
    for node in flatten(root):
        start_x = node.x + cfg.node_width / 2
        start_y = node.y + cfg.node_height / 2
        for child in node.children:
            end_x = child.x + cfg.node_width / 2
            end_y = child.y
            mid_y = (start_y + end_y) / 2
            path = (
                f"M {start_x:g},{start_y:g} "
                f"C {start_x:g},{mid_y:g} {end_x:g},{mid_y:g} {end_x:g},{end_y:g}"
            )
            edges.append(Connector(parent_id=node.id, child_id=child.id, path=path))
    return edges
