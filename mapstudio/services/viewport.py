"""
MapStudio — Viewport Controller
================================
Keeps the visible window (ViewBox) over a laid-out map and applies gestures
to it.  Every gesture works on the same transform:

    scene = view_box.origin + pixel * (view_box.size / surface.size)

The ratio is recomputed on every call because the rendering surface can be
resized between events.

Pointer gestures form a small state machine:

    IDLE ──down──▶ TRACKING ──down──▶ PINCHING
      ▲               │  ▲               │
      └─────up────────┘  └──────up───────┘

TRACKING drags the map with the single pointer.  Entering PINCHING snapshots
the pointer distance, the scene midpoint and the view box; every move then
rescales that snapshot around the midpoint.  Leaving PINCHING drops the
snapshot.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Hashable, Iterable, Optional, Tuple, Union

from mapstudio.core.config import settings
from mapstudio.schemas.mindmap import PositionedNode, ViewBox
from mapstudio.services.layout import LayoutConfig, bounds, flatten

Point = Tuple[float, float]


def fitted_view_box(
    nodes: Union[PositionedNode, Iterable[PositionedNode]],
    cfg: Optional[LayoutConfig] = None,
) -> Optional[ViewBox]:
    """
    Smallest view box showing every node box, padded by one horizontal gap
    left/right and one vertical gap above/below.  None when there are no nodes.
    """
    cfg = cfg or LayoutConfig.from_settings()
    if isinstance(nodes, PositionedNode):
        nodes = flatten(nodes)
    box = bounds(nodes, cfg)
    if box is None:
        return None
    min_x, min_y, max_x, max_y = box
    min_x -= cfg.h_gap
    min_y -= cfg.v_gap
    max_x += cfg.h_gap
    max_y += cfg.v_gap
    return ViewBox(x=min_x, y=min_y, width=max_x - min_x, height=max_y - min_y)


class GesturePhase(str, Enum):
    IDLE = "idle"
    TRACKING = "tracking"
    PINCHING = "pinching"


@dataclass(frozen=True)
class PinchSnapshot:
    initial_distance: float
    midpoint: Point  # scene units
    view_box: ViewBox


@dataclass
class GestureState:
    phase: GesturePhase = GesturePhase.IDLE
    pointers: Dict[Hashable, Point] = field(default_factory=dict)
    anchor: Optional[Point] = None  # last drag position, pixels
    pinch: Optional[PinchSnapshot] = None


def _distance(a: Point, b: Point) -> float:
    return math.hypot(b[0] - a[0], b[1] - a[1])


class ViewportController:
    """One per rendered map; recreated whenever the map is replaced."""

    def __init__(
        self,
        surface_width: Optional[float] = None,
        surface_height: Optional[float] = None,
        view_box: Optional[ViewBox] = None,
        zoom_factor: Optional[float] = None,
        cfg: Optional[LayoutConfig] = None,
    ):
        self.surface_width = 0.0
        self.surface_height = 0.0
        self.resize(
            settings.VIEWPORT_WIDTH if surface_width is None else surface_width,
            settings.VIEWPORT_HEIGHT if surface_height is None else surface_height,
        )
        self.view_box = view_box or ViewBox(
            x=0, y=0, width=settings.VIEWPORT_WIDTH, height=settings.VIEWPORT_HEIGHT
        )
        self.zoom_factor = zoom_factor or settings.ZOOM_FACTOR
        self.cfg = cfg or LayoutConfig.from_settings()
        self.gesture = GestureState()

    @property
    def phase(self) -> GesturePhase:
        return self.gesture.phase

    # ── Coordinate transform ─────────────────────────────────────────────────

    def resize(self, width: float, height: float) -> None:
        """The rendering surface changed size (pixels)."""
        if width <= 0 or height <= 0:
            raise ValueError(f"Surface size must be positive, got {width}x{height}")
        self.surface_width = float(width)
        self.surface_height = float(height)

    def _ratio(self) -> Point:
        return (
            self.view_box.width / self.surface_width,
            self.view_box.height / self.surface_height,
        )

    def to_scene(self, point: Point) -> Point:
        ratio_x, ratio_y = self._ratio()
        return (
            self.view_box.x + point[0] * ratio_x,
            self.view_box.y + point[1] * ratio_y,
        )

    # ── View box operations ──────────────────────────────────────────────────

    def fit_to_content(self, nodes: Union[PositionedNode, Iterable[PositionedNode]]) -> ViewBox:
        """Replace the view box so every node is visible; ends any gesture."""
        box = fitted_view_box(nodes, self.cfg)
        if box is not None:
            self.view_box = box
        self.gesture = GestureState()
        return self.view_box

    def pan_by(self, dx: float, dy: float) -> ViewBox:
        """Drag the map by (dx, dy) pixels; the view box moves the other way."""
        ratio_x, ratio_y = self._ratio()
        vb = self.view_box
        self.view_box = ViewBox(
            x=vb.x - dx * ratio_x,
            y=vb.y - dy * ratio_y,
            width=vb.width,
            height=vb.height,
        )
        return self.view_box

    def zoom_at(self, point: Point, factor: float) -> ViewBox:
        """
        Scale the view box size by ``factor`` (> 1 zooms out) keeping the
        scene point under ``point`` (pixels) where it is on screen.
        """
        vb = self.view_box
        new_width = vb.width * factor
        new_height = vb.height * factor
        self.view_box = ViewBox(
            x=vb.x + (point[0] / self.surface_width) * (vb.width - new_width),
            y=vb.y + (point[1] / self.surface_height) * (vb.height - new_height),
            width=new_width,
            height=new_height,
        )
        return self.view_box

    def wheel(self, point: Point, delta_y: float) -> ViewBox:
        """Mouse wheel: scrolling down zooms out, up zooms in."""
        factor = self.zoom_factor if delta_y > 0 else 1 / self.zoom_factor
        return self.zoom_at(point, factor)

    # ── Pointer state machine ────────────────────────────────────────────────

    def pointer_down(self, pointer_id: Hashable, point: Point) -> GesturePhase:
        g = self.gesture
        if pointer_id in g.pointers or len(g.pointers) >= 2:
            return g.phase
        g.pointers[pointer_id] = point
        if len(g.pointers) == 1:
            g.phase = GesturePhase.TRACKING
            g.anchor = point
        else:
            self._start_pinch()
        return g.phase

    def pointer_move(self, pointer_id: Hashable, point: Point) -> ViewBox:
        g = self.gesture
        if pointer_id not in g.pointers:
            return self.view_box
        g.pointers[pointer_id] = point

        if g.phase is GesturePhase.TRACKING and g.anchor is not None:
            dx, dy = point[0] - g.anchor[0], point[1] - g.anchor[1]
            g.anchor = point
            self.pan_by(dx, dy)
        elif g.phase is GesturePhase.PINCHING:
            self._apply_pinch()
        return self.view_box

    def pointer_up(self, pointer_id: Hashable) -> GesturePhase:
        g = self.gesture
        if g.pointers.pop(pointer_id, None) is None:
            return g.phase
        g.pinch = None
        if g.pointers:
            g.phase = GesturePhase.TRACKING
            g.anchor = next(iter(g.pointers.values()))
        else:
            g.phase = GesturePhase.IDLE
            g.anchor = None
        return g.phase

    def pinch_update(self, pointer_id: Hashable, point: Point) -> ViewBox:
        """Touch event for ``pointer_id``: registers it if new, moves it otherwise."""
        if pointer_id in self.gesture.pointers:
            return self.pointer_move(pointer_id, point)
        self.pointer_down(pointer_id, point)
        return self.view_box

    def cancel_gesture(self) -> None:
        self.gesture = GestureState()

    def _start_pinch(self) -> None:
        g = self.gesture
        first, second = list(g.pointers.values())[:2]
        midpoint_px = ((first[0] + second[0]) / 2, (first[1] + second[1]) / 2)
        g.phase = GesturePhase.PINCHING
        g.anchor = None
        g.pinch = PinchSnapshot(
            initial_distance=_distance(first, second),
            midpoint=self.to_scene(midpoint_px),
            view_box=self.view_box,
        )

    def _apply_pinch(self) -> None:
        g = self.gesture
        first, second = list(g.pointers.values())[:2]
        current = _distance(first, second)
        if g.pinch is None or g.pinch.initial_distance == 0:
            # Both fingers started on the same pixel: measure from here instead.
            self._start_pinch()
            return
        if current == 0:
            return

        snap = g.pinch
        scale = snap.initial_distance / current
        mid_x, mid_y = snap.midpoint
        self.view_box = ViewBox(
            x=mid_x - (mid_x - snap.view_box.x) * scale,
            y=mid_y - (mid_y - snap.view_box.y) * scale,
            width=snap.view_box.width * scale,
            height=snap.view_box.height * scale,
        )
