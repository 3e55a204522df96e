from __future__ import annotations
from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Any, List, Optional


# ── Wire shape ───────────────────────────────────────────────────────────────

class FlatRecord(BaseModel):
    """One node as returned by the generator: references its parent by id."""
    model_config = ConfigDict(populate_by_name=True, frozen=True, coerce_numbers_to_str=True)

    id: str = Field(..., min_length=1)
    parent_id: str = Field(default="", alias="parentId", description="Empty string for the root")
    topic: str
    content: str

    @field_validator("parent_id", mode="before")
    @classmethod
    def _null_parent_is_root(cls, v: Any) -> Any:
        return "" if v is None else v


# ── Tree ─────────────────────────────────────────────────────────────────────

class MindMapNode(BaseModel):
    """A single node in the mind map tree (recursive)."""
    model_config = ConfigDict(frozen=True, coerce_numbers_to_str=True)

    id: str
    topic: str
    content: str = ""
    children: List[MindMapNode] = Field(default_factory=list)

    @field_validator("children", mode="before")
    @classmethod
    def _missing_children_are_empty(cls, v: Any) -> Any:
        return [] if v is None else v


class PositionedNode(MindMapNode):
    """A tree node plus the top-left corner of its box, in scene units."""
    x: float
    y: float
    children: List[PositionedNode] = Field(default_factory=list)


class Connector(BaseModel):
    """Curve from a parent's box center to a child's box top-center."""
    parent_id: str
    child_id: str
    path: str = Field(..., description="SVG path data, e.g. 'M 90,40 C 90,100 ...'")


# ── Viewport ─────────────────────────────────────────────────────────────────

class ViewBox(BaseModel):
    """Visible window over the scene, in scene coordinates."""
    x: float
    y: float
    width: float
    height: float


# ── Requests ─────────────────────────────────────────────────────────────────

class MindMapRequest(BaseModel):
    """Request body for mind map generation."""
    text: str = Field(..., min_length=1, description="Free-form text to turn into a mind map")
    session_id: Optional[str] = Field(
        default=None,
        description="Client session; a newer request on the same session supersedes this one",
    )


class LayoutRequest(BaseModel):
    """A finished tree to lay out, outline or export."""
    root: MindMapNode


class SearchRequest(BaseModel):
    query: str = ""
    root: MindMapNode
