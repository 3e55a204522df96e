"""
MapStudio — Response Envelopes
===============================
Every JSON response from this API is wrapped in APIResponse or ErrorResponse,
or is one of the small typed payloads below.
"""

from __future__ import annotations

from typing import List, Optional
from pydantic import BaseModel, Field

from mapstudio.schemas.mindmap import Connector, MindMapNode, PositionedNode, ViewBox


# ── Mind Map Payload ─────────────────────────────────────────────────────────

class MindMapResponse(BaseModel):
    """Everything a renderer needs: the tree, its layout, edges and a fitted view box."""
    root: MindMapNode
    layout: PositionedNode
    connectors: List[Connector]
    view_box: ViewBox


class SearchResponse(BaseModel):
    """Ids of matching nodes, pre-order."""
    matches: List[str]


class OutlineResponse(BaseModel):
    lines: List[str]


class UploadResponse(BaseModel):
    text: str
    success: bool = True


# ── Processing Metadata ─────────────────────────────────────────────────────

class ProcessingMeta(BaseModel):
    """Metadata about the processing run."""
    processing_time: str = Field(..., description="e.g. '12.4s'")
    file_name: str
    total_pages: int
    node_count: int


# ── Unified Response ─────────────────────────────────────────────────────────

class APIResponse(BaseModel):
    """Standard success envelope."""
    status: str = "success"
    meta: ProcessingMeta
    data: MindMapResponse


class ErrorResponse(BaseModel):
    """Standard error envelope."""
    status: str = "error"
    message: str
    detail: Optional[str] = None
