from typing import Optional

from mapstudio.schemas.api import MindMapResponse
from mapstudio.schemas.mindmap import MindMapNode
from mapstudio.services.layout import LayoutConfig, connectors, layout
from mapstudio.services.viewport import fitted_view_box


def build_mindmap_response(tree: MindMapNode, cfg: Optional[LayoutConfig] = None) -> MindMapResponse:
    """Everything a renderer needs for ``tree``: layout, edges, fitted view box."""
    cfg = cfg or LayoutConfig.from_settings()
    positioned = layout(tree, cfg)
    return MindMapResponse(
        root=tree,
        layout=positioned,
        connectors=connectors(positioned, cfg),
        view_box=fitted_view_box(positioned, cfg),
    )
