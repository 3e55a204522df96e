from typing import List, TypeVar

from mapstudio.schemas.mindmap import MindMapNode

Node = TypeVar("Node", bound=MindMapNode)


def search(query: str, root: Node) -> List[Node]:
    """
    Nodes whose topic or content contains ``query`` (case-insensitive),
    pre-order.  A blank query matches nothing.

    Works on a positioned tree (results keep their coordinates) or on a
    plain one; matching only reads the text fields.
    """
    needle = query.strip().lower()
    if not needle:
        return []

    matches: List[Node] = []
    stack = [root]
    while stack:
        node = stack.pop()
        if needle in node.topic.lower() or needle in node.content.lower():
            matches.append(node)
        stack.extend(reversed(node.children))
    return matches
