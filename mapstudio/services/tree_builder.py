"""
MapStudio — Tree Builder
=========================
Rebuilds a single rooted mind map from the flat, parent-referencing node list
the generator returns.  The list is untrusted: ids may repeat, parents may be
missing, a node may name itself (or a descendant) as its parent, and there may
be zero or several roots.  None of that is an error; only a record that is
not a record at all is.
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Union

from pydantic import ValidationError as PydanticValidationError

from mapstudio.core.errors import ValidationError
from mapstudio.schemas.mindmap import FlatRecord, MindMapNode

logger = logging.getLogger(__name__)

SYNTHETIC_ROOT_ID = "root"
SYNTHETIC_ROOT_TOPIC = "Mind Map"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# RECORD VALIDATION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _validate_record(index: int, record: Any) -> FlatRecord:
    if isinstance(record, FlatRecord):
        return record

    record_id = record.get("id") if isinstance(record, Mapping) else None
    label = f"Record #{index}" + (f" (id={record_id!r})" if record_id is not None else "")

    if not isinstance(record, Mapping):
        raise ValidationError(
            f"{label} is not an object: got {type(record).__name__}.",
            index=index,
        )

    try:
        return FlatRecord.model_validate(record)
    except PydanticValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or 'record'}: {err['msg']}"
            for err in e.errors()
        )
        raise ValidationError(
            f"{label} is malformed: {problems}",
            index=index,
            record_id=str(record_id) if record_id is not None else None,
        ) from e


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# LINK RESOLUTION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def _unrooted(parent_of: Dict[str, Optional[str]]) -> Set[str]:
    """
    Ids whose parent chain never reaches a node without a parent.

    Every chain is judged on ``parent_of`` as given: all nodes on a cycle
    and all nodes leading into one are reported, whatever the input order.
    No walk takes more than ``len(parent_of)`` hops.
    """
    reaches: Dict[str, bool] = {}
    for start in parent_of:
        path: List[str] = []
        on_path: Set[str] = set()
        current = start
        while True:
            if current in reaches:
                result = reaches[current]
                break
            if parent_of[current] is None:
                result = True
                break
            if current in on_path:
                result = False
                break
            path.append(current)
            on_path.add(current)
            current = parent_of[current]
        for node_id in path:
            reaches[node_id] = result
    return {node_id for node_id, ok in reaches.items() if not ok}


def _synthetic_root_id(taken: Set[str]) -> str:
    if SYNTHETIC_ROOT_ID not in taken:
        return SYNTHETIC_ROOT_ID
    suffix = 1
    while f"{SYNTHETIC_ROOT_ID}-{suffix}" in taken:
        suffix += 1
    return f"{SYNTHETIC_ROOT_ID}-{suffix}"


def build(records: Sequence[Union[FlatRecord, Mapping[str, Any]]]) -> MindMapNode:
    """
    Reconstruct a tree from flat records.

    1. Index records by id; a repeated id keeps its first position and the
       fields of its last occurrence.
    2. A record whose parentId is empty, its own id, or unknown is a root
       candidate; so is one whose parent chain does not reach a root
       candidate within ``len(records)`` hops.  Every node on a cycle, and
       every node leading into one, becomes a root candidate.
    3. One root candidate becomes the root; zero or several are gathered under
       a synthetic root, in input order.

    Raises ValidationError for a record that is not an object or lacks a
    required field.
    """
    parsed = [_validate_record(i, r) for i, r in enumerate(records)]

    by_id: Dict[str, FlatRecord] = {}
    for record in parsed:
        by_id[record.id] = record

    parent_of: Dict[str, Optional[str]] = {}
    for node_id, record in by_id.items():
        parent_id = record.parent_id
        linked = bool(parent_id) and parent_id != node_id and parent_id in by_id
        parent_of[node_id] = parent_id if linked else None

    cut = _unrooted(parent_of)
    if cut:
        logger.warning(
            f"[BUILD] {len(cut)} node(s) never reach a root (parent cycle), "
            f"treating them as root candidates"
        )
        for node_id in cut:
            parent_of[node_id] = None

    children_of: Dict[str, List[str]] = {node_id: [] for node_id in by_id}
    roots: List[str] = []
    for node_id, parent_id in parent_of.items():
        if parent_id is None:
            roots.append(node_id)
        else:
            children_of[parent_id].append(node_id)

    # Pre-order over every tree, then built bottom-up so each node's
    # children already exist.
    order: List[str] = []
    stack = list(reversed(roots))
    while stack:
        node_id = stack.pop()
        order.append(node_id)
        stack.extend(reversed(children_of[node_id]))

    built: Dict[str, MindMapNode] = {}
    for node_id in reversed(order):
        record = by_id[node_id]
        built[node_id] = MindMapNode(
            id=record.id,
            topic=record.topic,
            content=record.content,
            children=[built[child_id] for child_id in children_of[node_id]],
        )

    if len(roots) == 1:
        tree = built[roots[0]]
    else:
        tree = MindMapNode(
            id=_synthetic_root_id(set(by_id)),
            topic=SYNTHETIC_ROOT_TOPIC,
            content="",
            children=[built[root_id] for root_id in roots],
        )

    duplicates = len(parsed) - len(by_id)
    logger.info(
        f"[BUILD] ✓ {len(parsed)} records → {len(by_id)} nodes, "
        f"{len(roots)} root candidate(s)"
        + (f", {duplicates} duplicate id(s) overwritten" if duplicates else "")
    )
    return tree


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# NORMALIZATION
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

def normalize(node: Union[MindMapNode, Mapping[str, Any]]) -> MindMapNode:
    """
    Return ``node`` as a MindMapNode whose every descendant has a children
    list.  Nested mappings with missing or null ``children`` are accepted;
    an already-built node is returned as is.
    """
    try:
        return MindMapNode.model_validate(node)
    except PydanticValidationError as e:
        raise ValidationError(f"Malformed mind map node: {e.errors()[0]['msg']}") from e


def count_nodes(node: MindMapNode) -> int:
    count = 0
    stack = [node]
    while stack:
        current = stack.pop()
        count += 1
        stack.extend(current.children)
    return count
