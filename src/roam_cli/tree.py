"""Depth-bounded reconstruction of a page's block tree."""

import logging
from collections.abc import Callable, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict

logger = logging.getLogger(__name__)

DEFAULT_MAX_DEPTH = 10


class Block(BaseModel):
    """A single child block as returned by a children lookup."""

    model_config = ConfigDict(frozen=True)

    uid: str
    string: str
    order: int


class TreeNode(BaseModel):
    """A block together with its children, sorted by ``order``."""

    model_config = ConfigDict(frozen=True)

    uid: str
    string: str
    order: int
    children: tuple["TreeNode", ...] = ()


FetchChildren = Callable[[str], Sequence[Block]]


def build_tree(
    fetch_children: FetchChildren,
    root_uid: str,
    max_depth: int = DEFAULT_MAX_DEPTH,
) -> list[TreeNode]:
    """Fetch the block tree below ``root_uid``.

    The root itself is not part of the result. Siblings are ordered by
    ascending ``order`` regardless of how ``fetch_children`` returned them,
    and nothing nests deeper than ``max_depth`` levels. Any exception from
    ``fetch_children`` aborts the whole traversal.

    Args:
        fetch_children: Returns the immediate children of a uid.
        root_uid: UID of the page or block to expand.
        max_depth: Maximum number of levels to fetch.

    Returns:
        The root's children as TreeNodes.
    """
    return _build(fetch_children, root_uid, 0, max_depth)


def _build(
    fetch_children: FetchChildren, parent_uid: str, depth: int, max_depth: int
) -> list[TreeNode]:
    if depth >= max_depth:
        return []

    children = sorted(fetch_children(parent_uid), key=lambda b: b.order)
    logger.debug(
        "Fetched %d children of %s at depth %d", len(children), parent_uid, depth
    )

    return [
        TreeNode(
            uid=child.uid,
            string=child.string,
            order=child.order,
            children=tuple(_build(fetch_children, child.uid, depth + 1, max_depth)),
        )
        for child in children
    ]


def format_tree(nodes: Sequence[TreeNode], indent: int = 0) -> str:
    """Render nodes as an indented markdown bullet list."""
    result = ""
    prefix = "  " * indent + "- "

    for node in nodes:
        result += f"{prefix}{node.string}\n"
        if node.children:
            result += format_tree(node.children, indent + 1)

    return result


def tree_to_json(nodes: Sequence[TreeNode]) -> list[dict[str, Any]]:
    """Convert nodes to JSON-ready dicts with uid, string, order and children."""
    return [node.model_dump(mode="json") for node in nodes]
