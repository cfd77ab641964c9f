"""Pure forest operations for the task tree.

A forest is a list of node dicts shaped ``{"id", "value", "done", "children"}``.
None of these helpers mutate their arguments; every mutation returns a new
forest. Lookups are recursive scans, so each call costs O(nodes).
"""

from __future__ import annotations

import copy
import re
from typing import Any, Iterator

from tasktree.constants import TRASH_ID

Node = dict[str, Any]
Forest = list[Node]

NO_NUMERIC_ID = -1
_DECIMAL_ID = re.compile(r"-?[0-9]+")


def iter_nodes(forest: Forest) -> Iterator[Node]:
    """Yield every node depth-first, parents before children."""
    for node in forest:
        yield node
        yield from iter_nodes(node.get("children") or [])


def find_node(forest: Forest, node_id: str) -> Node | None:
    for node in iter_nodes(forest):
        if node.get("id") == node_id:
            return node
    return None


def build_parent_index(forest: Forest) -> dict[str, str | None]:
    """Map every node id to its parent id (``None`` for roots)."""
    index: dict[str, str | None] = {}
    pending: list[tuple[Node, str | None]] = [(node, None) for node in forest]
    while pending:
        node, parent_id = pending.pop()
        index[node["id"]] = parent_id
        for child in node.get("children") or []:
            pending.append((child, node["id"]))
    return index


def find_max_id(forest: Forest) -> int:
    """Return the largest integer id in the forest, ignoring non-numeric ids.

    Only plain ASCII decimal ids count; forms such as ``"1_0"`` or ``" 7"``
    that ``int()`` would accept are treated as non-numeric.
    """
    max_id = NO_NUMERIC_ID
    for node in iter_nodes(forest):
        node_id = node.get("id")
        if not isinstance(node_id, str) or not _DECIMAL_ID.fullmatch(node_id):
            continue
        max_id = max(max_id, int(node_id))
    return max_id


def next_node_id(forest: Forest) -> str:
    # Recomputed on every call; two sessions adding concurrently can collide.
    return str(find_max_id(forest) + 1)


def new_task(forest: Forest, value: str = "") -> Node:
    return {"id": next_node_id(forest), "value": value, "done": False, "children": []}


def is_descendant_of_trash(forest: Forest, node_id: str) -> bool:
    """True when ``node_id`` is the trash root or anywhere beneath it."""
    for root in forest:
        if root.get("id") != TRASH_ID:
            continue
        if node_id == TRASH_ID:
            return True
        return find_node(root.get("children") or [], node_id) is not None
    return False


def add_node_under_parent_checked(
    forest: Forest, parent_id: str, new_node: Node
) -> tuple[Forest, bool]:
    updated = copy.deepcopy(forest)
    parent = find_node(updated, parent_id)
    if parent is None:
        return updated, False
    if not isinstance(parent.get("children"), list):
        parent["children"] = []
    parent["children"].append(copy.deepcopy(new_node))
    return updated, True


def add_node_under_parent(forest: Forest, parent_id: str, new_node: Node) -> Forest:
    """Append ``new_node`` to the children of ``parent_id``.

    An unknown parent is a silent no-op: the forest comes back unchanged.
    """
    updated, _ = add_node_under_parent_checked(forest, parent_id, new_node)
    return updated


def add_node_at_top_level(forest: Forest, new_node: Node) -> Forest:
    """Insert a root, keeping it above the trash bin.

    With trash at index > 0 the node goes right before it; with trash first
    or missing it goes to the front.
    """
    updated = copy.deepcopy(forest)
    trash_index = _root_index(updated, TRASH_ID)
    insert_at = trash_index if trash_index is not None and trash_index > 0 else 0
    updated.insert(insert_at, copy.deepcopy(new_node))
    return updated


def resolve_add_target(forest: Forest, selected_id: str | None) -> str | None:
    """Return the parent id for the next new task, or ``None`` for top level."""
    if selected_id is None or selected_id == TRASH_ID:
        return None
    if is_descendant_of_trash(forest, selected_id):
        return None
    if find_node(forest, selected_id) is None:
        return None
    return selected_id


def toggle_done(forest: Forest, node_id: str) -> Forest:
    updated = copy.deepcopy(forest)
    node = find_node(updated, node_id)
    if node is not None:
        node["done"] = not node.get("done", False)
    return updated


def edit_value(forest: Forest, node_id: str, value: str) -> Forest:
    updated = copy.deepcopy(forest)
    node = find_node(updated, node_id)
    if node is not None:
        node["value"] = value
    return updated


def move_node(
    forest: Forest,
    node_id: str,
    new_parent_id: str | None,
    index: int | None = None,
) -> Forest:
    """Re-parent ``node_id`` under ``new_parent_id`` (``None`` = top level).

    Moves that would detach the trash root or place a node inside its own
    subtree are refused and return the forest unchanged.
    """
    updated = copy.deepcopy(forest)
    if node_id == TRASH_ID and new_parent_id is not None:
        return updated
    node = find_node(updated, node_id)
    if node is None:
        return updated
    if new_parent_id is not None:
        if new_parent_id == node_id:
            return updated
        if find_node(node.get("children") or [], new_parent_id) is not None:
            return updated
        if find_node(updated, new_parent_id) is None:
            return updated

    _detach(updated, node_id)
    if new_parent_id is None:
        siblings = updated
    else:
        parent = find_node(updated, new_parent_id)
        if not isinstance(parent.get("children"), list):
            parent["children"] = []
        siblings = parent["children"]

    if index is None or index >= len(siblings):
        siblings.append(node)
    else:
        siblings.insert(max(index, 0), node)
    return updated


def move_to_trash(forest: Forest, node_id: str) -> Forest:
    if node_id == TRASH_ID or _root_index(forest, TRASH_ID) is None:
        return copy.deepcopy(forest)
    if is_descendant_of_trash(forest, node_id):
        return copy.deepcopy(forest)
    return move_node(forest, node_id, TRASH_ID)


def empty_trash(forest: Forest) -> Forest:
    updated = copy.deepcopy(forest)
    trash_index = _root_index(updated, TRASH_ID)
    if trash_index is not None:
        updated[trash_index]["children"] = []
    return updated


def _root_index(forest: Forest, node_id: str) -> int | None:
    for index, node in enumerate(forest):
        if node.get("id") == node_id:
            return index
    return None


def _detach(forest: Forest, node_id: str) -> bool:
    for index, node in enumerate(forest):
        if node.get("id") == node_id:
            del forest[index]
            return True
        if _detach(node.get("children") or [], node_id):
            return True
    return False
