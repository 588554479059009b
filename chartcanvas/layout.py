"""Hierarchical tree layout for generated diagrams.

Pure functions with no Qt dependency. Nodes are placed level by level from
the roots down; each subtree gets horizontal room in proportion to the
number of leaves it reaches, and decision nodes with two outgoing branches
put the "yes" branch on the left and the "no" branch on the right.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple

from .constants import (
    CANVAS_PADDING,
    CHILD_LEAF_WIDTH,
    CHILD_MIN_WIDTH_FEW,
    CHILD_MIN_WIDTH_MANY,
    DECISION_BRANCH_GAP,
    DECISION_BRANCH_UNIT,
    DECISION_LEAF_WIDTH,
    DECISION_MIN_BRANCH_SPACING,
    DECISION_MULTI_MIN_WIDTH,
    DEFAULT_LAYOUT_WIDTH,
    DEFAULT_NODE_HEIGHT,
    DEFAULT_NODE_WIDTH,
    LAYOUT_MARGIN,
    LAYOUT_TOP,
    LEVEL_HEIGHT,
    MIN_CANVAS_SIZE,
)
from .types import Point

logger = logging.getLogger(__name__)

# Endpoint field names accepted on connections, in priority order.
LAYOUT_SOURCE_FIELDS: Tuple[str, ...] = ("sourceId", "source_id", "from", "source")
LAYOUT_TARGET_FIELDS: Tuple[str, ...] = ("targetId", "target_id", "to", "target")

_YES_WORDS = ("yes", "true")
_NO_WORDS = ("no", "false")


class Link(NamedTuple):
    """One end of a connection as seen from the other end."""

    node_id: str
    label: str


Adjacency = Dict[str, List[Link]]


@dataclass
class LayoutResult:
    """Positions (top-left corners) plus the intermediate layout data."""

    positions: Dict[str, Point] = field(default_factory=dict)
    levels: Dict[str, int] = field(default_factory=dict)
    leaf_weights: Dict[str, int] = field(default_factory=dict)
    canvas_width: float = MIN_CANVAS_SIZE
    canvas_height: float = MIN_CANVAS_SIZE


def _read(item: Any, names: Sequence[str]) -> Any:
    for name in names:
        if isinstance(item, Mapping):
            value = item.get(name)
        else:
            value = getattr(item, name, None)
        if value is not None and value != "":
            return value
    return None


def _node_ids_and_types(nodes: Iterable[Any]) -> Tuple[List[str], Dict[str, str]]:
    node_ids: List[str] = []
    node_types: Dict[str, str] = {}
    for node in nodes:
        if node is None:
            continue
        node_id = _read(node, ("id",))
        if node_id is None:
            continue
        node_id = str(node_id)
        if node_id in node_types:
            continue
        node_ids.append(node_id)
        node_types[node_id] = str(_read(node, ("type",)) or "").lower()
    return node_ids, node_types


def build_adjacency(node_ids: Sequence[str], connections: Iterable[Any]) -> Tuple[Adjacency, Adjacency]:
    """Return (outgoing, incoming) maps, dropping connections to unknown nodes."""
    outgoing: Adjacency = {node_id: [] for node_id in node_ids}
    incoming: Adjacency = {node_id: [] for node_id in node_ids}
    for conn in connections:
        if conn is None:
            continue
        source = _read(conn, LAYOUT_SOURCE_FIELDS)
        target = _read(conn, LAYOUT_TARGET_FIELDS)
        if source is None or target is None:
            continue
        source, target = str(source), str(target)
        if source not in outgoing or target not in incoming:
            logger.warning("Layout ignoring connection %s -> %s with unknown endpoint", source, target)
            continue
        label = str(_read(conn, ("label",)) or "")
        outgoing[source].append(Link(target, label))
        incoming[target].append(Link(source, label))
    return outgoing, incoming


def find_roots(node_ids: Sequence[str], incoming: Adjacency) -> List[str]:
    """Nodes without incoming edges; the first node when every node has one."""
    roots = [node_id for node_id in node_ids if not incoming.get(node_id)]
    if not roots and node_ids:
        roots = [node_ids[0]]
    return roots


def assign_levels(node_ids: Sequence[str], roots: Sequence[str], outgoing: Adjacency) -> Dict[str, int]:
    """Breadth-first depth from all roots at once.

    A node keeps the level it was first discovered at. Nodes unreachable
    from every root go one level below the deepest discovered level. The
    returned dict is ordered by discovery.
    """
    levels: Dict[str, int] = {}
    queue: List[Tuple[str, int]] = [(root, 0) for root in roots]
    head = 0
    while head < len(queue):
        node_id, level = queue[head]
        head += 1
        if node_id in levels:
            continue
        levels[node_id] = level
        for child in outgoing.get(node_id, []):
            queue.append((child.node_id, level + 1))

    bottom = max(levels.values(), default=0) + 1
    for node_id in node_ids:
        if node_id not in levels:
            levels[node_id] = bottom
    return levels


def count_leaf_descendants(
    node_id: str,
    outgoing: Adjacency,
    weights: Dict[str, int],
    path: FrozenSet[str] = frozenset(),
    memo: Optional[Dict[str, int]] = None,
) -> int:
    """Count the leaves reachable from ``node_id``.

    ``path`` holds the nodes already on the current branch; meeting one of
    them again contributes nothing, which cuts cycles. A node with no leaves
    below it still counts as 1. ``weights`` is updated with each node's count.

    The walk uses an explicit stack, so long chains do not hit the recursion
    limit. Counts of subtrees that never ran into the branch are stored in
    ``memo`` and reused, since no branch can cut them.
    """
    if node_id in path:
        return 0
    if memo is None:
        memo = {}
    if node_id in memo:
        return memo[node_id]

    # Nodes are added on push and dropped on pop, so on_branch is always the
    # current branch and sibling branches never see each other.
    on_branch = set(path)
    on_branch.add(node_id)
    # Frames are [node id, next child index, running total, branch was cut].
    stack: List[List[Any]] = [[node_id, 0, 0, False]]
    finished: Optional[Tuple[int, bool]] = None
    while stack:
        frame = stack[-1]
        if finished is not None:
            frame[2] += finished[0]
            frame[3] = frame[3] or finished[1]
            finished = None

        children = outgoing.get(frame[0], [])
        if frame[1] < len(children):
            child = children[frame[1]].node_id
            frame[1] += 1
            if child in on_branch:
                finished = (0, True)
            elif child in memo:
                finished = (memo[child], False)
            else:
                on_branch.add(child)
                stack.append([child, 0, 0, False])
            continue

        stack.pop()
        on_branch.discard(frame[0])
        total = frame[2] if children else 1
        if total == 0:
            total = 1
        weights[frame[0]] = total
        if not frame[3]:
            memo[frame[0]] = total
        finished = (total, frame[3])

    return weights[node_id]


def compute_leaf_weights(node_ids: Sequence[str], roots: Sequence[str], outgoing: Adjacency) -> Dict[str, int]:
    weights: Dict[str, int] = {}
    memo: Dict[str, int] = {}
    for root in roots:
        count_leaf_descendants(root, outgoing, weights, memo=memo)
    for node_id in node_ids:
        weights.setdefault(node_id, 1)
    return weights


def _decision_branch_order(children: Sequence[str], parent_links: Sequence[Link]) -> Tuple[str, str]:
    """Return (left, right) for a two-way decision, yes/true on the left."""

    def label_for(child_id: str) -> str:
        for link in parent_links:
            if link.node_id == child_id:
                return link.label.lower()
        return ""

    first, second = children[0], children[1]
    first_label, second_label = label_for(first), label_for(second)
    if any(w in first_label for w in _YES_WORDS) and any(w in second_label for w in _NO_WORDS):
        return first, second
    if any(w in second_label for w in _YES_WORDS) and any(w in first_label for w in _NO_WORDS):
        return second, first
    return first, second


def _spread_proportionally(
    positions: Dict[str, float],
    children: Sequence[str],
    weights: Dict[str, int],
    parent_x: float,
    total_width: float,
    gap: float = 0.0,
) -> None:
    total_leaves = sum(weights[child] for child in children)
    current_x = parent_x - total_width / 2
    for child in children:
        child_width = (max(1, weights[child]) / total_leaves) * total_width
        positions[child] = current_x + child_width / 2
        current_x += child_width + gap


def allocate_horizontal_positions(
    levels: Dict[str, int],
    roots: Sequence[str],
    outgoing: Adjacency,
    incoming: Adjacency,
    weights: Dict[str, int],
    node_types: Mapping[str, str],
    canvas_width: float,
) -> Dict[str, float]:
    """Assign an x-center to every node, level by level."""
    positions: Dict[str, float] = {}
    usable_width = canvas_width - 2 * LAYOUT_MARGIN

    total_root_weight = sum(weights[root] for root in roots)
    if total_root_weight:
        unit = usable_width / total_root_weight
        current_x = LAYOUT_MARGIN
        for root in roots:
            width = weights[root] * unit
            positions[root] = current_x + width / 2
            current_x += width

    by_level: Dict[int, List[str]] = {}
    for node_id, level in levels.items():
        by_level.setdefault(level, []).append(node_id)

    for level in range(1, max(by_level, default=0) + 1):
        groups: Dict[Optional[str], List[str]] = {None: []}
        for node_id in by_level.get(level, []):
            parents = [
                link.node_id for link in incoming.get(node_id, [])
                if levels.get(link.node_id, level) < level
            ]
            if not parents:
                groups[None].append(node_id)
                continue
            for parent_id in parents:
                groups.setdefault(parent_id, []).append(node_id)

        for parent_id, children in groups.items():
            if not children:
                continue
            if parent_id is None:
                spacing = usable_width / (len(children) + 1)
                for index, child in enumerate(children):
                    positions[child] = LAYOUT_MARGIN + spacing * (index + 1)
                continue

            parent_x = positions.get(parent_id, LAYOUT_MARGIN)
            is_decision = node_types.get(parent_id) == "decision"
            if is_decision and len(children) == 2:
                left, right = _decision_branch_order(children, outgoing.get(parent_id, []))
                spacing = max(
                    DECISION_MIN_BRANCH_SPACING,
                    weights[left] * DECISION_BRANCH_UNIT + weights[right] * DECISION_BRANCH_UNIT,
                )
                positions[left] = parent_x - spacing / 2
                positions[right] = parent_x + spacing / 2
            elif is_decision and len(children) > 2:
                total_leaves = sum(weights[child] for child in children)
                total_width = max(DECISION_MULTI_MIN_WIDTH * len(children), total_leaves * DECISION_LEAF_WIDTH)
                _spread_proportionally(positions, children, weights, parent_x, total_width, DECISION_BRANCH_GAP)
            else:
                total_leaves = sum(weights[child] for child in children)
                min_width = CHILD_MIN_WIDTH_FEW if len(children) <= 2 else CHILD_MIN_WIDTH_MANY
                total_width = max(min_width * len(children), total_leaves * CHILD_LEAF_WIDTH)
                _spread_proportionally(positions, children, weights, parent_x, total_width)
    return positions


def compute_layout(
    nodes: Iterable[Any],
    connections: Iterable[Any],
    canvas_width: float = DEFAULT_LAYOUT_WIDTH,
    node_width: float = DEFAULT_NODE_WIDTH,
    node_height: float = DEFAULT_NODE_HEIGHT,
) -> LayoutResult:
    """Lay out ``nodes`` as a top-down tree.

    Nodes and connections may be mappings or objects. Node ids come from
    ``id`` and types from ``type``; connection endpoints are read from any of
    the names in ``LAYOUT_SOURCE_FIELDS``/``LAYOUT_TARGET_FIELDS``.
    An empty node list gives an empty result.
    """
    node_ids, node_types = _node_ids_and_types(nodes)
    if not node_ids:
        return LayoutResult()

    outgoing, incoming = build_adjacency(node_ids, connections)
    roots = find_roots(node_ids, incoming)
    levels = assign_levels(node_ids, roots, outgoing)
    weights = compute_leaf_weights(node_ids, roots, outgoing)
    centers = allocate_horizontal_positions(levels, roots, outgoing, incoming, weights, node_types, canvas_width)

    positions: Dict[str, Point] = {}
    min_x = min_y = float("inf")
    max_x = max_y = float("-inf")
    for node_id, level in levels.items():
        x = centers.get(node_id, LAYOUT_MARGIN) - node_width / 2
        y = LAYOUT_TOP + level * LEVEL_HEIGHT - node_height / 2
        positions[node_id] = Point(x, y)
        min_x, max_x = min(min_x, x), max(max_x, x + node_width)
        min_y, max_y = min(min_y, y), max(max_y, y + node_height)

    return LayoutResult(
        positions=positions,
        levels=levels,
        leaf_weights=weights,
        canvas_width=max(MIN_CANVAS_SIZE, max_x - min_x + 2 * CANVAS_PADDING),
        canvas_height=max(MIN_CANVAS_SIZE, max_y - min_y + 2 * CANVAS_PADDING),
    )
