"""Layered auto-layout and crossing detection for flowchart documents.

The layout is a Sugiyama-style pipeline run once per container, bottom-up:

1. cycle removal (DFS back edges are reversed),
2. longest-path layer assignment,
3. barycenter sweeps to reduce crossings,
4. coordinate assignment with fixed node/layer spacing.

`phase_group` nodes are compound containers: their children are laid out first
and the group is sized around them. Child positions are relative to the group's
top-left corner, which is the same convention `parentNode` uses everywhere else.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple, Union

from ..core.exceptions import LayoutError
from .model import FlowchartDocument, Position

logger = logging.getLogger("flowplan.layout")

DEFAULT_NODE_WIDTH = 180
DEFAULT_NODE_HEIGHT = 60
GROUP_PADDING = 40
NODE_SPACING = 50
LAYER_SPACING = 80
ROOT_MARGIN = 20
ORDERING_SWEEPS = 4

# Failure edges usually encode retry loops; laying them out would make the graph cyclic.
EXCLUDED_EDGE_TYPES = frozenset({"failure"})

Point = Tuple[float, float]
Size = Tuple[float, float]
EdgePair = Tuple[str, str]


class LayoutDirection(str, Enum):
    TOP_TO_BOTTOM = "TB"
    LEFT_TO_RIGHT = "LR"


def _coerce_direction(direction: Union[str, LayoutDirection]) -> LayoutDirection:
    if isinstance(direction, LayoutDirection):
        return direction
    try:
        return LayoutDirection(str(direction).strip().upper())
    except ValueError as exc:
        raise LayoutError(
            f"Unsupported layout direction '{direction}'. Use TB or LR.",
            {"direction": direction},
        ) from exc


def auto_layout(
    document: FlowchartDocument,
    direction: Union[str, LayoutDirection] = LayoutDirection.TOP_TO_BOTTOM,
) -> FlowchartDocument:
    """Return a new document with positions recomputed from the edge topology.

    Annotation nodes and nodes missing from the layout keep their position.
    The returned document has its version bumped by one.
    """
    layout_direction = _coerce_direction(direction)
    try:
        positions, dimensions = _compute_layout(document, layout_direction)
    except LayoutError:
        raise
    except (KeyError, ValueError, TypeError, RecursionError) as exc:
        raise LayoutError(
            f"Layout failed for flowchart '{document.id}': {exc}",
            {"flowchart_id": document.id},
        ) from exc

    result = document.copy()
    for node in result.nodes:
        point = positions.get(node.id)
        if point is not None:
            node.position = Position(x=point[0], y=point[1])
        size = dimensions.get(node.id)
        if size is not None and node.is_group:
            node.data.style = {**node.data.style, "width": size[0], "height": size[1]}
    result.bump_version()

    logger.debug(
        "Laid out flowchart id=%s direction=%s positioned=%d",
        document.id,
        layout_direction.value,
        len(positions),
    )
    return result


# -----------------------------------------------------------------------------
# Graph construction
# -----------------------------------------------------------------------------


class _LayoutGraph:
    """Containment forest plus edges lifted to the container they belong to."""

    def __init__(self, document: FlowchartDocument):
        self.node_ids: List[str] = []
        self.group_ids: set[str] = set()
        seen: set[str] = set()
        for node in document.nodes:
            if node.is_annotation or not node.id or node.id in seen:
                continue
            seen.add(node.id)
            self.node_ids.append(node.id)
            if node.is_group:
                self.group_ids.add(node.id)

        self.parent_of: Dict[str, str] = {}
        for node in document.nodes:
            if node.id not in seen or node.id in self.parent_of:
                continue
            parent = node.parent_node
            if parent and parent != node.id and parent in self.group_ids:
                self.parent_of[node.id] = parent
        self._break_containment_cycles()

        self.members: Dict[Optional[str], List[str]] = {None: []}
        for group_id in self.group_ids:
            self.members[group_id] = []
        for node_id in self.node_ids:
            self.members[self.parent_of.get(node_id)].append(node_id)

        self.edges: Dict[Optional[str], List[EdgePair]] = {key: [] for key in self.members}
        eligible = set(self.node_ids)
        for edge in document.edges:
            if edge.type in EXCLUDED_EDGE_TYPES:
                continue
            if edge.source not in eligible or edge.target not in eligible:
                continue
            lifted = self._lift(edge.source, edge.target)
            if lifted is not None:
                container, pair = lifted
                self.edges[container].append(pair)

    def _break_containment_cycles(self) -> None:
        for start in list(self.parent_of):
            seen = {start}
            previous = start
            current = self.parent_of.get(start)
            while current is not None:
                if current in seen:
                    self.parent_of.pop(previous, None)
                    break
                seen.add(current)
                previous = current
                current = self.parent_of.get(current)

    def chain(self, node_id: str) -> List[Optional[str]]:
        """`[node, parent, grandparent, ..., None]` where None is the root container."""
        path: List[Optional[str]] = [node_id]
        current = self.parent_of.get(node_id)
        while current is not None:
            path.append(current)
            current = self.parent_of.get(current)
        path.append(None)
        return path

    def _lift(self, source: str, target: str) -> Optional[Tuple[Optional[str], EdgePair]]:
        source_chain = self.chain(source)
        target_chain = self.chain(target)
        target_containers = set(target_chain[1:])
        for idx in range(1, len(source_chain)):
            container = source_chain[idx]
            if container in target_containers:
                source_member = source_chain[idx - 1]
                target_member = target_chain[target_chain.index(container) - 1]
                if source_member == target_member:
                    return None
                return container, (str(source_member), str(target_member))
        return None


# -----------------------------------------------------------------------------
# Layered layout per container
# -----------------------------------------------------------------------------


def _compute_layout(
    document: FlowchartDocument,
    direction: LayoutDirection,
) -> Tuple[Dict[str, Point], Dict[str, Size]]:
    graph = _LayoutGraph(document)
    positions: Dict[str, Point] = {}
    dimensions: Dict[str, Size] = {}
    if not graph.node_ids:
        return positions, dimensions

    def layout_container(container: Optional[str], offset: float) -> Size:
        ids = graph.members[container]
        sizes: Dict[str, Size] = {}
        for node_id in ids:
            if node_id in graph.group_ids:
                content_w, content_h = layout_container(node_id, GROUP_PADDING)
                size = (
                    max(DEFAULT_NODE_WIDTH * 2, content_w + GROUP_PADDING * 2),
                    max(DEFAULT_NODE_HEIGHT * 2, content_h + GROUP_PADDING * 2),
                )
                dimensions[node_id] = size
                sizes[node_id] = size
            else:
                sizes[node_id] = (DEFAULT_NODE_WIDTH, DEFAULT_NODE_HEIGHT)

        local, extent = _layered_positions(ids, graph.edges[container], sizes, direction)
        for node_id, (x, y) in local.items():
            positions[node_id] = (x + offset, y + offset)
        return extent

    layout_container(None, ROOT_MARGIN)
    return positions, dimensions


def _layered_positions(
    ids: List[str],
    edges: List[EdgePair],
    sizes: Dict[str, Size],
    direction: LayoutDirection,
) -> Tuple[Dict[str, Point], Size]:
    if not ids:
        return {}, (0.0, 0.0)

    dag = remove_cycles(ids, [(s, t) for s, t in edges if s != t])
    levels = assign_levels(ids, dag)
    level_map = order_levels(ids, dag, levels)

    horizontal = direction == LayoutDirection.LEFT_TO_RIGHT

    def along(node_id: str) -> float:
        # Extent along the layering axis.
        width, height = sizes[node_id]
        return width if horizontal else height

    def across(node_id: str) -> float:
        width, height = sizes[node_id]
        return height if horizontal else width

    spans: Dict[int, float] = {}
    for level, node_ids in level_map.items():
        spans[level] = sum(across(n) for n in node_ids) + NODE_SPACING * (len(node_ids) - 1)
    breadth = max(spans.values())

    local: Dict[str, Point] = {}
    layer_start = 0.0
    for level in sorted(level_map):
        node_ids = level_map[level]
        thickness = max(along(n) for n in node_ids)
        cursor = (breadth - spans[level]) / 2
        for node_id in node_ids:
            depth = layer_start + (thickness - along(node_id)) / 2
            local[node_id] = (depth, cursor) if horizontal else (cursor, depth)
            cursor += across(node_id) + NODE_SPACING
        layer_start += thickness + LAYER_SPACING

    depth_total = layer_start - LAYER_SPACING
    extent = (depth_total, breadth) if horizontal else (breadth, depth_total)
    return local, extent


def remove_cycles(ids: List[str], edges: List[EdgePair]) -> List[EdgePair]:
    """Reverse DFS back edges so the remaining graph is acyclic."""
    outgoing: Dict[str, List[str]] = {node_id: [] for node_id in ids}
    for source, target in edges:
        outgoing.setdefault(source, []).append(target)
        outgoing.setdefault(target, [])

    state: Dict[str, int] = {}
    back_edges: set[EdgePair] = set()
    for root in ids:
        if root in state:
            continue
        state[root] = 1
        stack = [(root, iter(outgoing[root]))]
        while stack:
            node_id, children = stack[-1]
            child = next(children, None)
            if child is None:
                state[node_id] = 2
                stack.pop()
                continue
            child_state = state.get(child)
            if child_state == 1:
                back_edges.add((node_id, child))
            elif child_state is None:
                state[child] = 1
                stack.append((child, iter(outgoing[child])))

    return [(t, s) if (s, t) in back_edges else (s, t) for s, t in edges]


def assign_levels(ids: Iterable[str], edges: List[EdgePair]) -> Dict[str, int]:
    levels = {node_id: 0 for node_id in ids}
    max_iters = max(1, len(levels))
    for _ in range(max_iters):
        changed = False
        for source, target in edges:
            next_level = levels.get(source, 0) + 1
            if next_level > levels.get(target, 0):
                levels[target] = next_level
                changed = True
        if not changed:
            break
    return levels


def order_levels(
    ids: List[str],
    edges: List[EdgePair],
    levels: Dict[str, int],
) -> Dict[int, List[str]]:
    level_map: Dict[int, List[str]] = {}
    for node_id in ids:
        level_map.setdefault(levels[node_id], []).append(node_id)

    parents: Dict[str, List[str]] = {node_id: [] for node_id in ids}
    children: Dict[str, List[str]] = {node_id: [] for node_id in ids}
    for source, target in edges:
        parents[target].append(source)
        children[source].append(target)

    order_index: Dict[str, int] = {}
    for nodes in level_map.values():
        for idx, node_id in enumerate(nodes):
            order_index[node_id] = idx

    max_level = max(level_map) if level_map else 0
    for _ in range(ORDERING_SWEEPS):
        for level in range(1, max_level + 1):
            _reorder(level_map.get(level, []), parents, order_index)
        for level in range(max_level - 1, -1, -1):
            _reorder(level_map.get(level, []), children, order_index)

    return level_map


def _reorder(nodes: List[str], related: Dict[str, List[str]], order_index: Dict[str, int]) -> None:
    nodes.sort(key=lambda node_id: _avg_index(order_index, node_id, related.get(node_id, [])))
    for idx, node_id in enumerate(nodes):
        order_index[node_id] = idx


def _avg_index(order_index: Dict[str, int], node_id: str, related: List[str]) -> float:
    if not related:
        return float(order_index.get(node_id, 0))
    return sum(order_index.get(other, 0) for other in related) / len(related)


# -----------------------------------------------------------------------------
# Crossing detection
# -----------------------------------------------------------------------------


def absolute_positions(document: FlowchartDocument) -> Dict[str, Point]:
    """Translate parent-relative node positions into document coordinates."""
    node_map = {node.id: node for node in document.nodes}
    resolved: Dict[str, Point] = {}

    for node in document.nodes:
        x, y = node.position.x, node.position.y
        seen = {node.id}
        parent_id = node.parent_node
        while parent_id and parent_id in node_map and parent_id not in seen:
            seen.add(parent_id)
            parent = node_map[parent_id]
            x += parent.position.x
            y += parent.position.y
            parent_id = parent.parent_node
        resolved[node.id] = (x, y)
    return resolved


def count_edge_crossings(document: FlowchartDocument) -> int:
    segments = _edge_segments(document)
    crossings = 0
    for i in range(len(segments)):
        a1, a2 = segments[i]
        for j in range(i + 1, len(segments)):
            b1, b2 = segments[j]
            if _segments_cross(a1, a2, b1, b2):
                crossings += 1
    return crossings


def _edge_segments(document: FlowchartDocument) -> List[Tuple[Point, Point]]:
    points = absolute_positions(document)
    segments = []
    for edge in document.edges:
        src = points.get(edge.source)
        dst = points.get(edge.target)
        if src is None or dst is None:
            continue
        segments.append((src, dst))
    return segments


def _segments_cross(a1: Point, a2: Point, b1: Point, b2: Point) -> bool:
    if a1 == b1 or a1 == b2 or a2 == b1 or a2 == b2:
        return False
    return _ccw(a1, b1, b2) != _ccw(a2, b1, b2) and _ccw(a1, a2, b1) != _ccw(a1, a2, b2)


def _ccw(a: Point, b: Point, c: Point) -> bool:
    return (c[1] - a[1]) * (b[0] - a[0]) > (b[1] - a[1]) * (c[0] - a[0])
