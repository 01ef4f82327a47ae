"""Traversal engine: turns nodes, edges and collapse state into a layout.

All functions here are pure; the Graph calls them while holding its write
lock and stores the resulting Layout.

Order of rows:
1. Roots (nodes with no incoming hierarchy edge): epics first, out-of-view
   last, then by ID.
2. Preorder depth-first walk from each root into ID-sorted hierarchy
   children. A collapsed node's descendants are skipped entirely.
3. Orphans (never reached from a root: only linked by dependency edges, or
   cut off by a hierarchy cycle) appended at depth 0, out-of-view last then
   by ID, each walked the same way.
"""

from .graph_types import (
    NODE_DIMENSIONS,
    EdgeType,
    GraphEdge,
    GraphNode,
    Layout,
    LayoutDirection,
    ListRow,
    NodeDensity,
    Position,
)

# Columns of indent per tree depth
LIST_INDENT = 2

# Height of one list row
LIST_ROW_HEIGHT = 1


def build_parent_map(edges: list[GraphEdge]) -> dict[str, str]:
    """Map child ID -> parent ID from hierarchy edges (first edge wins)."""
    parents: dict[str, str] = {}
    for edge in edges:
        if edge.type == EdgeType.HIERARCHY and edge.to_id not in parents:
            parents[edge.to_id] = edge.from_id
    return parents


def build_children_map(edges: list[GraphEdge]) -> dict[str, list[str]]:
    """Map parent ID -> ID-sorted child IDs from hierarchy edges."""
    children: dict[str, set[str]] = {}
    for edge in edges:
        if edge.type == EdgeType.HIERARCHY:
            children.setdefault(edge.from_id, set()).add(edge.to_id)
    return {parent: sorted(kids) for parent, kids in children.items()}


def root_sort_key(node: GraphNode) -> tuple[bool, bool, str]:
    return (not node.is_epic, node.out_of_view, node.id)


def orphan_sort_key(node: GraphNode) -> tuple[bool, str]:
    return (node.out_of_view, node.id)


def find_roots(nodes: dict[str, GraphNode], edges: list[GraphEdge]) -> list[str]:
    """Sorted IDs of nodes with no incoming hierarchy edge."""
    has_parent = {e.to_id for e in edges if e.type == EdgeType.HIERARCHY}
    roots = [node for node_id, node in nodes.items() if node_id not in has_parent]
    return [node.id for node in sorted(roots, key=root_sort_key)]


def _walk(
    start: str,
    nodes: dict[str, GraphNode],
    children: dict[str, list[str]],
    collapsed: set[str],
    visited: set[str],
    rows: list[ListRow],
) -> None:
    """Preorder walk from start, appending rows and claiming nodes in visited."""
    stack: list[tuple[str, int, str]] = [(start, 0, "")]
    while stack:
        node_id, depth, parent_id = stack.pop()
        if node_id in visited or node_id not in nodes:
            continue
        visited.add(node_id)
        rows.append(ListRow(id=node_id, depth=depth, parent_id=parent_id))
        if node_id in collapsed:
            _claim_subtree(node_id, children, visited)
            continue
        for child_id in reversed(children.get(node_id, [])):
            if child_id not in visited:
                stack.append((child_id, depth + 1, node_id))


def _claim_subtree(node_id: str, children: dict[str, list[str]], visited: set[str]) -> None:
    """Mark every descendant of a collapsed node as claimed without emitting it."""
    pending = list(children.get(node_id, []))
    while pending:
        child_id = pending.pop()
        if child_id in visited:
            continue
        visited.add(child_id)
        pending.extend(children.get(child_id, []))


def compute_visibility(
    nodes: dict[str, GraphNode],
    parents: dict[str, str],
    collapsed: set[str],
) -> dict[str, bool]:
    """Ancestor-chain visibility for every node.

    A node is visible if it has no parent, or its parent is visible and not
    collapsed. When a parent chain loops back on itself the repeated node
    counts as visible.
    """
    result: dict[str, bool] = {}

    for start in nodes:
        # Climb until a known answer, a root, or a node already on this chain
        chain: list[str] = []
        on_chain: set[str] = set()
        node_id = start
        while True:
            if node_id in result:
                value = result[node_id]
                break
            if node_id in on_chain:
                value = True
                break
            parent = parents.get(node_id)
            if not parent or parent not in nodes:
                result[node_id] = value = True
                break
            chain.append(node_id)
            on_chain.add(node_id)
            node_id = parent

        for node_id in reversed(chain):
            value = value and parents[node_id] not in collapsed
            result[node_id] = value
    return result


def compute_list_order(
    nodes: dict[str, GraphNode],
    edges: list[GraphEdge],
    collapsed: set[str],
) -> list[ListRow]:
    """Depth-annotated, collapse-pruned preorder traversal of the forest."""
    children = build_children_map(edges)
    visited: set[str] = set()
    rows: list[ListRow] = []

    for root_id in find_roots(nodes, edges):
        _walk(root_id, nodes, children, collapsed, visited, rows)

    orphans = sorted(
        (node for node_id, node in nodes.items() if node_id not in visited),
        key=orphan_sort_key,
    )
    for orphan in orphans:
        if orphan.id not in visited:
            _walk(orphan.id, nodes, children, collapsed, visited, rows)

    visibility = compute_visibility(nodes, build_parent_map(edges), collapsed)
    return [
        ListRow(id=row.id, depth=row.depth, parent_id=row.parent_id, visible=visibility.get(row.id, True))
        for row in rows
    ]


def node_dimensions(density: NodeDensity) -> tuple[int, int]:
    """Legacy grid cell (width, height) for a density."""
    return NODE_DIMENSIONS[density]


def assign_positions(
    list_order: list[ListRow],
    viewport_width: int,
    density: NodeDensity,
) -> dict[str, Position]:
    """Positions for list rows.

    X is depth * LIST_INDENT, clamped to a quarter of the viewport width.
    Y counts visible rows only, so visible rows map densely onto 0..N-1.
    """
    default_w, _ = node_dimensions(density)
    max_indent = viewport_width // 4 if viewport_width > 0 else None
    positions: dict[str, Position] = {}
    y = 0
    for row in list_order:
        x = row.depth * LIST_INDENT
        if max_indent is not None:
            x = min(x, max_indent)
        w = viewport_width - x if viewport_width > 0 else default_w
        positions[row.id] = Position(x=x, y=y, w=max(w, 1), h=LIST_ROW_HEIGHT)
        if row.visible:
            y += LIST_ROW_HEIGHT
    return positions


def group_layers(list_order: list[ListRow]) -> list[list[str]]:
    """Legacy layer grid: node IDs grouped by depth, in list order."""
    layers: list[list[str]] = []
    for row in list_order:
        while len(layers) <= row.depth:
            layers.append([])
        layers[row.depth].append(row.id)
    return layers


def compute_layout(
    nodes: dict[str, GraphNode],
    edges: list[GraphEdge],
    collapsed: set[str],
    direction: LayoutDirection,
    viewport_width: int,
    density: NodeDensity,
) -> Layout:
    """Full layout recompute."""
    list_order = compute_list_order(nodes, edges, collapsed)
    return Layout(
        direction=direction,
        layers=group_layers(list_order),
        list_order=list_order,
        positions=assign_positions(list_order, viewport_width, density),
    )


def compute_descendants(root_id: str, parents: dict[str, str]) -> set[str]:
    """root_id plus all its transitive hierarchy descendants.

    Fixed-point expansion over the parent map: keep adding nodes whose
    parent is already in the set until nothing changes.
    """
    result = {root_id}
    changed = True
    while changed:
        changed = False
        for child_id, parent_id in parents.items():
            if parent_id in result and child_id not in result:
                result.add(child_id)
                changed = True
    return result
