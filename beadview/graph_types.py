"""Data model for the bead graph: nodes, edges, layout and raw bead records.

Bead records arrive as JSON objects from `br list --json`, `br show --json`
or the .beads/issues.jsonl log. `GraphBead.from_dict` accepts any of them;
`to_node` and `extract_edges` turn a record into graph pieces.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class EdgeType(Enum):
    """Relationship between two nodes."""
    HIERARCHY = "hierarchy"  # parent -> child
    DEPENDENCY = "dependency"  # blocker -> blocked


class GraphView(Enum):
    """Which set of beads the graph shows."""
    ACTIVE = "active"  # open, in_progress, blocked
    BACKLOG = "backlog"  # deferred
    CLOSED = "closed"  # closed within the last 7 days

    def next(self) -> "GraphView":
        order = list(GraphView)
        return order[(order.index(self) + 1) % len(order)]


class LayoutDirection(Enum):
    """Axis mapping for the legacy layer grid."""
    TOP_DOWN = "top-down"
    LEFT_RIGHT = "left-right"

    @classmethod
    def from_layout(cls, layout: str) -> "LayoutDirection":
        """Map the TUI layout setting; "vertical" lays layers left to right."""
        return cls.LEFT_RIGHT if layout == "vertical" else cls.TOP_DOWN


class NodeDensity(Enum):
    """How much of each bead a row shows."""
    COMPACT = "compact"  # icon + ID
    STANDARD = "standard"  # icon + ID + title
    DETAILED = "detailed"  # icon + ID + priority + title + attempts/cost

    @classmethod
    def parse(cls, value: str | None) -> "NodeDensity":
        """Parse a density name; anything unknown is STANDARD."""
        for density in cls:
            if density.value == value:
                return density
        return cls.STANDARD

    def next(self) -> "NodeDensity":
        order = list(NodeDensity)
        return order[(order.index(self) + 1) % len(order)]


# Legacy grid cell size (width, height) per density
NODE_DIMENSIONS: dict[NodeDensity, tuple[int, int]] = {
    NodeDensity.COMPACT: (16, 1),
    NodeDensity.STANDARD: (26, 2),
    NodeDensity.DETAILED: (26, 3),
}

EPIC_TYPE = "epic"
AGENT_TYPE = "agent"
PARENT_CHILD = "parent-child"
BLOCKS = "blocks"

# Field value used for beads that could not be looked up
UNKNOWN = "?"

# Execution-state overlay values
WQ_FAILED = "failed"
WQ_ABANDONED = "abandoned"


@dataclass
class GraphNode:
    """A bead as shown in the graph."""

    id: str
    title: str = ""
    status: str = ""  # open, in_progress, blocked, deferred, closed
    priority: int = 2  # 0=critical .. 4=backlog
    type: str = ""  # epic, task, bug, ...
    parent: str = ""
    is_epic: bool = False
    cost: float = 0.0
    attempts: int = 0
    out_of_view: bool = False  # pulled in only to resolve a dependency
    out_of_scope: bool = False  # outside the active epic filter
    wq_status: str = ""  # "", "failed", "abandoned"
    in_backoff: bool = False

    def copy(self) -> "GraphNode":
        return replace(self)

    @classmethod
    def placeholder(cls, node_id: str) -> "GraphNode":
        """Stand-in for a dependency whose bead could not be fetched."""
        return cls(
            id=node_id,
            title=UNKNOWN,
            status=UNKNOWN,
            type=UNKNOWN,
            out_of_view=True,
        )


@dataclass(frozen=True)
class GraphEdge:
    """A directed relationship between two node IDs."""

    from_id: str
    to_id: str
    type: EdgeType


@dataclass(frozen=True)
class Position:
    """A node's rectangle on the logical canvas."""

    x: int
    y: int
    w: int
    h: int


@dataclass
class Viewport:
    """The visible window over the canvas."""

    offset_x: int = 0
    offset_y: int = 0
    width: int = 0
    height: int = 0


@dataclass(frozen=True)
class ListRow:
    """One row of the depth-first traversal."""

    id: str
    depth: int
    parent_id: str = ""
    visible: bool = True


@dataclass
class Layout:
    """Derived layout: traversal order, positions and legacy layer grid."""

    direction: LayoutDirection = LayoutDirection.TOP_DOWN
    layers: list[list[str]] = field(default_factory=list)
    list_order: list[ListRow] = field(default_factory=list)
    positions: dict[str, Position] = field(default_factory=dict)

    def copy(self) -> "Layout":
        return Layout(
            direction=self.direction,
            layers=[list(layer) for layer in self.layers],
            list_order=list(self.list_order),
            positions=dict(self.positions),
        )

    def index_of(self, node_id: str) -> int:
        """Index of node_id in list_order, or -1."""
        for i, row in enumerate(self.list_order):
            if row.id == node_id:
                return i
        return -1

    def visible_rows(self) -> list[ListRow]:
        return [row for row in self.list_order if row.visible]

    def grid_cell(self, node_id: str) -> tuple[int, int] | None:
        """(column, row) of node_id in the legacy layer grid.

        Top-down puts layers on rows; left-right puts layers on columns.
        """
        for layer_idx, layer in enumerate(self.layers):
            if node_id in layer:
                node_idx = layer.index(node_id)
                if self.direction == LayoutDirection.TOP_DOWN:
                    return node_idx, layer_idx
                return layer_idx, node_idx
        return None


@dataclass(frozen=True)
class BeadReference:
    """A reference to another bead in dependencies/dependents."""

    id: str
    title: str = ""
    status: str = ""
    dependency_type: str = ""  # "parent-child" or "blocks"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "BeadReference":
        return cls(
            id=str(data.get("id") or ""),
            title=data.get("title") or "",
            status=data.get("status") or "",
            dependency_type=data.get("dependency_type") or "",
        )


@dataclass
class GraphBead:
    """A raw bead record before conversion to graph pieces."""

    id: str
    title: str = ""
    description: str = ""
    status: str = ""
    priority: int = 2
    issue_type: str = ""
    created_at: str = ""
    created_by: str = ""
    updated_at: str = ""
    closed_at: str = ""
    parent: str = ""
    notes: str = ""
    labels: list[str] = field(default_factory=list)
    dependency_count: int = 0
    dependent_count: int = 0
    dependencies: list[BeadReference] = field(default_factory=list)
    dependents: list[BeadReference] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GraphBead":
        """Create a GraphBead from a JSON object; missing or null keys get defaults."""
        priority = data.get("priority")
        return cls(
            id=str(data.get("id") or ""),
            title=data.get("title") or "",
            description=data.get("description") or "",
            status=data.get("status") or "",
            priority=int(priority) if priority is not None else 2,
            issue_type=data.get("issue_type") or "",
            created_at=data.get("created_at") or "",
            created_by=data.get("created_by") or "",
            updated_at=data.get("updated_at") or "",
            closed_at=data.get("closed_at") or "",
            parent=data.get("parent") or "",
            notes=data.get("notes") or "",
            labels=list(data.get("labels") or []),
            dependency_count=int(data.get("dependency_count") or 0),
            dependent_count=int(data.get("dependent_count") or 0),
            dependencies=[BeadReference.from_dict(d) for d in data.get("dependencies") or []],
            dependents=[BeadReference.from_dict(d) for d in data.get("dependents") or []],
        )

    def to_node(self) -> GraphNode:
        """Convert to a GraphNode. Cost and attempts are not tracked yet."""
        parent = self.parent
        if not parent:
            for dep in self.dependencies:
                if dep.dependency_type == PARENT_CHILD:
                    parent = dep.id
                    break
        return GraphNode(
            id=self.id,
            title=self.title,
            status=self.status,
            priority=self.priority,
            type=self.issue_type,
            parent=parent,
            is_epic=self.issue_type == EPIC_TYPE,
        )

    def extract_edges(self) -> list[GraphEdge]:
        """Edges pointing at this bead.

        A parent-child dependency on P yields P -> self (hierarchy); a blocks
        dependency on B yields B -> self (dependency). A bare `parent` field
        yields a hierarchy edge when no parent-child dependency names it.
        """
        edges: list[GraphEdge] = []
        for dep in self.dependencies:
            if not dep.id:
                continue
            edge_type = EdgeType.HIERARCHY if dep.dependency_type == PARENT_CHILD else EdgeType.DEPENDENCY
            edge = GraphEdge(dep.id, self.id, edge_type)
            if edge not in edges:
                edges.append(edge)
        if self.parent:
            parent_edge = GraphEdge(self.parent, self.id, EdgeType.HIERARCHY)
            if parent_edge not in edges:
                edges.append(parent_edge)
        return edges
