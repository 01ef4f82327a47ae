"""The bead graph: ingestion, navigation, collapse state and read snapshots.

A Graph is created once per dashboard session and rebuilt wholesale on every
successful refresh. Collapse state, selection and viewport survive rebuilds;
selection is revalidated and the viewport reconciled against the new
topology.

Every public method takes the graph's ReadWriteLock exactly once. Mutators
hold the write side for the whole sequence (for example flip collapse,
recompute layout, recover selection) so readers never see a half-updated
graph. Private helpers prefixed with an underscore assume the lock is held.
"""

import logging
from typing import Protocol

from rich.text import Text

from . import render
from .config import GraphConfig
from .exceptions import BeadviewError, FetchError
from .fetcher import BeadFetcher, fetch_view
from .graph_types import (
    EdgeType,
    GraphBead,
    GraphEdge,
    GraphNode,
    GraphView,
    Layout,
    LayoutDirection,
    NodeDensity,
    Viewport,
)
from .lock_utils import ReadWriteLock
from .traversal import (
    build_parent_map,
    compute_descendants,
    compute_layout,
)

logger = logging.getLogger(__name__)


class BeadStateGetter(Protocol):
    """Source of execution-state overlay data (work queue status)."""

    def get_bead_state(self, bead_id: str) -> tuple[str, int, bool]:
        """Return (status, attempts, in_backoff); status is "", "failed" or "abandoned"."""
        ...


def resolve_missing(fetcher: BeadFetcher, beads: list[GraphBead]) -> dict[str, GraphBead | None]:
    """Look up every edge source that is not part of the fetched batch.

    Runs without touching any graph state, so it is safe to call before
    taking the graph lock. Failed lookups map to None and become
    placeholder nodes on rebuild.
    """
    present = {bead.id for bead in beads}
    resolved: dict[str, GraphBead | None] = {}
    for bead in beads:
        for edge in bead.extract_edges():
            missing_id = edge.from_id
            if missing_id in present or missing_id in resolved:
                continue
            try:
                resolved[missing_id] = fetcher.fetch_bead(missing_id)
            except FetchError as e:
                logger.warning("Could not resolve %s (referenced by %s): %s", missing_id, bead.id, e)
                resolved[missing_id] = None
    return resolved


class Graph:
    """Thread-safe graph of beads plus its navigation state."""

    def __init__(
        self,
        config: GraphConfig | None = None,
        fetcher: BeadFetcher | None = None,
        layout: str = "horizontal",
    ):
        self._config = config or GraphConfig()
        self._fetcher = fetcher
        self._direction = LayoutDirection.from_layout(layout)
        self._lock = ReadWriteLock()

        self._nodes: dict[str, GraphNode] = {}
        self._edges: list[GraphEdge] = []
        self._parents: dict[str, str] = {}
        self._layout = Layout(direction=self._direction)
        self._collapsed: set[str] = set()
        self._selected = ""
        self._viewport = Viewport()
        self._view = GraphView.ACTIVE
        self._density = NodeDensity.parse(self._config.density)
        self._epic_filter = self._config.epic or ""
        self._current_bead = ""
        self._active_top_level = ""
        self._state_getter: BeadStateGetter | None = None

    # ------------------------------------------------------------------
    # Rebuild
    # ------------------------------------------------------------------

    def refresh(self) -> None:
        """Fetch the current view and rebuild the graph.

        Raises:
            BeadviewError: If the graph has no fetcher
            FetchError: If the list fetch fails
        """
        if self._fetcher is None:
            raise BeadviewError("graph has no fetcher")
        beads = fetch_view(self._fetcher, self.get_view())
        resolved = resolve_missing(self._fetcher, beads)
        self.rebuild_from_beads(beads, resolved)

    def rebuild_from_beads(
        self,
        beads: list[GraphBead],
        resolved: dict[str, GraphBead | None] | None = None,
    ) -> None:
        """Replace all nodes and edges with those built from beads.

        Args:
            beads: The fetched batch; each yields exactly one node
            resolved: Lookups for edge sources outside the batch, as returned
                by resolve_missing(). Sources with no entry, or a None entry,
                become placeholder nodes.
        """
        with self._lock.write_locked():
            self._build(beads, resolved or {})

    def _build(self, beads: list[GraphBead], resolved: dict[str, GraphBead | None]) -> None:
        old_index = self._layout.index_of(self._selected) if self._selected else -1

        nodes: dict[str, GraphNode] = {}
        for bead in beads:
            nodes[bead.id] = bead.to_node()

        edges: list[GraphEdge] = []
        seen: set[GraphEdge] = set()
        for bead in beads:
            for edge in bead.extract_edges():
                if edge not in seen:
                    seen.add(edge)
                    edges.append(edge)

        for edge in edges:
            if edge.from_id in nodes:
                continue
            found = resolved.get(edge.from_id)
            if found is not None:
                node = found.to_node()
                node.id = edge.from_id
                node.out_of_view = True
            else:
                node = GraphNode.placeholder(edge.from_id)
            nodes[node.id] = node

        self._nodes = nodes
        self._edges = edges
        self._parents = build_parent_map(edges)
        self._collapsed = {c for c in self._collapsed if c in nodes and nodes[c].is_epic}

        self._apply_epic_filter()
        if self._state_getter is not None:
            self._apply_states(self._state_getter)

        self._recompute_layout()

        if self._selected and self._selected not in self._nodes:
            self._selected = ""
        if self._selected and not self._is_shown(self._selected):
            self._recover_selection(self._selected, old_index)
        if not self._selected:
            self._selected = self._first_in_view_row()

        self._reconcile_viewport()

    def _recompute_layout(self) -> None:
        self._layout = compute_layout(
            self._nodes,
            self._edges,
            self._collapsed,
            self._direction,
            self._viewport.width,
            self._density,
        )

    def _apply_epic_filter(self) -> None:
        if not self._epic_filter:
            for node in self._nodes.values():
                node.out_of_scope = False
            return
        scope = compute_descendants(self._epic_filter, self._parents)
        for node_id, node in self._nodes.items():
            node.out_of_scope = node_id not in scope

    def _first_in_view_row(self) -> str:
        visible = self._layout.visible_rows()
        for row in visible:
            node = self._nodes[row.id]
            if not node.out_of_view and not node.out_of_scope:
                return row.id
        return visible[0].id if visible else ""

    # ------------------------------------------------------------------
    # View, filter and highlight settings
    # ------------------------------------------------------------------

    def set_view(self, view: GraphView) -> None:
        """Set which view the next refresh fetches."""
        with self._lock.write_locked():
            self._view = view

    def get_view(self) -> GraphView:
        with self._lock.read_locked():
            return self._view

    def cycle_view(self) -> GraphView:
        """Advance Active -> Backlog -> Closed -> Active; returns the new view."""
        with self._lock.write_locked():
            self._view = self._view.next()
            return self._view

    def set_epic_filter(self, epic_id: str | None) -> None:
        """Dim every node outside epic_id's subtree; None or "" clears the filter."""
        with self._lock.write_locked():
            self._epic_filter = epic_id or ""
            self._apply_epic_filter()

    def get_epic_filter(self) -> str:
        with self._lock.read_locked():
            return self._epic_filter

    def set_current_bead(self, bead_id: str) -> None:
        """Mark the bead currently being worked on (highlighted when rendered)."""
        with self._lock.write_locked():
            self._current_bead = bead_id

    def get_current_bead(self) -> str:
        with self._lock.read_locked():
            return self._current_bead

    def set_active_top_level(self, bead_id: str) -> None:
        """Dim everything outside bead_id's subtree; "" clears it."""
        with self._lock.write_locked():
            self._active_top_level = bead_id

    def get_active_top_level(self) -> str:
        with self._lock.read_locked():
            return self._active_top_level

    # ------------------------------------------------------------------
    # Selection and navigation
    # ------------------------------------------------------------------

    def select(self, node_id: str) -> None:
        """Select node_id. Unknown or hidden IDs are ignored."""
        with self._lock.write_locked():
            if node_id in self._nodes and self._is_shown(node_id):
                self._selected = node_id
                self._follow_selection()

    def get_selected_id(self) -> str:
        with self._lock.read_locked():
            return self._selected

    def get_selected(self) -> GraphNode | None:
        """Copy of the selected node, or None."""
        with self._lock.read_locked():
            node = self._nodes.get(self._selected)
            return node.copy() if node else None

    def select_next(self) -> None:
        """Move to the next visible row; no-op on the last one."""
        with self._lock.write_locked():
            self._step(1)

    def select_prev(self) -> None:
        """Move to the previous visible row; no-op on the first one."""
        with self._lock.write_locked():
            self._step(-1)

    def _step(self, direction: int) -> None:
        index = self._layout.index_of(self._selected)
        if index == -1:
            target = self._first_visible_from(0, 1)
        else:
            target = self._first_visible_from(index + direction, direction)
        if target:
            self._selected = target
            self._follow_selection()

    def _first_visible_from(self, start: int, direction: int) -> str:
        rows = self._layout.list_order
        i = start
        while 0 <= i < len(rows):
            if rows[i].visible:
                return rows[i].id
            i += direction
        return ""

    def select_parent(self) -> None:
        """Move to the hierarchy parent of the selection, if any."""
        with self._lock.write_locked():
            parent = self._parents.get(self._selected)
            if parent and parent in self._nodes and self._is_shown(parent):
                self._selected = parent
                self._follow_selection()

    def select_child(self) -> None:
        """Move to the first hierarchy child of the selection unless it is collapsed."""
        with self._lock.write_locked():
            if not self._selected or self._selected in self._collapsed:
                return
            for edge in self._edges:
                if edge.type == EdgeType.HIERARCHY and edge.from_id == self._selected:
                    if self._is_shown(edge.to_id):
                        self._selected = edge.to_id
                        self._follow_selection()
                    return

    def _is_shown(self, node_id: str) -> bool:
        for row in self._layout.list_order:
            if row.id == node_id:
                return row.visible
        return False

    def _recover_selection(self, old_id: str, old_index: int) -> None:
        """Pick a new selection after old_id stopped being shown."""
        # Nearest shown ancestor
        seen = {old_id}
        parent = self._parents.get(old_id, "")
        while parent and parent not in seen:
            if self._is_shown(parent):
                self._selected = parent
                return
            seen.add(parent)
            parent = self._parents.get(parent, "")

        # Nearest visible row around the old position
        rows = self._layout.list_order
        if rows and old_index >= 0:
            start = min(old_index, len(rows) - 1)
            nearest = self._first_visible_from(start, -1) or self._first_visible_from(start, 1)
            if nearest:
                self._selected = nearest
                return

        self._selected = self._first_visible_from(0, 1)

    # ------------------------------------------------------------------
    # Collapse
    # ------------------------------------------------------------------

    def toggle_collapse(self, node_id: str) -> None:
        """Collapse or expand an epic; anything else is ignored."""
        with self._lock.write_locked():
            node = self._nodes.get(node_id)
            if node is None or not node.is_epic:
                return
            old_index = self._layout.index_of(self._selected)
            if node_id in self._collapsed:
                self._collapsed.discard(node_id)
            else:
                self._collapsed.add(node_id)
            self._recompute_layout()
            if self._selected and not self._is_shown(self._selected):
                self._recover_selection(self._selected, old_index)
            self._reconcile_viewport()

    def is_collapsed(self, node_id: str) -> bool:
        with self._lock.read_locked():
            return node_id in self._collapsed

    # ------------------------------------------------------------------
    # Viewport
    # ------------------------------------------------------------------

    def set_viewport(self, width: int, height: int) -> None:
        """Resize the viewport; row widths depend on it, so layout is recomputed."""
        with self._lock.write_locked():
            self._viewport.width = max(width, 0)
            self._viewport.height = max(height, 0)
            self._recompute_layout()
            self._reconcile_viewport()

    def get_viewport(self) -> Viewport:
        with self._lock.read_locked():
            vp = self._viewport
            return Viewport(vp.offset_x, vp.offset_y, vp.width, vp.height)

    def _follow_selection(self) -> None:
        """Scroll the minimum amount that brings the selection fully into view."""
        pos = self._layout.positions.get(self._selected)
        if pos is None:
            return
        vp = self._viewport
        if vp.height > 0:
            if pos.y < vp.offset_y:
                vp.offset_y = pos.y
            elif pos.y + pos.h > vp.offset_y + vp.height:
                vp.offset_y = pos.y + pos.h - vp.height
        if vp.width > 0:
            if pos.x < vp.offset_x:
                vp.offset_x = pos.x
            elif pos.x + pos.w > vp.offset_x + vp.width:
                vp.offset_x = pos.x + pos.w - vp.width
        vp.offset_x = max(vp.offset_x, 0)
        vp.offset_y = max(vp.offset_y, 0)

    def _reconcile_viewport(self) -> None:
        total = len(self._layout.visible_rows())
        max_offset = max(0, total - self._viewport.height)
        self._viewport.offset_y = min(self._viewport.offset_y, max_offset)
        self._follow_selection()

    # ------------------------------------------------------------------
    # Density
    # ------------------------------------------------------------------

    def cycle_density(self) -> NodeDensity:
        """Advance compact -> standard -> detailed -> compact; returns the new density."""
        with self._lock.write_locked():
            self._density = self._density.next()
            self._recompute_layout()
            self._reconcile_viewport()
            return self._density

    def get_density(self) -> NodeDensity:
        with self._lock.read_locked():
            return self._density

    # ------------------------------------------------------------------
    # Execution-state overlay
    # ------------------------------------------------------------------

    def update_bead_state(
        self,
        bead_id: str,
        wq_status: str,
        in_backoff: bool,
        attempts: int | None = None,
    ) -> None:
        """Patch the overlay fields of one node in place. Unknown IDs are ignored."""
        with self._lock.write_locked():
            node = self._nodes.get(bead_id)
            if node is None:
                return
            node.wq_status = wq_status
            node.in_backoff = in_backoff
            if attempts is not None:
                node.attempts = attempts

    def apply_bead_states(self, getter: BeadStateGetter | None) -> None:
        """Apply getter to every node now and after every future rebuild."""
        with self._lock.write_locked():
            self._state_getter = getter
            if getter is not None:
                self._apply_states(getter)

    def _apply_states(self, getter: BeadStateGetter) -> None:
        for node_id, node in self._nodes.items():
            status, attempts, in_backoff = getter.get_bead_state(node_id)
            node.wq_status = status
            node.attempts = attempts
            node.in_backoff = in_backoff

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def get_layout(self) -> Layout:
        """Snapshot of the current layout."""
        with self._lock.read_locked():
            return self._layout.copy()

    def get_nodes(self) -> dict[str, GraphNode]:
        """Copies of all nodes keyed by ID."""
        with self._lock.read_locked():
            return {node_id: node.copy() for node_id, node in self._nodes.items()}

    def get_edges(self) -> list[GraphEdge]:
        with self._lock.read_locked():
            return list(self._edges)

    def node_count(self) -> int:
        with self._lock.read_locked():
            return len(self._nodes)

    def edge_count(self) -> int:
        with self._lock.read_locked():
            return len(self._edges)

    def child_count(self, node_id: str) -> int:
        """Number of hierarchy children of node_id."""
        with self._lock.read_locked():
            return self._child_count(node_id)

    def _child_count(self, node_id: str) -> int:
        return sum(1 for e in self._edges if e.type == EdgeType.HIERARCHY and e.from_id == node_id)

    def dependency_count(self, node_id: str) -> int:
        """Number of beads blocking node_id."""
        with self._lock.read_locked():
            return self._dependency_count(node_id)

    def _dependency_count(self, node_id: str) -> int:
        return sum(1 for e in self._edges if e.type == EdgeType.DEPENDENCY and e.to_id == node_id)

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render_state(self) -> render.RenderState:
        """Consistent snapshot of everything the renderer needs."""
        with self._lock.read_locked():
            highlight = None
            if self._active_top_level and self._active_top_level in self._nodes:
                highlight = compute_descendants(self._active_top_level, self._parents)
            return render.RenderState(
                layout=self._layout.copy(),
                nodes={node_id: node.copy() for node_id, node in self._nodes.items()},
                density=self._density,
                selected=self._selected,
                current_bead=self._current_bead,
                collapsed=set(self._collapsed),
                child_counts={n: self._child_count(n) for n in self._collapsed},
                dep_counts={n: self._dependency_count(n) for n in self._nodes},
                highlight=highlight,
                offset_y=self._viewport.offset_y,
            )

    def render(self, width: int, height: int) -> str:
        """Render the graph as a width x height block of plain text."""
        return render.render_plain(self.render_state(), width, height)

    def render_text(self, width: int, height: int) -> Text:
        """Render the graph as styled rich Text for the dashboard."""
        return render.render_text(self.render_state(), width, height)
