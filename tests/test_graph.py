"""Tests for beadview.graph — rebuild, navigation, collapse and snapshots."""

import threading

import pytest

from beadview.config import GraphConfig
from beadview.exceptions import BeadviewError, FetchError
from beadview.graph import Graph, resolve_missing
from beadview.graph_types import EdgeType, GraphView, NodeDensity
from tests.conftest import MockFetcher, build_bead


def _order(graph: Graph) -> list[str]:
    return [row.id for row in graph.get_layout().list_order]


@pytest.fixture
def graph(epic_beads):
    """Graph built from the epic_beads set (E -> A, B; A blocks B)."""
    g = Graph()
    g.rebuild_from_beads(epic_beads)
    return g


class FakeStateGetter:
    def __init__(self, states):
        self.states = states

    def get_bead_state(self, bead_id):
        return self.states.get(bead_id, ("", 0, False))


# ---------------------------------------------------------------------------
# Rebuild
# ---------------------------------------------------------------------------


class TestRebuild:
    """Tests for Graph.rebuild_from_beads()."""

    def test_epic_with_two_children(self, graph):
        assert graph.node_count() == 3
        assert graph.edge_count() == 3
        layout = graph.get_layout()
        assert [(r.id, r.depth) for r in layout.list_order] == [("E", 0), ("A", 1), ("B", 1)]

    def test_edge_types(self, graph):
        edges = graph.get_edges()
        assert sum(1 for e in edges if e.type == EdgeType.HIERARCHY) == 2
        assert sum(1 for e in edges if e.type == EdgeType.DEPENDENCY) == 1
        assert graph.dependency_count("B") == 1
        assert graph.child_count("E") == 2

    def test_first_row_is_auto_selected(self, graph):
        assert graph.get_selected_id() == "E"

    def test_empty_rebuild_clears_selection(self, graph):
        graph.rebuild_from_beads([])
        assert graph.node_count() == 0
        assert graph.get_selected_id() == ""
        assert graph.get_selected() is None

    def test_selection_survives_rebuild(self, graph, epic_beads):
        graph.select("B")
        graph.rebuild_from_beads(epic_beads)
        assert graph.get_selected_id() == "B"

    def test_vanished_selection_falls_back_to_first_row(self, graph, epic_beads):
        graph.select("B")
        graph.rebuild_from_beads(epic_beads[:2])
        assert graph.get_selected_id() == "E"

    def test_collapse_survives_rebuild(self, graph, epic_beads):
        graph.toggle_collapse("E")
        graph.rebuild_from_beads(epic_beads)
        assert graph.is_collapsed("E")
        assert _order(graph) == ["E"]

    def test_collapse_dropped_when_epic_disappears(self, graph, epic_beads):
        graph.toggle_collapse("E")
        graph.rebuild_from_beads(epic_beads[1:])
        assert not graph.is_collapsed("E")

    def test_duplicate_edges_are_merged(self):
        g = Graph()
        g.rebuild_from_beads([
            build_bead("P", issue_type="epic"),
            build_bead("C", parent="P"),
        ])
        assert g.edge_count() == 1


class TestOutOfView:
    """Tests for dependency sources outside the fetched batch."""

    def test_resolved_sources_are_dimmed_nodes(self):
        beads = [build_bead("B", parent="E", depends_on=("A",))]
        resolved = {
            "E": build_bead("E", "Epic", issue_type="epic"),
            "A": build_bead("A", "Alpha", status="deferred"),
        }
        g = Graph()
        g.rebuild_from_beads(beads, resolved)
        nodes = g.get_nodes()
        assert nodes["E"].out_of_view and nodes["E"].is_epic
        assert nodes["A"].out_of_view
        assert nodes["A"].title == "Alpha"
        assert not nodes["B"].out_of_view

    def test_out_of_view_roots_sort_after_in_view_roots(self):
        beads = [build_bead("M"), build_bead("B", depends_on=("A",))]
        g = Graph()
        g.rebuild_from_beads(beads, {"A": build_bead("A")})
        assert _order(g) == ["B", "M", "A"]

    def test_unresolved_source_becomes_placeholder(self):
        g = Graph()
        g.rebuild_from_beads([build_bead("B", depends_on=("gone",))], {"gone": None})
        node = g.get_nodes()["gone"]
        assert node.title == "?"
        assert node.status == "?"
        assert node.out_of_view

    def test_source_missing_from_resolved_is_placeholder(self):
        g = Graph()
        g.rebuild_from_beads([build_bead("B", depends_on=("gone",))])
        assert g.get_nodes()["gone"].title == "?"

    def test_auto_select_skips_out_of_view(self):
        beads = [build_bead("B", parent="E")]
        g = Graph()
        g.rebuild_from_beads(beads, {"E": build_bead("E", issue_type="epic")})
        assert _order(g) == ["E", "B"]
        assert g.get_selected_id() == "B"

    def test_resolve_missing_looks_up_each_source_once(self):
        fetcher = MockFetcher(extra=[build_bead("A")])
        beads = [
            build_bead("B", depends_on=("A", "gone")),
            build_bead("C", depends_on=("A",)),
        ]
        resolved = resolve_missing(fetcher, beads)
        assert resolved["A"].id == "A"
        assert resolved["gone"] is None
        assert fetcher.fetch_bead_calls == ["A", "gone"]

    def test_resolve_missing_skips_present_beads(self, epic_beads):
        fetcher = MockFetcher()
        assert resolve_missing(fetcher, epic_beads) == {}
        assert fetcher.fetch_bead_calls == []


class TestRefresh:
    """Tests for Graph.refresh()."""

    def test_refresh_fetches_current_view(self, fetcher_factory):
        fetcher = fetcher_factory(
            active=[build_bead("a")],
            backlog=[build_bead("b", status="deferred")],
        )
        g = Graph(fetcher=fetcher)
        g.refresh()
        assert _order(g) == ["a"]
        g.set_view(GraphView.BACKLOG)
        g.refresh()
        assert _order(g) == ["b"]

    def test_refresh_resolves_out_of_view(self, fetcher_factory):
        fetcher = fetcher_factory(
            active=[build_bead("B", parent="E")],
            extra=[build_bead("E", issue_type="epic")],
        )
        g = Graph(fetcher=fetcher)
        g.refresh()
        assert g.get_nodes()["E"].out_of_view
        assert fetcher.fetch_bead_calls == ["E"]

    def test_refresh_without_fetcher_raises(self):
        with pytest.raises(BeadviewError):
            Graph().refresh()

    def test_fetch_error_leaves_graph_untouched(self, mock_fetcher):
        g = Graph(fetcher=mock_fetcher)
        g.refresh()
        mock_fetcher.error = FetchError("br list failed")
        with pytest.raises(FetchError):
            g.refresh()
        assert g.node_count() == 3


# ---------------------------------------------------------------------------
# Navigation
# ---------------------------------------------------------------------------


class TestNavigation:
    """Tests for select, select_next/prev and select_parent/child."""

    def test_next_and_prev_walk_rows(self, graph):
        graph.select_next()
        assert graph.get_selected_id() == "A"
        graph.select_next()
        assert graph.get_selected_id() == "B"
        graph.select_prev()
        assert graph.get_selected_id() == "A"

    def test_next_then_prev_round_trip_across_collapsed_epic(self):
        g = Graph()
        g.rebuild_from_beads([
            build_bead("E1", issue_type="epic"),
            build_bead("a1", parent="E1"),
            build_bead("a2", parent="E1"),
            build_bead("E2", issue_type="epic"),
            build_bead("b1", parent="E2"),
            build_bead("b2", parent="E2"),
            build_bead("b3", parent="E2"),
            build_bead("E3", issue_type="epic"),
            build_bead("c1", parent="E3"),
            build_bead("t1"),
            build_bead("t2"),
        ])
        g.toggle_collapse("E2")
        rows = [row.id for row in g.get_layout().list_order if row.visible]
        assert rows == ["E1", "a1", "a2", "E2", "E3", "c1", "t1", "t2"]

        for start_index, start in enumerate(rows):
            for steps in range(1, len(rows) - start_index):
                g.select(start)
                seen = []
                for _ in range(steps):
                    g.select_next()
                    seen.append(g.get_selected_id())
                assert seen == rows[start_index + 1:start_index + 1 + steps]
                for _ in range(steps):
                    g.select_prev()
                assert g.get_selected_id() == start

    def test_next_on_last_row_is_noop(self, graph):
        graph.select("B")
        graph.select_next()
        assert graph.get_selected_id() == "B"

    def test_prev_on_first_row_is_noop(self, graph):
        graph.select_prev()
        assert graph.get_selected_id() == "E"

    def test_next_on_empty_graph_is_noop(self):
        g = Graph()
        g.rebuild_from_beads([])
        g.select_next()
        assert g.get_selected_id() == ""

    def test_parent_and_child(self, graph):
        graph.select("B")
        graph.select_parent()
        assert graph.get_selected_id() == "E"
        graph.select_child()
        assert graph.get_selected_id() == "A"

    def test_parent_of_root_is_noop(self, graph):
        graph.select_parent()
        assert graph.get_selected_id() == "E"

    def test_child_of_leaf_is_noop(self, graph):
        graph.select("A")
        graph.select_child()
        assert graph.get_selected_id() == "A"

    def test_child_of_collapsed_is_noop(self, graph):
        graph.toggle_collapse("E")
        graph.select_child()
        assert graph.get_selected_id() == "E"

    def test_select_unknown_is_ignored(self, graph):
        graph.select("nope")
        assert graph.get_selected_id() == "E"

    def test_select_hidden_is_ignored(self, graph):
        graph.toggle_collapse("E")
        graph.select("A")
        assert graph.get_selected_id() == "E"

    def test_dependency_edges_are_not_children(self):
        g = Graph()
        g.rebuild_from_beads([build_bead("A"), build_bead("B", depends_on=("A",))])
        g.select("A")
        g.select_child()
        assert g.get_selected_id() == "A"


# ---------------------------------------------------------------------------
# Collapse
# ---------------------------------------------------------------------------


class TestCollapse:
    """Tests for Graph.toggle_collapse()."""

    def test_collapse_hides_children(self, graph):
        graph.toggle_collapse("E")
        assert graph.is_collapsed("E")
        assert _order(graph) == ["E"]

    def test_round_trip_restores_order(self, graph):
        before = graph.get_layout().list_order
        graph.toggle_collapse("E")
        graph.toggle_collapse("E")
        assert not graph.is_collapsed("E")
        assert graph.get_layout().list_order == before

    def test_non_epic_is_ignored(self, graph):
        graph.toggle_collapse("A")
        assert not graph.is_collapsed("A")
        assert _order(graph) == ["E", "A", "B"]

    def test_hidden_selection_moves_to_ancestor(self, graph):
        graph.select("B")
        graph.toggle_collapse("E")
        assert graph.get_selected_id() == "E"

    def test_hidden_selection_climbs_past_hidden_ancestors(self):
        """T sits under epic S under epic E; collapsing E hides both T and S."""
        g = Graph()
        g.rebuild_from_beads([
            build_bead("E", issue_type="epic"),
            build_bead("S", issue_type="epic", parent="E"),
            build_bead("T", parent="S"),
            build_bead("Z"),
        ])
        g.select("T")
        g.toggle_collapse("E")
        assert g.get_selected_id() == "E"
        assert _order(g) == ["E", "Z"]

    def test_visible_selection_is_kept(self, graph):
        graph.rebuild_from_beads([build_bead("E", issue_type="epic"), build_bead("A", parent="E"), build_bead("X")])
        graph.select("X")
        graph.toggle_collapse("E")
        assert graph.get_selected_id() == "X"


# ---------------------------------------------------------------------------
# Viewport
# ---------------------------------------------------------------------------


class TestViewport:
    """Tests for viewport sizing and selection following."""

    @pytest.fixture
    def tall_graph(self):
        g = Graph()
        g.rebuild_from_beads([build_bead(f"b{i}") for i in range(6)])
        g.set_viewport(40, 3)
        return g

    def test_selection_scrolls_into_view(self, tall_graph):
        for _ in range(4):
            tall_graph.select_next()
        assert tall_graph.get_selected_id() == "b4"
        assert tall_graph.get_viewport().offset_y == 2

    def test_scrolling_back_up(self, tall_graph):
        tall_graph.select("b5")
        tall_graph.select("b0")
        assert tall_graph.get_viewport().offset_y == 0

    def test_shrinking_graph_clamps_offset(self, tall_graph):
        tall_graph.select("b5")
        tall_graph.rebuild_from_beads([build_bead("b0"), build_bead("b1")])
        assert tall_graph.get_viewport().offset_y == 0

    def test_viewport_width_drives_row_width(self, tall_graph):
        assert tall_graph.get_layout().positions["b0"].w == 40
        tall_graph.set_viewport(20, 3)
        assert tall_graph.get_layout().positions["b0"].w == 20

    def test_viewport_is_a_copy(self, tall_graph):
        tall_graph.get_viewport().offset_y = 99
        assert tall_graph.get_viewport().offset_y == 0


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


class TestSettings:
    """Tests for view, density, epic filter and highlight settings."""

    def test_cycle_view(self):
        g = Graph()
        assert g.get_view() == GraphView.ACTIVE
        assert g.cycle_view() == GraphView.BACKLOG
        assert g.cycle_view() == GraphView.CLOSED
        assert g.cycle_view() == GraphView.ACTIVE

    def test_density_from_config_and_cycle(self):
        g = Graph(GraphConfig(density="compact"))
        assert g.get_density() == NodeDensity.COMPACT
        assert g.cycle_density() == NodeDensity.STANDARD

    def test_epic_filter_marks_out_of_scope(self, epic_beads):
        g = Graph(GraphConfig(epic="E"))
        g.rebuild_from_beads([*epic_beads, build_bead("X")])
        nodes = g.get_nodes()
        assert not nodes["E"].out_of_scope
        assert not nodes["B"].out_of_scope
        assert nodes["X"].out_of_scope

    def test_clearing_epic_filter(self, epic_beads):
        g = Graph()
        g.rebuild_from_beads([*epic_beads, build_bead("X")])
        g.set_epic_filter("E")
        assert g.get_nodes()["X"].out_of_scope
        g.set_epic_filter(None)
        assert g.get_epic_filter() == ""
        assert not g.get_nodes()["X"].out_of_scope

    def test_auto_select_skips_out_of_scope(self):
        g = Graph(GraphConfig(epic="E"))
        g.rebuild_from_beads([
            build_bead("E", issue_type="epic"),
            build_bead("A", parent="E"),
            build_bead("D", issue_type="epic"),
        ])
        assert _order(g) == ["D", "E", "A"]
        assert g.get_selected_id() == "E"

    def test_current_bead_and_active_top_level(self, graph):
        graph.set_current_bead("A")
        graph.set_active_top_level("E")
        assert graph.get_current_bead() == "A"
        assert graph.get_active_top_level() == "E"
        assert graph.render_state().highlight == {"E", "A", "B"}

    def test_highlight_unset(self, graph):
        assert graph.render_state().highlight is None


# ---------------------------------------------------------------------------
# Execution-state overlay
# ---------------------------------------------------------------------------


class TestOverlay:
    """Tests for update_bead_state() and apply_bead_states()."""

    def test_update_patches_one_node(self, graph):
        graph.update_bead_state("A", "failed", True, attempts=3)
        node = graph.get_nodes()["A"]
        assert node.wq_status == "failed"
        assert node.in_backoff
        assert node.attempts == 3

    def test_update_unknown_is_ignored(self, graph):
        graph.update_bead_state("nope", "failed", True)
        assert "nope" not in graph.get_nodes()

    def test_getter_is_reapplied_after_rebuild(self, graph, epic_beads):
        graph.apply_bead_states(FakeStateGetter({"B": ("abandoned", 2, False)}))
        assert graph.get_nodes()["B"].wq_status == "abandoned"
        graph.rebuild_from_beads(epic_beads)
        node = graph.get_nodes()["B"]
        assert node.wq_status == "abandoned"
        assert node.attempts == 2

    def test_manual_update_lost_on_rebuild_without_getter(self, graph, epic_beads):
        graph.update_bead_state("A", "failed", True)
        graph.rebuild_from_beads(epic_beads)
        assert graph.get_nodes()["A"].wq_status == ""


# ---------------------------------------------------------------------------
# Snapshots and concurrency
# ---------------------------------------------------------------------------


class TestSnapshots:
    """Tests for copy semantics and concurrent access."""

    def test_nodes_are_copies(self, graph):
        graph.get_nodes()["A"].title = "changed"
        assert graph.get_nodes()["A"].title == "Alpha"

    def test_selected_is_a_copy(self, graph):
        graph.get_selected().title = "changed"
        assert graph.get_nodes()["E"].title == "Epic"

    def test_layout_is_a_copy(self, graph):
        graph.get_layout().list_order.clear()
        assert len(graph.get_layout().list_order) == 3

    def test_render_while_rebuilding(self, epic_beads):
        """Renders from other threads always see a complete graph."""
        g = Graph()
        g.rebuild_from_beads(epic_beads)
        errors = []

        def render_loop():
            try:
                for _ in range(200):
                    state = g.render_state()
                    for row in state.layout.list_order:
                        assert row.id in state.nodes
            except AssertionError as e:
                errors.append(e)

        threads = [threading.Thread(target=render_loop) for _ in range(3)]
        for t in threads:
            t.start()
        for i in range(100):
            g.rebuild_from_beads(epic_beads if i % 2 else epic_beads[:1])
        for t in threads:
            t.join()
        assert errors == []

    def test_render_returns_block(self, graph):
        lines = graph.render(30, 5).split("\n")
        assert len(lines) == 5
        assert all(len(line) == 30 for line in lines)
