"""Beadview Dashboard — Textual TUI app.

Launch with: python -m packages.dashboard
"""

from __future__ import annotations

import logging

from textual.app import App, ComposeResult
from textual.binding import Binding
from textual.widgets import Footer, Header, Static

from beadview.config import GraphConfig
from beadview.fetcher import BeadFetcher

from .widgets.bead_detail import BeadDetailModal
from .widgets.graph_pane import BeadDetailRequested, GraphPane

logger = logging.getLogger("dashboard")


class BeadviewDashboard(App):
    """Bead graph dashboard built with Textual.

    One pane shows the bead graph for the current view (active, backlog or
    closed). Enter opens a bead's detail inline; Enter again opens it in a
    modal; Escape closes it.
    """

    TITLE = "Beadview"
    SUB_TITLE = "Dashboard"

    BINDINGS = [
        Binding("q", "quit", "Quit", show=True),
    ]

    def __init__(
        self,
        graph_config: GraphConfig,
        fetcher: BeadFetcher,
        layout: str = "horizontal",
        **kwargs: object,
    ) -> None:
        super().__init__(**kwargs)
        self._graph_config = graph_config
        self._fetcher = fetcher
        self._layout = layout

    def compose(self) -> ComposeResult:
        yield Header()
        if self._graph_config.enabled:
            yield GraphPane(self._graph_config, self._fetcher, self._layout, id="graph-pane")
        else:
            yield Static("Graph pane disabled (graph.enabled in .beadview/config.yaml)", id="graph-disabled")
        yield Footer()

    def on_mount(self) -> None:
        for pane in self.query(GraphPane):
            pane.focus()

    def refresh_graph(self) -> None:
        """Refresh the graph from outside the pane (e.g. on a bead change event)."""
        if self._graph_config.refresh_on_event:
            for pane in self.query(GraphPane):
                pane.reload()

    def on_bead_detail_requested(self, event: BeadDetailRequested) -> None:
        """Open the full-screen modal for the bead shown inline."""
        self.push_screen(BeadDetailModal(event.bead))
