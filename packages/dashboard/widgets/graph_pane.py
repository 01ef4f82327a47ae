"""GraphPane widget: the bead graph with a status bar and inline detail view."""

from __future__ import annotations

from rich.text import Text
from textual.events import Key, Resize
from textual.message import Message
from textual.widget import Widget

from beadview.config import GraphConfig
from beadview.fetcher import BeadFetcher
from beadview.graph import Graph
from beadview.graph_types import GraphBead
from beadview.refresh import RefreshCoordinator
from beadview.render import detail_lines, detail_window


class BeadDetailRequested(Message):
    """Posted when the user asks for the full-screen view of a bead (second Enter)."""

    def __init__(self, bead: GraphBead) -> None:
        super().__init__()
        self.bead = bead


# Status bar takes the first row of the pane
STATUS_BAR_HEIGHT = 1


class GraphPane(Widget, can_focus=True):
    """Interactive bead graph.

    Keys while the graph is showing:
    - k/up, j/down: previous/next row
    - h/left, l/right: parent/first child
    - c: collapse or expand the selected epic
    - d: cycle density, a: cycle view, R: refresh
    - enter: show detail inline; enter again opens it full screen

    Keys while detail is showing: j/k scroll, g/G top/bottom, esc closes.
    """

    DEFAULT_CSS = """
    GraphPane {
        height: 1fr;
        width: 1fr;
        padding: 0 1;
    }
    GraphPane:focus {
        background: $boost;
    }
    """

    def __init__(
        self,
        config: GraphConfig,
        fetcher: BeadFetcher,
        layout: str = "horizontal",
        **kwargs: object,
    ) -> None:
        super().__init__(**kwargs)
        self.graph = Graph(config, fetcher, layout)
        self.coordinator = RefreshCoordinator(
            self.graph,
            fetcher,
            interval=config.effective_refresh_interval(),
            dispatch=lambda coro: self.run_worker(coro, exclusive=False),
            schedule=self.set_timer,
            is_visible=lambda: self.display,
            on_change=self.refresh,
            on_open_full_screen=self._open_full_screen,
        )
        self._detail_scroll = 0

    def on_mount(self) -> None:
        self.coordinator.refresh()
        self.coordinator.start_auto_refresh()

    def on_unmount(self) -> None:
        self.coordinator.stop_auto_refresh()

    def on_resize(self, event: Resize) -> None:
        self.graph.set_viewport(event.size.width, max(event.size.height - STATUS_BAR_HEIGHT, 0))

    def reload(self) -> None:
        """Start a refresh (also used by external triggers such as bead events)."""
        self.coordinator.refresh()

    def _open_full_screen(self, bead: GraphBead) -> None:
        self.post_message(BeadDetailRequested(bead))

    def render(self) -> Text:
        width = self.content_size.width
        height = self.content_size.height
        if self.coordinator.detail_visible:
            return self._render_detail(width, height)

        status = Text(self.coordinator.status_line()[:width], no_wrap=True)
        if self.coordinator.list_request.error:
            status.stylize("bold #ef5350")
        else:
            status.stylize("#616161")
        body = self.graph.render_text(width, max(height - STATUS_BAR_HEIGHT, 0))
        return Text("\n").join([status, body])

    def _detail_lines(self, width: int) -> list[str]:
        request = self.coordinator.detail_request
        return detail_lines(
            self.graph.get_nodes().get(self.coordinator.detail_id),
            self.coordinator.detail_bead,
            width,
            loading=request.loading,
            error=request.error,
        )

    def _render_detail(self, width: int, height: int) -> Text:
        window = detail_window(self._detail_lines(width), self._detail_scroll, height)
        text = Text("\n".join(window), no_wrap=True, overflow="crop")
        if window:
            text.stylize("bold #ffa726", 0, len(window[0]))
        return text

    def on_key(self, event: Key) -> None:
        key = event.key
        if event.character and len(event.character) == 1 and event.character.isalpha():
            key = event.character

        if self.coordinator.detail_visible and self._handle_detail_key(key):
            event.stop()
            return
        if self._handle_graph_key(key):
            event.stop()
            self.refresh()

    def _handle_detail_key(self, key: str) -> bool:
        if key in ("j", "down"):
            self._detail_scroll += 1
        elif key in ("k", "up"):
            self._detail_scroll = max(self._detail_scroll - 1, 0)
        elif key in ("g", "home"):
            self._detail_scroll = 0
        elif key in ("G", "end"):
            self._detail_scroll = self._max_detail_scroll()
        elif key == "escape":
            self.coordinator.close_detail()
            self._detail_scroll = 0
        elif key == "enter":
            self.coordinator.open_detail()
        else:
            return False
        self._detail_scroll = min(self._detail_scroll, self._max_detail_scroll())
        self.refresh()
        return True

    def _max_detail_scroll(self) -> int:
        lines = self._detail_lines(self.content_size.width)
        body = max(self.content_size.height - 2, 3)
        return max(len(lines) - body, 0)

    def _handle_graph_key(self, key: str) -> bool:
        graph = self.graph
        if key in ("k", "up"):
            graph.select_prev()
        elif key in ("j", "down"):
            graph.select_next()
        elif key in ("h", "left"):
            graph.select_parent()
        elif key in ("l", "right"):
            graph.select_child()
        elif key == "c":
            selected = graph.get_selected_id()
            if selected:
                graph.toggle_collapse(selected)
        elif key == "d":
            graph.cycle_density()
        elif key == "a":
            self.coordinator.cycle_view()
        elif key == "R":
            self.coordinator.refresh()
        elif key == "enter":
            self._detail_scroll = 0
            self.coordinator.open_detail()
        elif key == "escape":
            self.coordinator.clear_error()
        else:
            return False
        return True
