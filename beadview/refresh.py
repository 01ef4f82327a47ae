"""Staleness-safe background refresh for the graph pane.

Every fetch is tagged with a monotonically increasing request number. The
tag and the loading flag are updated *before* the fetch is dispatched, and a
result is only applied if its tag still matches when it completes; anything
else was superseded by a newer request and is dropped without a trace.

The coordinator is framework-agnostic. It needs two hooks from its host:
- dispatch(coro): run a coroutine detached from the caller
- schedule(delay, callback): call callback once after delay seconds

By default both use the running asyncio loop; the Textual pane passes
run_worker and set_timer instead.
"""

import asyncio
import logging
from functools import partial
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

from .config import MIN_AUTO_REFRESH_INTERVAL
from .exceptions import BeadviewError, RequestCancelledError
from .fetcher import BeadFetcher, fetch_view
from .format import pluralize
from .graph import Graph, resolve_missing
from .graph_types import GraphBead, GraphView

logger = logging.getLogger(__name__)

# Absolute deadline for a single-bead detail fetch, in seconds
DETAIL_TIMEOUT = 10.0

# Loading indicator frame interval, in seconds
SPINNER_INTERVAL = 0.1

SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"

KEY_HINTS = "j/k move  h/l parent/child  c collapse  d density  a view  R refresh  enter detail"

Dispatch = Callable[[Coroutine[Any, Any, None]], Any]
Schedule = Callable[[float, Callable[[], None]], Any]


def _loop_dispatch(coro: Coroutine[Any, Any, None]) -> asyncio.Task:
    return asyncio.get_running_loop().create_task(coro)


def _loop_schedule(delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
    return asyncio.get_running_loop().call_later(delay, callback)


def _error_text(error: Exception) -> str:
    return str(error) or type(error).__name__


@dataclass
class RequestTracker:
    """Tag, loading flag and error string for one request sequence."""

    tag: int = 0
    loading: bool = False
    error: str = ""
    task: Any = field(default=None, repr=False)

    def begin(self) -> int:
        """Start a new request; returns its tag."""
        self.tag += 1
        self.loading = True
        self.error = ""
        self.task = None
        return self.tag

    def is_current(self, tag: int) -> bool:
        return tag == self.tag

    def finish(self, tag: int, error: str = "") -> bool:
        """Apply a completion. Returns False (and changes nothing) if tag is stale."""
        if tag != self.tag:
            return False
        self.loading = False
        self.error = error
        self.task = None
        return True

    def cancel(self, error: str = str(RequestCancelledError())) -> None:
        """Abort the in-flight request, if any, and clear loading at once."""
        task = self.task
        self.tag += 1
        self.loading = False
        self.error = error
        self.task = None
        if task is not None and hasattr(task, "cancel"):
            task.cancel()


class RefreshCoordinator:
    """Drives list refreshes, auto-refresh, the loading spinner and the detail flow."""

    def __init__(
        self,
        graph: Graph,
        fetcher: BeadFetcher,
        interval: float | None = None,
        dispatch: Dispatch | None = None,
        schedule: Schedule | None = None,
        is_visible: Callable[[], bool] | None = None,
        on_change: Callable[[], None] | None = None,
        on_open_full_screen: Callable[[GraphBead], None] | None = None,
        detail_timeout: float = DETAIL_TIMEOUT,
    ):
        self.graph = graph
        self.fetcher = fetcher
        # Non-positive disables auto-refresh; anything shorter than the floor is raised to it
        self.interval = max(interval, MIN_AUTO_REFRESH_INTERVAL) if interval and interval > 0 else None
        self.detail_timeout = detail_timeout
        self._dispatch = dispatch or _loop_dispatch
        self._schedule = schedule or _loop_schedule
        self._is_visible = is_visible or (lambda: True)
        self._on_change = on_change or (lambda: None)
        self._on_open_full_screen = on_open_full_screen or (lambda bead: None)

        self.list_request = RequestTracker()
        self.detail_request = RequestTracker()
        self.detail_visible = False
        self.detail_id = ""
        self.detail_bead: GraphBead | None = None

        self._auto_running = False
        # Bumped on every start and stop; ticks from an older chain end themselves
        self._auto_generation = 0
        self._spinner_running = False
        self.spinner_frame = 0

    @property
    def loading(self) -> bool:
        return self.list_request.loading or self.detail_request.loading

    # ------------------------------------------------------------------
    # List refresh
    # ------------------------------------------------------------------

    def refresh(self) -> int:
        """Start a list refresh for the graph's current view; returns its tag."""
        tag = self.list_request.begin()
        view = self.graph.get_view()
        logger.debug("Dispatching %s refresh (tag %d)", view.value, tag)
        self.list_request.task = self._dispatch(self._run_list(tag, view))
        self._start_spinner()
        self._on_change()
        return tag

    async def _run_list(self, tag: int, view: GraphView) -> None:
        try:
            beads, resolved = await asyncio.to_thread(self._fetch_list, view)
        except Exception as e:
            if not self.list_request.is_current(tag):
                logger.debug("Discarding stale refresh error (tag %d, current %d)", tag, self.list_request.tag)
                return
            logger.exception("Refresh failed")
            self.list_request.finish(tag, error=_error_text(e))
            self._on_change()
            return

        if not self.list_request.is_current(tag):
            logger.debug("Discarding stale refresh result (tag %d, current %d)", tag, self.list_request.tag)
            return
        self.graph.rebuild_from_beads(beads, resolved)
        self.list_request.finish(tag)
        self._on_change()

    def _fetch_list(self, view: GraphView) -> tuple[list[GraphBead], dict[str, GraphBead | None]]:
        beads = fetch_view(self.fetcher, view)
        return beads, resolve_missing(self.fetcher, beads)

    def cycle_view(self) -> GraphView:
        """Switch to the next view and refresh it."""
        view = self.graph.cycle_view()
        self.refresh()
        return view

    def clear_error(self) -> None:
        self.list_request.error = ""
        self._on_change()

    # ------------------------------------------------------------------
    # Auto-refresh
    # ------------------------------------------------------------------

    def start_auto_refresh(self) -> None:
        """Begin the self-rescheduling auto-refresh timer (no-op if disabled)."""
        if self.interval is None or self._auto_running:
            return
        self._auto_running = True
        self._auto_generation += 1
        self._schedule(self.interval, partial(self._auto_tick, self._auto_generation))

    def stop_auto_refresh(self) -> None:
        self._auto_running = False
        self._auto_generation += 1

    def _auto_tick(self, generation: int) -> None:
        if not self._auto_running or self.interval is None or generation != self._auto_generation:
            return
        self._schedule(self.interval, partial(self._auto_tick, generation))
        if self._is_visible():
            self.refresh()

    # ------------------------------------------------------------------
    # Loading indicator
    # ------------------------------------------------------------------

    def _start_spinner(self) -> None:
        if self._spinner_running:
            return
        self._spinner_running = True
        self._schedule(SPINNER_INTERVAL, self._spinner_tick)

    def _spinner_tick(self) -> None:
        if not self.loading:
            self._spinner_running = False
            return
        self.spinner_frame = (self.spinner_frame + 1) % len(SPINNER_FRAMES)
        self._on_change()
        self._schedule(SPINNER_INTERVAL, self._spinner_tick)

    def status_line(self) -> str:
        """One-line pane status: error, or view, density, count and hints."""
        if self.list_request.error:
            return f"Error: {self.list_request.error}"
        parts = [
            self.graph.get_view().value,
            self.graph.get_density().value,
            pluralize(self.graph.node_count(), "node", "nodes"),
        ]
        status = " | ".join(parts)
        if self.list_request.loading:
            status += f"  {SPINNER_FRAMES[self.spinner_frame]} refreshing"
        return f"{status}  {KEY_HINTS}"

    # ------------------------------------------------------------------
    # Detail flow
    # ------------------------------------------------------------------

    def open_detail(self) -> None:
        """First activation fetches detail inline; a second one goes full screen."""
        if self.detail_visible:
            if self.detail_bead is not None:
                self._on_open_full_screen(self.detail_bead)
            return
        bead_id = self.graph.get_selected_id()
        if not bead_id:
            return
        self.detail_visible = True
        self.detail_id = bead_id
        self.detail_bead = None
        tag = self.detail_request.begin()
        self.detail_request.task = self._dispatch(self._run_detail(tag, bead_id))
        self._start_spinner()
        self._on_change()

    async def _run_detail(self, tag: int, bead_id: str) -> None:
        try:
            bead = await asyncio.wait_for(
                asyncio.to_thread(self.fetcher.fetch_bead, bead_id),
                timeout=self.detail_timeout,
            )
        except asyncio.TimeoutError:
            self._finish_detail(tag, None, f"timed out fetching {bead_id}")
            return
        except BeadviewError as e:
            self._finish_detail(tag, None, str(e))
            return
        except Exception as e:
            logger.exception("Detail fetch for %s failed", bead_id)
            self._finish_detail(tag, None, _error_text(e))
            return
        self._finish_detail(tag, bead, "")

    def _finish_detail(self, tag: int, bead: GraphBead | None, error: str) -> None:
        if not self.detail_request.finish(tag, error=error):
            logger.debug("Discarding stale detail result (tag %d, current %d)", tag, self.detail_request.tag)
            return
        self.detail_bead = bead
        self._on_change()

    def cancel_detail(self) -> None:
        """Abort an in-flight detail fetch; surfaces as a "cancelled" error."""
        if self.detail_request.loading:
            self.detail_request.cancel()
            self._on_change()

    def close_detail(self) -> None:
        """Hide the detail view and forget any in-flight fetch for it."""
        if self.detail_request.loading:
            self.detail_request.cancel(error="")
        self.detail_visible = False
        self.detail_id = ""
        self.detail_bead = None
        self._on_change()
