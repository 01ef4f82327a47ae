"""BeadDetailModal screen for the full-screen view of one bead."""

from __future__ import annotations

from textual.app import ComposeResult
from textual.binding import Binding
from textual.containers import Container, VerticalScroll
from textual.screen import ModalScreen
from textual.widgets import Label

from beadview.format import strip_ansi
from beadview.graph_types import BeadReference, GraphBead
from beadview.render import priority_label, status_icon


def _reference_rows(refs: list[BeadReference]) -> list[str]:
    return [f"{status_icon(ref.status)} {ref.id}  {ref.title}  ({ref.dependency_type or 'blocks'})" for ref in refs]


class BeadDetailModal(ModalScreen):
    """Modal overlay showing every field of a bead.

    Opened by pressing Enter a second time on the graph pane's inline
    detail view. Press Escape to close.
    """

    BINDINGS = [Binding("escape", "dismiss", "Close", show=True)]

    DEFAULT_CSS = """
    BeadDetailModal {
        align: center middle;
    }
    #bead-dialog {
        width: 90%;
        height: 90%;
        border: thick $panel-lighten-2;
        background: $surface;
        padding: 1 2;
    }
    .modal-title {
        text-style: bold;
        color: #ffa726;
    }
    .detail-section-header {
        text-style: bold;
        margin-top: 1;
    }
    .dim-text {
        color: #616161;
    }
    """

    def __init__(self, bead: GraphBead, **kwargs: object) -> None:
        super().__init__(**kwargs)
        self._bead = bead

    def compose(self) -> ComposeResult:
        bead = self._bead
        meta = "  |  ".join([
            f"{status_icon(bead.status)} {bead.status or '?'}",
            priority_label(bead.priority),
            bead.issue_type or "?",
        ])

        with Container(id="bead-dialog"):
            yield Label(f"{bead.id}  [Esc to close]", classes="modal-title")
            yield Label(bead.title or "Untitled")
            yield Label(meta, classes="dim-text")
            with VerticalScroll():
                if bead.description:
                    yield Label("DESCRIPTION", classes="detail-section-header")
                    yield Label(strip_ansi(bead.description))
                if bead.dependencies:
                    yield Label("DEPENDS ON", classes="detail-section-header")
                    for row in _reference_rows(bead.dependencies):
                        yield Label(row)
                if bead.dependents:
                    yield Label("DEPENDENTS", classes="detail-section-header")
                    for row in _reference_rows(bead.dependents):
                        yield Label(row)
                if bead.notes:
                    yield Label("NOTES", classes="detail-section-header")
                    yield Label(strip_ansi(bead.notes))
                if bead.labels:
                    yield Label("LABELS", classes="detail-section-header")
                    yield Label(", ".join(bead.labels))

                yield Label("HISTORY", classes="detail-section-header")
                yield Label(f"Created:   {bead.created_at or '?'} by {bead.created_by or '?'}", classes="dim-text")
                if bead.updated_at:
                    yield Label(f"Updated:   {bead.updated_at}", classes="dim-text")
                if bead.closed_at:
                    yield Label(f"Closed:    {bead.closed_at}", classes="dim-text")
