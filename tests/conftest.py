"""Shared test fixtures for beadview tests."""

import copy

import pytest

from beadview.exceptions import BeadNotFoundError
from beadview.graph_types import PARENT_CHILD, BLOCKS, BeadReference, GraphBead


def build_bead(
    bead_id: str,
    title: str | None = None,
    status: str = "open",
    issue_type: str = "task",
    priority: int = 2,
    parent: str = "",
    depends_on: tuple[str, ...] = (),
    closed_at: str = "",
) -> GraphBead:
    """Build a GraphBead; parent adds a parent-child dependency, depends_on adds blocks ones."""
    deps = []
    if parent:
        deps.append(BeadReference(id=parent, dependency_type=PARENT_CHILD))
    deps.extend(BeadReference(id=d, dependency_type=BLOCKS) for d in depends_on)
    return GraphBead(
        id=bead_id,
        title=title if title is not None else f"Bead {bead_id}",
        status=status,
        priority=priority,
        issue_type=issue_type,
        parent=parent,
        closed_at=closed_at,
        dependencies=deps,
        dependency_count=len(deps),
    )


class MockFetcher:
    """In-memory BeadFetcher with per-view bead lists."""

    def __init__(self, active=None, backlog=None, closed=None, extra=None):
        self.active = list(active or [])
        self.backlog = list(backlog or [])
        self.closed = list(closed or [])
        # Beads only reachable through fetch_bead (out-of-view lookups)
        self.extra = {b.id: b for b in extra or []}
        self.error: Exception | None = None
        self.fetch_bead_calls: list[str] = []

    def _list(self, beads):
        if self.error is not None:
            raise self.error
        return copy.deepcopy(beads)

    def fetch_active(self):
        return self._list(self.active)

    def fetch_backlog(self):
        return self._list(self.backlog)

    def fetch_closed(self):
        return self._list(self.closed)

    def fetch_bead(self, bead_id):
        self.fetch_bead_calls.append(bead_id)
        for bead in [*self.active, *self.backlog, *self.closed, *self.extra.values()]:
            if bead.id == bead_id:
                return copy.deepcopy(bead)
        raise BeadNotFoundError(bead_id)


@pytest.fixture
def make_bead():
    """Factory fixture for GraphBead records."""
    return build_bead


@pytest.fixture
def epic_beads():
    """Epic E with tasks A and B; B is blocked by A."""
    return [
        build_bead("E", "Epic", issue_type="epic"),
        build_bead("A", "Alpha", parent="E"),
        build_bead("B", "Beta", parent="E", depends_on=("A",)),
    ]


@pytest.fixture
def mock_fetcher(epic_beads):
    """MockFetcher whose active view is the epic_beads set."""
    return MockFetcher(active=epic_beads)


@pytest.fixture
def fetcher_factory():
    """The MockFetcher class, for tests that need their own bead sets."""
    return MockFetcher
