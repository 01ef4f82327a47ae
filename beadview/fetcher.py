"""Bead sources for the graph.

Three implementations of the BeadFetcher protocol:
- BRFetcher: shells out to the `br` CLI (`br list --json`, `br show <id> --json`)
- JSONLFetcher: reads the append-only `.beads/issues.jsonl` log directly
- DemoFetcher: a fixed in-memory bead set for `--demo`

All fetch calls are blocking; the refresh coordinator runs them off the
event loop.
"""

import copy
import json
import logging
import subprocess
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Protocol

from .config import SourceConfig
from .exceptions import BeadNotFoundError, ConfigError, FetchError
from .graph_types import AGENT_TYPE, BLOCKS, PARENT_CHILD, BeadReference, GraphBead, GraphView

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("open", "in_progress", "blocked")
BACKLOG_STATUSES = ("deferred",)

# Closed view shows beads closed within this window
CLOSED_WINDOW = timedelta(days=7)

# Parallel `br show` calls when enriching a list
MAX_CONCURRENT_FETCHES = 5

# Seconds before a single `br` invocation is abandoned
COMMAND_TIMEOUT = 30

ISSUES_FILE = "issues.jsonl"


class BeadFetcher(Protocol):
    """Anything that can supply bead records for the graph."""

    def fetch_active(self) -> list[GraphBead]:
        """Beads with open, in_progress or blocked status."""
        ...

    def fetch_backlog(self) -> list[GraphBead]:
        """Beads with deferred status."""
        ...

    def fetch_closed(self) -> list[GraphBead]:
        """Beads closed within the last 7 days."""
        ...

    def fetch_bead(self, bead_id: str) -> GraphBead:
        """Full details for one bead; raises BeadNotFoundError if it does not exist."""
        ...


def fetch_view(fetcher: BeadFetcher, view: GraphView) -> list[GraphBead]:
    """Fetch the bead list for a graph view."""
    if view == GraphView.BACKLOG:
        return fetcher.fetch_backlog()
    if view == GraphView.CLOSED:
        return fetcher.fetch_closed()
    return fetcher.fetch_active()


# ---------------------------------------------------------------------------
# Parsing and filtering
# ---------------------------------------------------------------------------


def parse_beads(output: str) -> list[GraphBead]:
    """Parse `br list --json` output. Empty output is an empty list.

    Raises:
        FetchError: If the output is not a JSON array of well-formed bead objects
    """
    if not output.strip():
        return []
    try:
        data = json.loads(output)
    except json.JSONDecodeError as e:
        raise FetchError(f"Failed to parse bead data: {e}") from e
    if not isinstance(data, list):
        raise FetchError(f"Expected a JSON array of beads, got {type(data).__name__}")
    beads = []
    for item in data:
        if not isinstance(item, dict):
            raise FetchError(f"Expected a bead object, got {type(item).__name__}")
        try:
            beads.append(GraphBead.from_dict(item))
        except (AttributeError, TypeError, ValueError) as e:
            raise FetchError(f"Malformed bead {item.get('id', '?')}: {e}") from e
    return beads


def parse_bead(output: str, bead_id: str = "") -> GraphBead:
    """Parse `br show <id> --json` output, an array holding one bead.

    Raises:
        BeadNotFoundError: If the array is empty
        FetchError: If the output is empty or not valid JSON
    """
    if not output.strip():
        raise FetchError("empty response")
    beads = parse_beads(output)
    if not beads:
        raise BeadNotFoundError(bead_id)
    return beads[0]


def parse_labels(output: str) -> list[str]:
    """Parse `br label list <id> --json` output."""
    if not output.strip():
        return []
    try:
        labels = json.loads(output)
    except json.JSONDecodeError as e:
        raise FetchError(f"Failed to parse labels: {e}") from e
    return [str(label) for label in labels or []]


def filter_by_status(beads: list[GraphBead], statuses: tuple[str, ...]) -> list[GraphBead]:
    return [b for b in beads if b.status in statuses]


def filter_out_agent_beads(beads: list[GraphBead]) -> list[GraphBead]:
    """Drop agent beads, which are internal tracking records."""
    return [b for b in beads if b.issue_type != AGENT_TYPE]


def parse_timestamp(value: str) -> datetime | None:
    """Parse an RFC 3339 timestamp; None if empty or malformed.

    Timestamps without an offset are taken as UTC.
    """
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def filter_closed_after(beads: list[GraphBead], cutoff: datetime) -> list[GraphBead]:
    """Keep beads whose closed_at is after cutoff; missing or bad timestamps are dropped."""
    result = []
    for bead in beads:
        closed_at = parse_timestamp(bead.closed_at)
        if closed_at is not None and closed_at > cutoff:
            result.append(bead)
    return result


def closed_cutoff(now: datetime | None = None) -> datetime:
    return (now or datetime.now(timezone.utc)) - CLOSED_WINDOW


# ---------------------------------------------------------------------------
# br CLI
# ---------------------------------------------------------------------------


class BRFetcher:
    """Fetch beads through the `br` command-line tool."""

    def __init__(self, command: str = "br", cwd: Path | None = None, timeout: int = COMMAND_TIMEOUT):
        self.command = command
        self.cwd = cwd
        self.timeout = timeout

    def _run(self, *args: str) -> str:
        """Run `br <args>` and return stdout.

        Raises:
            FetchError: On a non-zero exit, a timeout or a missing binary
        """
        cmd = [self.command, *args]
        cmd_str = " ".join(cmd)
        try:
            result = subprocess.run(
                cmd,
                cwd=self.cwd,
                capture_output=True,
                text=True,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise FetchError(f"{cmd_str} timed out after {self.timeout}s", command=cmd_str) from e
        except FileNotFoundError as e:
            raise FetchError(f"{self.command} not found", command=cmd_str) from e

        if result.returncode != 0:
            raise FetchError(
                f"{cmd_str} failed: {result.stderr.strip()}",
                command=cmd_str,
                returncode=result.returncode,
            )
        return result.stdout

    def fetch_active(self) -> list[GraphBead]:
        beads = filter_by_status(parse_beads(self._run("list", "--json")), ACTIVE_STATUSES)
        return filter_out_agent_beads(self._enrich(beads))

    def fetch_backlog(self) -> list[GraphBead]:
        beads = filter_by_status(parse_beads(self._run("list", "--json")), BACKLOG_STATUSES)
        return filter_out_agent_beads(self._enrich(beads))

    def fetch_closed(self) -> list[GraphBead]:
        # br has no --closed-after, so the 7-day window is applied here
        beads = parse_beads(self._run("list", "--status", "closed", "--json"))
        beads = filter_closed_after(beads, closed_cutoff())
        return filter_out_agent_beads(self._enrich(beads))

    def fetch_bead(self, bead_id: str) -> GraphBead:
        bead = self._show(bead_id)
        try:
            bead.labels = parse_labels(self._run("label", "list", bead_id, "--json"))
        except FetchError as e:
            logger.debug("Labels unavailable for %s: %s", bead_id, e)
        return bead

    def _show(self, bead_id: str) -> GraphBead:
        return parse_bead(self._run("show", bead_id, "--json"), bead_id)

    def _enrich(self, beads: list[GraphBead]) -> list[GraphBead]:
        """Replace each list entry with its `br show` record (which carries dependencies).

        Entries whose lookup fails keep their basic list data.
        """
        if not beads:
            return []
        result = list(beads)
        failed = []
        with ThreadPoolExecutor(max_workers=MAX_CONCURRENT_FETCHES) as pool:
            futures = [pool.submit(self._show, bead.id) for bead in beads]
            for i, future in enumerate(futures):
                try:
                    result[i] = future.result()
                except FetchError as e:
                    logger.warning("Failed to enrich bead %s, using basic data: %s", beads[i].id, e)
                    failed.append(beads[i].id)
        if failed:
            logger.warning("Enrichment partially failed: %d of %d beads (%s)", len(failed), len(beads), ", ".join(failed))
        return result


# ---------------------------------------------------------------------------
# issues.jsonl
# ---------------------------------------------------------------------------


class JSONLFetcher:
    """Read beads straight from <beads_dir>/issues.jsonl."""

    def __init__(self, beads_dir: Path):
        self.beads_dir = Path(beads_dir)

    @property
    def path(self) -> Path:
        return self.beads_dir / ISSUES_FILE

    def read_entries(self) -> list[dict[str, Any]]:
        """Parse every live entry in the log.

        A malformed last line is a partial write and skipped silently;
        malformed lines elsewhere are logged and skipped. Entries with
        deleted_at are dropped.

        Raises:
            FetchError: If the file cannot be read
        """
        try:
            text = self.path.read_text()
        except OSError as e:
            raise FetchError(f"Cannot read {self.path}: {e}") from e

        lines = [(n, line.strip()) for n, line in enumerate(text.splitlines(), start=1) if line.strip()]
        entries = []
        for i, (line_no, line) in enumerate(lines):
            try:
                entry = json.loads(line)
            except json.JSONDecodeError as e:
                if i < len(lines) - 1:
                    logger.warning("Skipping malformed JSONL line %d in %s: %s", line_no, self.path, e)
                continue
            if not isinstance(entry, dict) or entry.get("deleted_at"):
                continue
            entries.append(entry)
        return entries

    def read_all(self) -> list[GraphBead]:
        """All live beads with dependencies and dependents resolved.

        Raises:
            FetchError: If the file cannot be read or an entry has a bad field value
        """
        entries = self.read_entries()

        info: dict[str, tuple[str, str]] = {}
        dependents: dict[str, list[tuple[str, str]]] = {}
        for entry in entries:
            info[entry.get("id", "")] = (entry.get("title") or "", entry.get("status") or "")
            for dep in entry.get("dependencies") or []:
                dependents.setdefault(dep.get("depends_on_id", ""), []).append(
                    (dep.get("issue_id") or entry.get("id", ""), dep.get("type") or "")
                )

        beads = []
        for entry in entries:
            try:
                bead = GraphBead.from_dict({k: v for k, v in entry.items() if k not in ("dependencies", "dependents")})
            except (TypeError, ValueError) as e:
                raise FetchError(f"Malformed bead {entry.get('id', '?')} in {self.path}: {e}") from e
            deps = entry.get("dependencies") or []
            bead.dependencies = [
                BeadReference(
                    id=dep.get("depends_on_id", ""),
                    title=info.get(dep.get("depends_on_id", ""), ("", ""))[0],
                    status=info.get(dep.get("depends_on_id", ""), ("", ""))[1],
                    dependency_type=dep.get("type") or "",
                )
                for dep in deps
            ]
            bead.dependency_count = len(deps)
            refs = dependents.get(bead.id, [])
            bead.dependents = [
                BeadReference(
                    id=dep_id,
                    title=info.get(dep_id, ("", ""))[0],
                    status=info.get(dep_id, ("", ""))[1],
                    dependency_type=dep_type,
                )
                for dep_id, dep_type in refs
            ]
            bead.dependent_count = len(refs)
            beads.append(bead)
        return beads

    def fetch_active(self) -> list[GraphBead]:
        return filter_out_agent_beads(filter_by_status(self.read_all(), ACTIVE_STATUSES))

    def fetch_backlog(self) -> list[GraphBead]:
        return filter_out_agent_beads(filter_by_status(self.read_all(), BACKLOG_STATUSES))

    def fetch_closed(self) -> list[GraphBead]:
        beads = filter_by_status(self.read_all(), ("closed",))
        return filter_out_agent_beads(filter_closed_after(beads, closed_cutoff()))

    def fetch_bead(self, bead_id: str) -> GraphBead:
        for bead in self.read_all():
            if bead.id == bead_id:
                return bead
        raise BeadNotFoundError(bead_id)


# ---------------------------------------------------------------------------
# Demo data
# ---------------------------------------------------------------------------


def _demo_bead(
    bead_id: str,
    title: str,
    status: str,
    issue_type: str = "task",
    priority: int = 2,
    parent: str = "",
    blocked_by: tuple[str, ...] = (),
    closed_at: str = "",
) -> GraphBead:
    deps = []
    if parent:
        deps.append(BeadReference(id=parent, dependency_type=PARENT_CHILD))
    deps.extend(BeadReference(id=b, dependency_type=BLOCKS) for b in blocked_by)
    return GraphBead(
        id=bead_id,
        title=title,
        description=f"Demo bead {bead_id}.",
        status=status,
        priority=priority,
        issue_type=issue_type,
        created_at="2026-01-05T09:00:00Z",
        created_by="demo",
        updated_at="2026-01-06T12:30:00Z",
        closed_at=closed_at,
        parent=parent,
        dependencies=deps,
        dependency_count=len(deps),
    )


class DemoFetcher:
    """Fixed sample data so the dashboard can be tried without a tracker."""

    def __init__(self) -> None:
        recently = (datetime.now(timezone.utc) - timedelta(days=1)).strftime("%Y-%m-%dT%H:%M:%SZ")
        self._beads = [
            _demo_bead("bd-1", "Authentication overhaul", "in_progress", "epic", priority=1),
            _demo_bead("bd-2", "Login form", "in_progress", parent="bd-1"),
            _demo_bead("bd-3", "Session store", "blocked", parent="bd-1", blocked_by=("bd-2",)),
            _demo_bead("bd-4", "Password reset emails", "open", parent="bd-1", blocked_by=("bd-9",)),
            _demo_bead("bd-5", "Reporting", "open", "epic", priority=2),
            _demo_bead("bd-6", "Weekly summary export", "open", parent="bd-5", priority=3),
            _demo_bead("bd-7", "Flaky CI on main", "open", "bug", priority=0),
            _demo_bead("bd-8", "Dark mode", "deferred", priority=4),
            _demo_bead("bd-9", "SMTP relay credentials", "deferred", priority=3),
            _demo_bead("bd-10", "Upgrade database driver", "closed", priority=2, closed_at=recently),
        ]

    def _all(self) -> list[GraphBead]:
        return [copy.deepcopy(b) for b in self._beads]

    def fetch_active(self) -> list[GraphBead]:
        return filter_by_status(self._all(), ACTIVE_STATUSES)

    def fetch_backlog(self) -> list[GraphBead]:
        return filter_by_status(self._all(), BACKLOG_STATUSES)

    def fetch_closed(self) -> list[GraphBead]:
        return filter_closed_after(filter_by_status(self._all(), ("closed",)), closed_cutoff())

    def fetch_bead(self, bead_id: str) -> GraphBead:
        for bead in self._all():
            if bead.id == bead_id:
                return bead
        raise BeadNotFoundError(bead_id)


def make_fetcher(source: SourceConfig) -> BeadFetcher:
    """Build the fetcher named by the `source:` config section.

    Raises:
        ConfigError: If the source type is unknown
    """
    if source.type == "demo":
        return DemoFetcher()
    if source.type == "jsonl":
        if source.beads_dir is None:
            raise ConfigError("source.type jsonl needs a beads_dir")
        return JSONLFetcher(source.beads_dir)
    if source.type == "br":
        cwd = source.beads_dir.parent if source.beads_dir is not None else None
        return BRFetcher(command=source.command, cwd=cwd)
    raise ConfigError(f"Unknown source type: {source.type!r}")
