"""Text renderer for the bead graph.

Turns a RenderState snapshot into a fixed width x height block, one bead per
row:

    o bd-1 Auth epic +2
    ├─ * bd-2 Login form [1 dep]
    │ └─ o bd-4 Validation
    └─ x bd-3 Session store

Rendering never takes the graph lock; Graph.render_state() hands over copies.
"""

from dataclasses import dataclass, field

from rich.text import Text

from .format import fit, pluralize, safe_string, strip_ansi, truncate, word_wrap
from .graph_types import (
    WQ_ABANDONED,
    WQ_FAILED,
    BeadReference,
    GraphBead,
    GraphNode,
    Layout,
    ListRow,
    NodeDensity,
)

EMPTY_MESSAGE = "No beads to display"
EMPTY_SHORT = "Empty"

STATUS_ICONS = {
    "open": "o",
    "in_progress": "*",
    "blocked": "x",
    "deferred": "-",
    "closed": ".",
}

BACKOFF_PREFIX = "~"
ABANDONED_PREFIX = "!"

# Tree glyphs, one LIST_INDENT-wide segment per depth level
GLYPH_CONTINUE = "│ "
GLYPH_BLANK = "  "
GLYPH_TEE = "├─"
GLYPH_CORNER = "└─"

# Row style names, highest precedence first
STYLE_CURRENT = "current"
STYLE_SELECTED = "selected"
STYLE_ABANDONED = "abandoned"
STYLE_FAILED = "failed"
STYLE_DIMMED = "dimmed"
STYLE_DEFAULT = "default"

RICH_STYLES = {
    STYLE_CURRENT: "bold #ffa726",
    STYLE_SELECTED: "bold reverse #e0e0e0",
    STYLE_ABANDONED: "bold #ef5350",
    STYLE_FAILED: "#ef5350",
    STYLE_DIMMED: "#616161",
    STYLE_DEFAULT: "#e0e0e0",
}


@dataclass
class RenderState:
    """Everything needed to draw one frame."""

    layout: Layout
    nodes: dict[str, GraphNode]
    density: NodeDensity = NodeDensity.STANDARD
    selected: str = ""
    current_bead: str = ""
    collapsed: set[str] = field(default_factory=set)
    child_counts: dict[str, int] = field(default_factory=dict)  # collapsed epics only
    dep_counts: dict[str, int] = field(default_factory=dict)  # blockers per node
    highlight: set[str] | None = None  # active top-level subtree, None when unset
    offset_y: int = 0


def status_icon(status: str) -> str:
    return STATUS_ICONS.get(status, "?")


def priority_label(priority: int) -> str:
    if 0 <= priority <= 4:
        return f"P{priority}"
    return "P?"


def row_style(node: GraphNode, state: RenderState) -> str:
    """Style name for a row, by precedence."""
    if node.id == state.current_bead:
        return STYLE_CURRENT
    if node.id == state.selected:
        return STYLE_SELECTED
    if node.wq_status == WQ_ABANDONED:
        return STYLE_ABANDONED
    if node.wq_status == WQ_FAILED and node.in_backoff:
        return STYLE_FAILED
    if node.out_of_view or node.out_of_scope:
        return STYLE_DIMMED
    if state.highlight is not None and node.id not in state.highlight:
        return STYLE_DIMMED
    return STYLE_DEFAULT


def node_icon(node: GraphNode) -> str:
    """Status icon with the execution-state prefix."""
    icon = status_icon(node.status)
    if node.wq_status == WQ_ABANDONED:
        return ABANDONED_PREFIX + icon
    if node.wq_status == WQ_FAILED and node.in_backoff:
        return BACKOFF_PREFIX + icon
    return icon


def _has_later_sibling(rows: list[ListRow], index: int, depth: int) -> bool:
    """True if a row at depth follows index before the tree climbs above depth."""
    for row in rows[index + 1:]:
        if row.depth == depth:
            return True
        if row.depth < depth:
            return False
    return False


def tree_glyphs(rows: list[ListRow], index: int) -> str:
    """Branch glyphs for rows[index]; roots get none."""
    depth = rows[index].depth
    if depth == 0:
        return ""
    parts = []
    for level in range(1, depth):
        parts.append(GLYPH_CONTINUE if _has_later_sibling(rows, index, level) else GLYPH_BLANK)
    parts.append(GLYPH_TEE if _has_later_sibling(rows, index, depth) else GLYPH_CORNER)
    return "".join(parts)


def node_badge(node: GraphNode, state: RenderState) -> str:
    """Collapsed child count, else blocking dependency count, else ""."""
    children = state.child_counts.get(node.id, 0)
    if node.id in state.collapsed and children > 0:
        return f"+{children}"
    deps = state.dep_counts.get(node.id, 0)
    if deps > 0:
        return f"[{pluralize(deps, 'dep', 'deps')}]"
    return ""


def format_row(node: GraphNode, glyphs: str, width: int, state: RenderState) -> str:
    """Compose one row, exactly width characters wide."""
    head = f"{glyphs} " if glyphs else ""
    head += f"{node_icon(node)} {node.id}"

    badge = node_badge(node, state)
    tail = f" {badge}" if badge else ""

    detail = ""
    if state.density == NodeDensity.STANDARD:
        detail = node.title
    elif state.density == NodeDensity.DETAILED:
        detail = f"{priority_label(node.priority)} {node.title}"
        if node.attempts > 0 or node.cost > 0:
            tail = f" [{node.attempts} ${node.cost:.2f}]" + tail

    if detail:
        room = width - len(head) - len(tail) - 1
        if room > 0:
            head += " " + truncate(detail, room)
    return fit(head + tail, width)


def render_empty(width: int, height: int) -> list[str]:
    """Centered placeholder block."""
    message = EMPTY_MESSAGE if width >= len(EMPTY_MESSAGE) else EMPTY_SHORT
    message = message[:width]
    lines = [" " * width for _ in range(height)]
    left = (width - len(message)) // 2
    lines[height // 2] = fit(" " * left + message, width)
    return lines


def render_rows(state: RenderState, width: int, height: int) -> list[tuple[str, str]]:
    """(line, style name) pairs, exactly height of them, each width wide."""
    if width <= 0 or height <= 0:
        return []
    rows = state.layout.visible_rows()
    if not rows:
        return [(line, STYLE_DEFAULT) for line in render_empty(width, height)]

    start = max(state.offset_y, 0)
    out: list[tuple[str, str]] = []
    for index in range(start, min(start + height, len(rows))):
        row = rows[index]
        node = state.nodes[row.id]
        glyphs = tree_glyphs(rows, index)
        pos = state.layout.positions.get(row.id)
        if pos is not None and len(glyphs) > pos.x:
            # Indent is clamped on narrow panes; keep the innermost levels
            glyphs = glyphs[len(glyphs) - pos.x:] if pos.x else ""
        out.append((format_row(node, glyphs, width, state), row_style(node, state)))
    while len(out) < height:
        out.append((" " * width, STYLE_DEFAULT))
    return out


def render_plain(state: RenderState, width: int, height: int) -> str:
    """Plain text block, lines joined by newlines."""
    return "\n".join(line for line, _ in render_rows(state, width, height))


def render_text(state: RenderState, width: int, height: int) -> Text:
    """Styled block for display in a Textual widget."""
    text = Text(no_wrap=True, overflow="crop")
    for i, (line, style) in enumerate(render_rows(state, width, height)):
        if i:
            text.append("\n")
        text.append(line, style=RICH_STYLES[style])
    return text


# ---------------------------------------------------------------------------
# Inline detail view
# ---------------------------------------------------------------------------

DETAIL_FOOTER = "[Enter] fullscreen | [Esc] back | [j/k] scroll"

# Lines under the detail body: a spacer and the footer
DETAIL_FOOTER_LINES = 2

MIN_DETAIL_BODY = 3


def _reference_lines(heading: str, refs: list[BeadReference]) -> list[str]:
    if not refs:
        return []
    lines = [heading]
    for ref in refs:
        lines.append(f"  - {ref.id}: {truncate(ref.title, 30)} ({ref.status})")
    return lines + [""]


def detail_lines(
    node: GraphNode | None,
    bead: GraphBead | None,
    width: int,
    loading: bool = False,
    error: str = "",
) -> list[str]:
    """Body of the inline detail view, before scrolling."""
    if node is None and bead is None:
        return []
    bead_id = bead.id if bead else node.id
    status = bead.status if bead else node.status
    priority = bead.priority if bead else node.priority
    issue_type = bead.issue_type if bead else node.type

    lines = [bead_id, f"Status: {status} | Priority: {priority} | Type: {issue_type}", ""]
    if loading:
        lines.append("Loading details...")
    elif error:
        lines.append(f"Error: {error}")

    if bead is None:
        if not loading and not error and node is not None:
            lines += ["Title:", *word_wrap(safe_string(node.title), width).split("\n"), ""]
            lines.append("(Full details not available)")
        return lines

    lines += ["Title:", *word_wrap(safe_string(bead.title), width).split("\n"), ""]
    if bead.description:
        lines += ["Description:", *word_wrap(strip_ansi(bead.description), width).split("\n"), ""]
    lines += _reference_lines("Dependencies:", bead.dependencies)
    lines += _reference_lines("Dependents:", bead.dependents)
    if bead.notes:
        lines += ["Notes:", *word_wrap(strip_ansi(bead.notes), width).split("\n"), ""]
    if bead.labels:
        lines += [f"Labels: {', '.join(bead.labels)}"]
    lines.append(f"Created: {bead.created_at} by {bead.created_by}")
    if bead.updated_at:
        lines.append(f"Updated: {bead.updated_at}")
    if bead.closed_at:
        lines.append(f"Closed: {bead.closed_at}")
    return lines


def clamp_scroll(lines: list[str], scroll: int, height: int) -> int:
    """Largest valid scroll position not above scroll."""
    body = max(height - DETAIL_FOOTER_LINES, MIN_DETAIL_BODY)
    return max(0, min(scroll, len(lines) - body))


def detail_window(lines: list[str], scroll: int, height: int) -> list[str]:
    """Visible slice of the detail body plus the footer."""
    body = max(height - DETAIL_FOOTER_LINES, MIN_DETAIL_BODY)
    max_scroll = max(0, len(lines) - body)
    scroll = clamp_scroll(lines, scroll, height)
    footer = DETAIL_FOOTER
    if max_scroll > 0:
        footer += f" | Line {scroll + 1}/{len(lines)}"
    return lines[scroll:scroll + body] + ["", footer]
