"""Shared text helpers for rendering bead data in fixed-width cells."""

from __future__ import annotations

import re
import textwrap
import unicodedata

TRUNCATE_INDICATOR = "..."

_ANSI_RE = re.compile(r"\x1b\[[0-9;]*[a-zA-Z]")


def strip_ansi(text: str) -> str:
    """Remove ANSI escape sequences."""
    return _ANSI_RE.sub("", text)


def safe_string(text: str | None) -> str:
    """Sanitize text for a single display line.

    Strips ANSI codes, turns newlines into spaces, drops other control
    characters and collapses runs of whitespace.
    """
    if not text:
        return ""
    text = strip_ansi(text).replace("\r", " ").replace("\n", " ")
    text = "".join(
        ch for ch in text if ch == " " or not unicodedata.category(ch).startswith("C")
    )
    return " ".join(text.split())


def truncate(text: str | None, max_len: int) -> str:
    """Shorten sanitized text to max_len, ending with '...' when cut."""
    text = safe_string(text)
    if max_len <= 0:
        return ""
    if len(text) <= max_len:
        return text
    if max_len <= len(TRUNCATE_INDICATOR):
        return TRUNCATE_INDICATOR[:max_len]
    return text[: max_len - len(TRUNCATE_INDICATOR)] + TRUNCATE_INDICATOR


def fit(text: str, width: int) -> str:
    """Cut or pad text so it is exactly width characters."""
    if width <= 0:
        return ""
    if len(text) > width:
        return text[:width]
    return text.ljust(width)


def word_wrap(text: str, width: int) -> str:
    """Wrap each paragraph of text to width, keeping blank lines."""
    width = max(width, 1)
    wrapped = []
    for line in text.split("\n"):
        if not line.strip():
            wrapped.append("")
            continue
        wrapped.extend(textwrap.wrap(line, width=width, break_long_words=True) or [""])
    return "\n".join(wrapped)


def pluralize(count: int, singular: str, plural: str) -> str:
    """Return '1 node' / '3 nodes' style counts."""
    if count == 1:
        return f"1 {singular}"
    return f"{count} {plural}"
