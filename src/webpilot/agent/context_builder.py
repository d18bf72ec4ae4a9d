"""
agent/context_builder.py — Oracle Context Builder

Renders a browser snapshot into the bounded "current page" block the oracle
reads each iteration, and the one-line summary the safety gate passes to the
destructiveness assessment.

Limits applied on top of what the browser already caps:
    links           first 15
    page text       first 3000 chars
    lists           first 3 lists, 5 items each
    tables          first 2 tables, 5 rows each (cells joined with " | ")
"""

from __future__ import annotations

from webpilot.browser.types import FullSnapshot, QuickSnapshot, Snapshot
from webpilot.observability.logger import get_logger

log = get_logger(__name__)

_MAX_LINKS = 15
_MAX_TEXT_CHARS = 3000
_MAX_LISTS = 3
_MAX_LIST_ITEMS = 5
_MAX_TABLES = 2
_MAX_TABLE_ROWS = 5


class ContextBuilder:
    """Turns snapshots into oracle-ready text."""

    def __init__(
        self,
        max_links: int = _MAX_LINKS,
        max_text_chars: int = _MAX_TEXT_CHARS,
    ):
        self.max_links = max_links
        self.max_text_chars = max_text_chars

    def build(self, snapshot: Snapshot) -> str:
        if isinstance(snapshot, FullSnapshot):
            lines = self._render_full(snapshot)
        else:
            lines = self._render_quick(snapshot)
        text = "\n".join(lines)
        log.debug(
            "context_builder.built",
            fidelity="full" if isinstance(snapshot, FullSnapshot) else "quick",
            chars=len(text),
        )
        return text

    @staticmethod
    def summary(snapshot: Snapshot) -> str:
        return f"URL: {snapshot.url}, Title: {snapshot.title}"

    # ── Renderers ─────────────────────────────────────────────────────────────

    def _render_links(self, snapshot: Snapshot) -> list[str]:
        if not snapshot.links:
            return []
        lines = ["", f"Available links (first {self.max_links}):"]
        lines += [f"  - {link.text} -> {link.href}" for link in snapshot.links[: self.max_links]]
        return lines

    def _render_quick(self, snap: QuickSnapshot) -> list[str]:
        lines = [f"URL: {snap.url}", f"Title: {snap.title}"]
        lines += self._render_links(snap)
        if snap.buttons:
            lines += ["", "Available buttons:"]
            lines += [f"  - {b}" for b in snap.buttons]
        return lines

    def _render_full(self, snap: FullSnapshot) -> list[str]:
        lines = [f"URL: {snap.url}", f"Title: {snap.title}"]

        if snap.headings:
            lines += ["", "Headings:"]
            lines += [f"  {h.level}: {h.text}" for h in snap.headings]

        if snap.buttons:
            lines += ["", "Available buttons:"]
            lines += [f"  - {b.text}" for b in snap.buttons]

        lines += self._render_links(snap)

        if snap.inputs:
            lines += ["", "Available input fields:"]
            lines += [f"  - {i.display_name} ({i.type})" for i in snap.inputs]

        if snap.text:
            preview = snap.text
            if len(preview) > self.max_text_chars:
                preview = preview[: self.max_text_chars] + "..."
            lines += ["", "Page text:", preview]

        if snap.lists:
            lines += ["", "Lists on the page:"]
            for items in snap.lists[:_MAX_LISTS]:
                lines += [f"  - {item}" for item in items[:_MAX_LIST_ITEMS]]

        if snap.tables:
            lines += ["", "Tables on the page:"]
            for rows in snap.tables[:_MAX_TABLES]:
                lines += [f"  {' | '.join(row)}" for row in rows[:_MAX_TABLE_ROWS]]

        return lines
