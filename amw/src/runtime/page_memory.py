"""Visited-page bookkeeping for a single replay."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List


def page_key(url: str) -> str:
    return str(url or "").rstrip("/")


@dataclass(slots=True)
class PageVisit:
    url: str
    title: str = ""
    summary: str = ""
    visited_count: int = 1
    last_visited: str = ""
    key_info: List[str] = field(default_factory=list)


@dataclass
class TaskMemory:
    """
    Tracks which pages a replay touched.

    Attributes:
        pages: visits keyed by URL with trailing slashes stripped
        findings: free-text notes, deduplicated, in insertion order
    """

    pages: Dict[str, PageVisit] = field(default_factory=dict)
    findings: List[str] = field(default_factory=list)

    def record_visit(self, url: str, title: str = "") -> PageVisit | None:
        key = page_key(url)
        if not key:
            return None
        now = datetime.now().strftime("%H:%M:%S")
        existing = self.pages.get(key)
        if existing is not None:
            existing.visited_count += 1
            existing.last_visited = now
            if title and not existing.title:
                existing.title = title
            return existing
        visit = PageVisit(url=str(url), title=str(title), last_visited=now)
        self.pages[key] = visit
        return visit

    def add_finding(self, finding: str) -> None:
        text = str(finding or "").strip()
        if text and text not in self.findings:
            self.findings.append(text)

    def get_memory_summary(self) -> str:
        parts = []
        if self.pages:
            lines = []
            for page in self.pages.values():
                line = f"- {page.title or page.url} ({page.url})"
                if page.summary:
                    line += f": {page.summary}"
                lines.append(line)
            parts.append("Visited pages:\n" + "\n".join(lines))
        if self.findings:
            parts.append("Findings:\n" + "\n".join(f"- {f}" for f in self.findings))
        return "\n\n".join(parts)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "pages": len(self.pages),
            "visits": sum(page.visited_count for page in self.pages.values()),
            "findings": len(self.findings),
        }
