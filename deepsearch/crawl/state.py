"""Per-request crawl bookkeeping and the deep-search result record."""

from __future__ import annotations

import time
from dataclasses import asdict, dataclass, field
from typing import Any, List, Optional


@dataclass
class PageVisitRecord:
    """One successfully extracted page, in visit order."""

    url: str
    title: str
    content: str
    paragraphs: List[str] = field(default_factory=list)
    depth: int = 0
    snippet: Optional[str] = None
    source: Optional[str] = None
    link_text: Optional[str] = None
    parent_url: Optional[str] = None


@dataclass
class CrawlError:
    url: str
    error: str


@dataclass
class CrawlState:
    """Transient state of one deep-search request; never shared across requests."""

    visited_urls: set[str] = field(default_factory=set)
    pages: List[PageVisitRecord] = field(default_factory=list)
    errors: List[CrawlError] = field(default_factory=list)
    start_time: float = field(default_factory=time.monotonic)

    def mark_visited(self, url: str) -> bool:
        """Record *url*; return ``False`` if it had already been visited."""
        if url in self.visited_urls:
            return False
        self.visited_urls.add(url)
        return True

    def elapsed_ms(self) -> int:
        return int((time.monotonic() - self.start_time) * 1000)


@dataclass
class CrawlResult:
    query: str
    total_pages_visited: int
    total_content_extracted: int
    elapsed_time_ms: int
    pages: List[PageVisitRecord]
    consolidated_text: str
    errors: List[CrawlError] = field(default_factory=list)
    search_suggestions: List[str] = field(default_factory=list)
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        """JSON payload; ``errors`` is omitted when every page succeeded."""
        payload = asdict(self)
        payload["pages"] = [
            {k: v for k, v in page.items() if v is not None} for page in payload["pages"]
        ]
        if not self.errors:
            del payload["errors"]
        return {
            "success": payload.pop("success"),
            **payload,
        }
