"""Consolidated text digest handed to the downstream language model."""

from __future__ import annotations

from typing import Sequence

from deepsearch.crawl.state import PageVisitRecord

DIGEST_MAX_CHARS = 30000
DIGEST_PAGE_CHARS = 2000


def build_digest(
    query: str,
    pages: Sequence[PageVisitRecord],
    page_chars: int = DIGEST_PAGE_CHARS,
    max_chars: int = DIGEST_MAX_CHARS,
) -> str:
    """Markdown summary of *pages* in visit order, cut to *max_chars*."""
    parts = [
        f'## Deep search results for: "{query}"\n\n',
        f"Sources consulted: {len(pages)} pages\n\n",
    ]
    for index, page in enumerate(pages, start=1):
        parts.append(f"### {index}. {page.title}\n")
        parts.append(f"**URL:** {page.url}\n")
        if page.source:
            parts.append(f"**Source:** {page.source}\n")
        excerpt = page.content[:page_chars]
        if len(page.content) > page_chars:
            excerpt += "..."
        parts.append(f"\n{excerpt}\n\n")
    return "".join(parts)[:max_chars]
