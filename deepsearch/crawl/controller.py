"""Deep search: search, visit the top results, follow relevant internal links.

Per request the controller runs a small state machine:

1. one query against the search collaborator (failure is fatal);
2. a depth-0 visit of each result, skipping URLs already seen;
3. for every successful depth-0 page (when ``max_depth > 0``) a depth-1
   visit of same-site links whose text mentions a query word, at most
   ``max_pages_per_site`` pages per parent counting the parent itself;
4. consolidation of every extracted page into one bounded digest.

A page failure is recorded in the result's ``errors`` and never aborts the
crawl.  Both axes are bounded, so at most
``max_results + max_results * max_pages_per_site`` URLs are visited.
"""

from __future__ import annotations

import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import List, Optional, Sequence, Tuple

from deepsearch.config import Settings
from deepsearch.crawl.digest import build_digest
from deepsearch.crawl.search_providers import SearchHit, SearchProviderChain
from deepsearch.crawl.state import CrawlError, CrawlResult, CrawlState, PageVisitRecord
from deepsearch.errors import CrawlCapacityExceeded
from deepsearch.scraper.extractor import extract_page
from deepsearch.scraper.fetcher import PageSource
from deepsearch.scraper.models import ExtractedPage

VisitOutcome = Tuple[Optional[ExtractedPage], Optional[str]]

_MIN_TERM_LENGTH = 4


def relevance_terms(query: str) -> List[str]:
    """Lower-cased query words longer than three characters."""
    return [word for word in query.lower().split() if len(word) >= _MIN_TERM_LENGTH]


def is_relevant(link_text: str, terms: Sequence[str]) -> bool:
    text = link_text.lower()
    return any(term in text for term in terms)


class DeepSearchController:
    """Runs deep-search requests against a search chain and a page source.

    One controller serves the whole process; each call builds its own
    :class:`CrawlState`.  At most ``settings.max_concurrent_crawls`` calls may
    run at once; extra calls fail fast with :class:`CrawlCapacityExceeded`.
    """

    def __init__(
        self,
        settings: Settings,
        search: SearchProviderChain,
        source: PageSource,
    ) -> None:
        self._settings = settings
        self._search = search
        self._source = source
        self._slots = threading.BoundedSemaphore(max(1, settings.max_concurrent_crawls))

    def deep_search(
        self,
        query: str,
        max_results: int = 5,
        max_depth: int = 1,
        max_pages_per_site: int = 3,
        language: str = "es",
    ) -> CrawlResult:
        """Crawl for *query* and return the consolidated result.

        Raises:
            ValueError: Empty query or non-positive bounds.
            UpstreamSearchError: The search collaborator failed.
            CrawlCapacityExceeded: Too many deep searches already running.
        """
        query = (query or "").strip()
        if not query:
            raise ValueError("query is required")
        if max_results < 1:
            raise ValueError("max_results must be at least 1")
        if max_depth < 0:
            raise ValueError("max_depth must not be negative")
        if max_pages_per_site < 1:
            raise ValueError("max_pages_per_site must be at least 1")

        if not self._slots.acquire(blocking=False):
            raise CrawlCapacityExceeded(
                f"{self._settings.max_concurrent_crawls} deep searches already running; retry later."
            )
        try:
            return self._run(query, max_results, max_depth, max_pages_per_site, language)
        finally:
            self._slots.release()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _run(
        self,
        query: str,
        max_results: int,
        max_depth: int,
        max_pages_per_site: int,
        language: str,
    ) -> CrawlResult:
        print(f'[DeepSearch] Starting deep search: "{query}"')
        print(
            f"[DeepSearch] Config: max_results={max_results}, max_depth={max_depth}, "
            f"max_pages_per_site={max_pages_per_site}"
        )
        state = CrawlState()

        response = self._search.search(query, max_results=max_results, language=language)
        hits = response.hits[:max_results]
        print(f"[DeepSearch] {len(hits)} search result(s) found.")

        prefetched = self._prefetch(hits)
        terms = relevance_terms(query)

        for hit in hits:
            if not state.mark_visited(hit.url):
                continue
            print(f"[DeepSearch] Visiting: {hit.url}")
            if hit.url in prefetched:
                page, error = prefetched.pop(hit.url)
            else:
                page, error = self._visit(hit.url)

            if page is None:
                print(f"[DeepSearch] ✗ {hit.url}: {error}")
                state.errors.append(CrawlError(url=hit.url, error=error or "Fetch failed"))
                continue

            state.pages.append(
                PageVisitRecord(
                    url=hit.url,
                    title=page.title or hit.title,
                    content=page.main_text,
                    paragraphs=page.paragraphs,
                    depth=0,
                    snippet=hit.content or None,
                    source=hit.engine or None,
                )
            )

            if max_depth > 0:
                self._follow_links(page, hit.url, terms, max_pages_per_site, state, prefetched)

        elapsed = state.elapsed_ms()
        print(f"[DeepSearch] Done: {len(state.pages)} page(s) extracted in {elapsed}ms.")

        digest = build_digest(
            query,
            state.pages,
            page_chars=self._settings.digest_page_chars,
            max_chars=self._settings.digest_max_chars,
        )
        return CrawlResult(
            query=query,
            total_pages_visited=len(state.visited_urls),
            total_content_extracted=len(state.pages),
            elapsed_time_ms=elapsed,
            pages=state.pages,
            consolidated_text=digest,
            errors=state.errors,
            search_suggestions=response.suggestions,
        )

    def _follow_links(
        self,
        page: ExtractedPage,
        parent_url: str,
        terms: Sequence[str],
        max_pages_per_site: int,
        state: CrawlState,
        prefetched: dict[str, VisitOutcome],
    ) -> None:
        # The parent counts as the first page of its site.
        site_pages = 1
        for link in page.internal_links:
            if site_pages >= max_pages_per_site:
                break
            if link.url in state.visited_urls:
                continue
            if not is_relevant(link.text, terms):
                continue

            state.mark_visited(link.url)
            site_pages += 1
            print(f"[DeepSearch] Following link: {link.url}")

            if link.url in prefetched:
                sub_page, error = prefetched.pop(link.url)
            else:
                sub_page, error = self._visit(link.url)
            if sub_page is None:
                print(f"[DeepSearch] ✗ {link.url}: {error}")
                state.errors.append(CrawlError(url=link.url, error=error or "Fetch failed"))
                continue

            state.pages.append(
                PageVisitRecord(
                    url=link.url,
                    title=sub_page.title or link.text,
                    content=sub_page.main_text,
                    paragraphs=sub_page.paragraphs,
                    depth=1,
                    link_text=link.text,
                    parent_url=parent_url,
                )
            )

    def _visit(self, url: str) -> VisitOutcome:
        result = self._source.fetch(url, timeout=self._settings.crawl_page_timeout).require_html()
        if not result.succeeded:
            return None, result.error
        return extract_page(result.body or "", result.effective_url, mode="crawl"), None

    def _prefetch(self, hits: Sequence[SearchHit]) -> dict[str, VisitOutcome]:
        """Fetch depth-0 pages in parallel when ``crawl_workers > 1``.

        Results are only cached here; the main loop still walks hits in rank
        order, so output matches a sequential run.
        """
        workers = self._settings.crawl_workers
        urls = list(dict.fromkeys(hit.url for hit in hits))
        if workers <= 1 or len(urls) <= 1:
            return {}

        outcomes: dict[str, VisitOutcome] = {}
        with ThreadPoolExecutor(
            max_workers=min(workers, len(urls)), thread_name_prefix="crawl"
        ) as pool:
            future_to_url = {pool.submit(self._visit, url): url for url in urls}
            for future in as_completed(future_to_url):
                outcomes[future_to_url[future]] = future.result()
        return outcomes
