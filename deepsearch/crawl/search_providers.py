"""Multi-provider web search abstraction with automatic failover.

Provider priority (highest to lowest):
  1. SearXNG  — the configured metasearch instance, then any fallbacks.
  2. Brave Search — REST API; only used when BRAVE_API_KEY is set.
  3. DuckDuckGo — free, scraping-based; retried with exponential backoff.

All providers share a common interface:
``search(query, max_results, language) -> SearchResponse``.  A provider
raises :class:`UpstreamSearchError` when it cannot answer at all and returns
an empty response when it answered with nothing.  The ``SearchProviderChain``
returns the first non-empty response and only raises when every provider
failed.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, List

import httpx
from duckduckgo_search import DDGS
from duckduckgo_search.exceptions import DuckDuckGoSearchException, RatelimitException

from deepsearch.config import Settings
from deepsearch.errors import UpstreamSearchError

_DDG_REGIONS = {"es": "es-es", "en": "us-en", "fr": "fr-fr", "de": "de-de", "pt": "br-pt", "it": "it-it"}


@dataclass
class SearchHit:
    url: str
    title: str = ""
    content: str = ""
    engine: str = ""


@dataclass
class SearchResponse:
    hits: List[SearchHit] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)


def _normalise_query(query: str) -> str:
    """Strip surrounding double-quotes that make some engines refuse the query."""
    q = query.strip()
    if q.startswith('"') and q.endswith('"') and len(q) > 2:
        q = q[1:-1].strip()
    return q


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class SearchProvider(ABC):
    """Abstract base class for a single search provider."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable provider name."""

    @abstractmethod
    def search(self, query: str, max_results: int = 5, language: str = "es") -> SearchResponse:
        """Return ranked hits.  Raise ``UpstreamSearchError`` if the provider is down."""


# ---------------------------------------------------------------------------
# SearXNG provider
# ---------------------------------------------------------------------------

class SearXNGProvider(SearchProvider):
    """Hit a SearXNG JSON endpoint.

    Tries the configured base URL first (``settings.searxng_base_url``), then
    rotates through ``settings.searxng_fallback_instances`` on failure.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def name(self) -> str:
        return "SearXNG"

    def _instances(self) -> list[str]:
        primary = self._settings.searxng_base_url.rstrip("/")
        return [primary] + [
            u for u in self._settings.searxng_fallback_instances if u.rstrip("/") != primary
        ]

    def _get(self, client: httpx.Client, base: str, params: dict[str, Any]) -> dict[str, Any]:
        resp = client.get(
            f"{base}/search",
            params=params,
            headers={
                "Accept": "application/json",
                "User-Agent": self._settings.user_agent,
            },
        )
        resp.raise_for_status()
        return resp.json()

    def raw_search(self, params: dict[str, Any]) -> dict[str, Any]:
        """Pass *params* straight to the primary instance and return its JSON."""
        params = {**params, "format": "json"}
        base = self._instances()[0]
        try:
            with httpx.Client(timeout=self._settings.search_timeout, follow_redirects=True) as client:
                return self._get(client, base, params)
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamSearchError(f"SearXNG request failed: {exc}") from exc

    def raw_config(self) -> dict[str, Any]:
        """Return the primary instance's ``/config`` JSON (engines, categories, locales)."""
        base = self._instances()[0]
        try:
            with httpx.Client(timeout=self._settings.search_timeout, follow_redirects=True) as client:
                resp = client.get(
                    f"{base}/config",
                    headers={
                        "Accept": "application/json",
                        "User-Agent": self._settings.user_agent,
                    },
                )
                resp.raise_for_status()
                return resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise UpstreamSearchError(f"SearXNG config request failed: {exc}") from exc

    def search(self, query: str, max_results: int = 5, language: str = "es") -> SearchResponse:
        params = {
            "q": _normalise_query(query),
            "format": "json",
            "language": language,
            "safesearch": "1",
            "categories": "general",
        }
        errors: list[str] = []

        with httpx.Client(timeout=self._settings.search_timeout, follow_redirects=True) as client:
            for base in self._instances():
                try:
                    data = self._get(client, base, params)
                except (httpx.HTTPError, ValueError) as exc:
                    print(f"[SearXNG] {base} failed: {exc!r:.120}, trying next instance.")
                    errors.append(f"{base}: {exc}")
                    continue
                response = self._parse(data, max_results)
                print(f"[SearXNG] ✓ {base} → {len(response.hits)} result(s).")
                return response

        raise UpstreamSearchError("SearXNG unavailable: " + "; ".join(errors))

    @staticmethod
    def _parse(data: dict[str, Any], max_results: int) -> SearchResponse:
        hits: list[SearchHit] = []
        seen: set[str] = set()
        for item in data.get("results", []):
            url = item.get("url") or item.get("href")
            if not url or url in seen:
                continue
            seen.add(url)
            hits.append(
                SearchHit(
                    url=url,
                    title=item.get("title") or "",
                    content=item.get("content") or "",
                    engine=item.get("engine") or "",
                )
            )
            if len(hits) >= max_results:
                break
        suggestions = [str(s) for s in data.get("suggestions") or []]
        return SearchResponse(hits=hits, suggestions=suggestions)


# ---------------------------------------------------------------------------
# Brave Search provider
# ---------------------------------------------------------------------------

class BraveSearchProvider(SearchProvider):
    """Brave Search REST API (free tier: 2 000 queries/month)."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def name(self) -> str:
        return "Brave"

    def search(self, query: str, max_results: int = 5, language: str = "es") -> SearchResponse:
        query = _normalise_query(query)
        try:
            with httpx.Client(timeout=self._settings.search_timeout) as client:
                resp = client.get(
                    "https://api.search.brave.com/res/v1/web/search",
                    params={"q": query, "count": max_results, "search_lang": language},
                    headers={
                        "Accept": "application/json",
                        "Accept-Encoding": "gzip",
                        "X-Subscription-Token": self._settings.brave_api_key,
                    },
                )
                resp.raise_for_status()
                data = resp.json()
        except (httpx.HTTPError, ValueError) as exc:
            print(f"[Brave] request failed: {exc}")
            raise UpstreamSearchError(f"Brave request failed: {exc}") from exc

        hits = [
            SearchHit(
                url=item["url"],
                title=item.get("title") or "",
                content=item.get("description") or "",
                engine="brave",
            )
            for item in data.get("web", {}).get("results", [])
            if item.get("url")
        ][:max_results]
        if hits:
            print(f"[Brave] ✓ {len(hits)} result(s).")
        return SearchResponse(hits=hits)


# ---------------------------------------------------------------------------
# DuckDuckGo provider (with exponential backoff)
# ---------------------------------------------------------------------------

class DuckDuckGoProvider(SearchProvider):
    """Wrapper around ``duckduckgo_search.DDGS`` with retry on rate-limit."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def name(self) -> str:
        return "DuckDuckGo"

    def search(self, query: str, max_results: int = 5, language: str = "es") -> SearchResponse:
        query = _normalise_query(query)
        region = _DDG_REGIONS.get(language, "wt-wt")
        base_delay = self._settings.search_retry_base_delay
        max_retries = self._settings.search_retry_max

        for attempt in range(max_retries + 1):
            try:
                with DDGS() as ddgs:
                    results = ddgs.text(query, region=region, max_results=max_results) or []
            except RatelimitException as exc:
                if attempt < max_retries:
                    delay = base_delay * (2 ** attempt)
                    print(
                        f"[DuckDuckGo] rate-limited (attempt {attempt + 1}/{max_retries}); "
                        f"retrying in {delay:.0f}s …"
                    )
                    time.sleep(delay)
                    continue
                raise UpstreamSearchError(
                    f"DuckDuckGo rate-limited after {max_retries} retries"
                ) from exc
            except DuckDuckGoSearchException as exc:
                print(f"[DuckDuckGo] search error: {exc}")
                raise UpstreamSearchError(f"DuckDuckGo search error: {exc}") from exc

            hits = [
                SearchHit(
                    url=r["href"],
                    title=r.get("title") or "",
                    content=r.get("body") or "",
                    engine="duckduckgo",
                )
                for r in results
                if "href" in r
            ]
            if hits:
                print(f"[DuckDuckGo] ✓ {len(hits)} result(s).")
            return SearchResponse(hits=hits)

        raise UpstreamSearchError("DuckDuckGo search failed")


# ---------------------------------------------------------------------------
# Provider chain
# ---------------------------------------------------------------------------

class SearchProviderChain:
    """Try providers in order; return the first non-empty response."""

    def __init__(self, providers: list[SearchProvider]) -> None:
        self._providers = providers

    @property
    def providers(self) -> list[SearchProvider]:
        return list(self._providers)

    def search(self, query: str, max_results: int = 5, language: str = "es") -> SearchResponse:
        failures: list[str] = []
        answered = False
        for provider in self._providers:
            try:
                response = provider.search(query, max_results=max_results, language=language)
            except UpstreamSearchError as exc:
                print(f"[search chain] {provider.name} failed: {exc}")
                failures.append(f"{provider.name}: {exc}")
                continue
            if response.hits:
                return response
            answered = True

        if failures and not answered:
            raise UpstreamSearchError("All search providers failed: " + "; ".join(failures))
        print("[search chain] all providers returned no results.")
        return SearchResponse()


# ---------------------------------------------------------------------------
# Default chain factory
# ---------------------------------------------------------------------------

def build_default_chain(settings: Settings) -> SearchProviderChain:
    """SearXNG → Brave (if key) → DuckDuckGo."""
    providers: list[SearchProvider] = [SearXNGProvider(settings)]
    if settings.brave_api_key:
        providers.append(BraveSearchProvider(settings))
    providers.append(DuckDuckGoProvider(settings))
    return SearchProviderChain(providers)
