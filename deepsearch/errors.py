"""Exception taxonomy.

Per-page failures normally travel as :class:`~deepsearch.scraper.models.FetchResult`
values; these classes are raised where a failure ends the request (single
page fetch, search collaborator down, no crawl capacity left).
"""

from __future__ import annotations


class DeepSearchError(Exception):
    """Base class for every error raised by the service."""


class FetchError(DeepSearchError):
    """A single page could not be fetched."""

    def __init__(self, url: str, message: str) -> None:
        super().__init__(message)
        self.url = url
        self.message = message


class NetworkError(FetchError):
    """Connection or DNS failure."""


class FetchTimeout(FetchError):
    """The fetch exceeded its wall-clock budget."""


class HttpError(FetchError):
    """The server answered with a non-2xx status."""

    def __init__(self, url: str, status_code: int) -> None:
        super().__init__(url, f"HTTP {status_code}")
        self.status_code = status_code


class UnsupportedContentType(FetchError):
    """A non-HTML body was found where HTML was expected."""


class ParseError(DeepSearchError):
    """A JSON body or fragment could not be decoded."""


class UpstreamSearchError(DeepSearchError):
    """The search collaborator itself failed."""


class RenderingUnavailable(DeepSearchError):
    """No headless browser is available for JavaScript rendering."""


class CrawlCapacityExceeded(DeepSearchError):
    """Too many deep-search requests are already in flight."""
