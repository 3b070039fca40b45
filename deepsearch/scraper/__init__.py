"""Scraper package — page sources & content extraction."""

from deepsearch.scraper.embedded import extract_embedded_data
from deepsearch.scraper.extractor import extract_page
from deepsearch.scraper.fetcher import AutoPageSource, Fetcher, PageSource, RenderedPageSource
from deepsearch.scraper.models import ExtractedPage, FetchResult

__all__ = [
    "Fetcher",
    "PageSource",
    "RenderedPageSource",
    "AutoPageSource",
    "extract_page",
    "extract_embedded_data",
    "ExtractedPage",
    "FetchResult",
]
