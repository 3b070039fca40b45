"""Content extraction: turns raw HTML into an :class:`ExtractedPage`.

Three modes share one pipeline:

``page``
    static single-page extraction; mines embedded data and collects text
    blocks, tables and download links.
``rendered``
    same as ``page`` for HTML produced by a headless browser; text blocks
    also cover ``span``/``div`` and use each element's own text only.
``crawl``
    deep-search pages; strips ad/sidebar/menu containers too and discovers
    same-domain internal links to follow.
"""

from __future__ import annotations

import re
from typing import List, Optional
from urllib.parse import urldefrag, urljoin, urlparse

from bs4 import BeautifulSoup
from bs4.element import NavigableString, PreformattedString, Tag

from deepsearch.scraper.embedded import mine_embedded_data
from deepsearch.scraper.models import DownloadLink, ExtractedPage, InternalLink, Table

MODES = ("page", "rendered", "crawl")

_NOISE_TAGS = ["script", "style", "nav", "footer", "header", "aside", "iframe", "noscript"]
_CRAWL_NOISE_SELECTOR = ".advertisement, .ad, .sidebar, .menu, .navigation"

_MAIN_SELECTORS = [
    "article",
    "main",
    ".content",
    ".post-content",
    ".entry-content",
    "#content",
    ".article-body",
]
_MIN_MAIN_CHARS = 200
MAX_MAIN_TEXT = 8000

_BLOCK_TAGS = ["p", "li", "h1", "h2", "h3", "h4", "h5", "h6", "td", "th"]
_RENDERED_BLOCK_TAGS = _BLOCK_TAGS + ["span", "div"]

MAX_PARAGRAPHS = 10
MAX_TEXT_BLOCKS = 50
MAX_TABLES = 10
MAX_DOWNLOAD_LINKS = 20
MAX_INTERNAL_LINKS = 10

_DOWNLOAD_EXTENSIONS = ((".pdf", "pdf"), (".xlsx", "xlsx"), (".xls", "xls"), (".csv", "csv"))
_DOCUMENT_WORDS = ("pdf", "boletín", "boletin", "informe", "reporte")

_NAV_STOPLIST = re.compile(
    r"login|logout|register|signup|cart|checkout|search|contact|about|privacy|terms|cookie",
    re.IGNORECASE,
)

_WS = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Internal helpers
# ---------------------------------------------------------------------------

def _collapse(text: str) -> str:
    return _WS.sub(" ", text).strip()


def _text(element: Tag) -> str:
    return _collapse(element.get_text())


def _own_text(element: Tag) -> str:
    """Text of *element* itself, excluding descendant elements and comments."""
    parts = [
        str(child)
        for child in element.children
        if isinstance(child, NavigableString) and not isinstance(child, PreformattedString)
    ]
    return _collapse("".join(parts))


def _decompose_all(elements) -> None:
    for element in elements:
        if not element.decomposed:
            element.decompose()


def strip_noise(soup: BeautifulSoup, crawl: bool = False) -> None:
    """Remove script/style/navigation chrome in place."""
    _decompose_all(soup.find_all(_NOISE_TAGS))
    if crawl:
        _decompose_all(soup.select(_CRAWL_NOISE_SELECTOR))


def extract_title(soup: BeautifulSoup) -> str:
    """``<title>`` text, else the first ``<h1>``, else ``""``."""
    title = soup.find("title")
    text = _text(title) if title else ""
    if text:
        return text
    h1 = soup.find("h1")
    return _text(h1) if h1 else ""


def select_main_text(soup: BeautifulSoup) -> str:
    """Longest content-container text, falling back to the whole body."""
    best = ""
    for selector in _MAIN_SELECTORS:
        matches = soup.select(selector)
        if not matches:
            continue
        text = _collapse(" ".join(el.get_text(" ") for el in matches))
        if len(text) > len(best):
            best = text
    if len(best) < _MIN_MAIN_CHARS:
        root = soup.body or soup
        best = _collapse(root.get_text(" "))
    return best


def extract_paragraphs(soup: BeautifulSoup, limit: int = MAX_PARAGRAPHS) -> List[str]:
    paragraphs: List[str] = []
    for p in soup.find_all("p"):
        text = _text(p)
        if 50 < len(text) < 2000:
            paragraphs.append(text)
            if len(paragraphs) >= limit:
                break
    return paragraphs


def extract_text_blocks(
    soup: BeautifulSoup,
    own_text_only: bool = False,
    limit: int = MAX_TEXT_BLOCKS,
) -> List[str]:
    """Readable text blocks in document order.

    With *own_text_only* (JS-rendered pages, where text sits in nested
    ``div``/``span`` soup) each element contributes only its direct text and
    exact repeats are dropped.
    """
    tags = _RENDERED_BLOCK_TAGS if own_text_only else _BLOCK_TAGS
    blocks: List[str] = []
    seen: set[str] = set()
    for element in soup.find_all(tags):
        text = _own_text(element) if own_text_only else _text(element)
        if len(text) <= 10:
            continue
        if own_text_only:
            if text in seen:
                continue
            seen.add(text)
        blocks.append(text)
        if len(blocks) >= limit:
            break
    return blocks


def _table_rows(table: Tag) -> List[Tag]:
    bodies = table.find_all("tbody")
    if bodies:
        return [tr for body in bodies for tr in body.find_all("tr")]
    return table.find_all("tr")


def _parse_table(table: Tag) -> Table:
    thead = table.find("thead")
    header_cells: List[Tag] = []
    if thead is not None:
        header_cells = thead.find_all(["th", "td"])
    else:
        first = table.find("tr")
        if first is not None:
            header_cells = first.find_all(["th", "td"])
    headers = [_text(cell) for cell in header_cells]

    rows: List[List[str]] = []
    for index, tr in enumerate(_table_rows(table)):
        cells = [_text(cell) for cell in tr.find_all(["td", "th"])]
        # A markup-only header row repeats the headers; don't count it twice.
        if index == 0 and headers and cells == headers:
            continue
        if any(cells):
            rows.append(cells)
    return Table(headers=headers, rows=rows)


def extract_tables(soup: BeautifulSoup, limit: int = MAX_TABLES) -> List[Table]:
    tables: List[Table] = []
    for element in soup.find_all("table"):
        table = _parse_table(element)
        if table.rows or table.headers:
            tables.append(table)
            if len(tables) >= limit:
                break
    return tables


def classify_download(href: str, text: str) -> Optional[str]:
    """Return ``pdf``/``xlsx``/``xls``/``csv`` if the link looks like a document download."""
    href_l = href.lower()
    text_l = text.lower()
    path = urlparse(href_l).path or href_l

    for extension, kind in _DOWNLOAD_EXTENSIONS:
        if path.endswith(extension):
            return kind

    if "download" in href_l and ("pdf" in text_l or "pdf" in href_l):
        return "pdf"
    if "sdm_process_download" in href_l:  # WordPress Download Manager
        return "pdf"
    if "/descargar" in href_l or "/download" in href_l:
        if "excel" in text_l or "xlsx" in text_l:
            return "xlsx"
        return "pdf"

    if "descargar" in text_l or "download" in text_l:
        if "excel" in text_l or "xlsx" in text_l:
            return "xlsx"
        if any(word in text_l for word in _DOCUMENT_WORDS):
            return "pdf"
    return None


def extract_download_links(
    soup: BeautifulSoup,
    page_url: str,
    limit: int = MAX_DOWNLOAD_LINKS,
) -> List[DownloadLink]:
    links: List[DownloadLink] = []
    seen: set[str] = set()
    for anchor in soup.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href:
            continue
        text = _text(anchor)
        kind = classify_download(href, text)
        if kind is None:
            continue
        try:
            resolved = urljoin(page_url, href)
        except ValueError:
            continue
        if resolved in seen:
            continue
        seen.add(resolved)
        links.append(DownloadLink(text=text or href, url=resolved, kind=kind))
        if len(links) >= limit:
            break
    return links


def extract_internal_links(
    soup: BeautifulSoup,
    page_url: str,
    limit: int = MAX_INTERNAL_LINKS,
) -> List[InternalLink]:
    """Same-host links with descriptive text, minus navigation boilerplate."""
    host = urlparse(page_url).hostname
    links: List[InternalLink] = []
    seen: set[str] = set()
    for anchor in soup.find_all("a", href=True):
        try:
            resolved, _ = urldefrag(urljoin(page_url, anchor["href"].strip()))
            parsed = urlparse(resolved)
            link_host = parsed.hostname
        except ValueError:
            continue
        if parsed.scheme not in ("http", "https") or link_host != host:
            continue
        text = _text(anchor)
        if not 5 < len(text) < 100:
            continue
        if _NAV_STOPLIST.search(parsed.path) or _NAV_STOPLIST.search(text):
            continue
        if resolved in seen:
            continue
        seen.add(resolved)
        links.append(InternalLink(url=resolved, text=text))
        if len(links) >= limit:
            break
    return links


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def extract_page(html: str, url: str, mode: str = "page") -> ExtractedPage:
    """Parse *html* fetched from *url* into an :class:`ExtractedPage`.

    Embedded-data mining runs on the untouched document (it needs the
    scripts); everything else runs after noise removal.
    """
    if mode not in MODES:
        raise ValueError(f"Unknown extraction mode {mode!r}; expected one of {MODES}")

    soup = BeautifulSoup(html, "html.parser")
    crawl = mode == "crawl"

    embedded = None if crawl else mine_embedded_data(soup)

    strip_noise(soup, crawl=crawl)
    main_text = select_main_text(soup)

    return ExtractedPage(
        url=url,
        title=extract_title(soup),
        main_text=main_text[:MAX_MAIN_TEXT],
        content_length=len(main_text),
        paragraphs=extract_paragraphs(soup),
        text_content=extract_text_blocks(soup, own_text_only=mode == "rendered"),
        tables=extract_tables(soup),
        download_links=extract_download_links(soup, url),
        internal_links=extract_internal_links(soup, url) if crawl else [],
        embedded_data=embedded,
    )
