"""Page sources: a bounded-time HTTP fetcher and a headless-browser renderer.

Every source implements :class:`PageSource` and returns a
:class:`~deepsearch.scraper.models.FetchResult`, so the single-page endpoints
and the deep-search crawl feed one shared extractor whichever way the HTML
was produced.
"""

from __future__ import annotations

import json
import re
import time
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from typing import Optional

import httpx
from bs4 import UnicodeDammit
from bs4.dammit import EncodingDetector

from deepsearch.config import Settings
from deepsearch.errors import FetchTimeout, RenderingUnavailable
from deepsearch.scraper.models import ErrorKind, FetchResult

# ---------------------------------------------------------------------------
# SPA / JS-rendered page detection heuristics
# ---------------------------------------------------------------------------
_SPA_PATTERNS = [
    re.compile(r'<div[^>]+id=["\'](?:root|app)["\']', re.IGNORECASE),
    re.compile(r"window\.__NEXT_DATA__", re.IGNORECASE),
    re.compile(r"ng-version=", re.IGNORECASE),
    re.compile(r"data-reactroot", re.IGNORECASE),
]

_ACCEPT = "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"

# JSON responses from these hosts are library traffic, not site data.
_IGNORED_API_HOSTS = ("googleapis.com", "google.com/maps", "gstatic.com", "facebook", "analytics")


def is_spa(html: str) -> bool:
    """Return ``True`` if *html* looks like a JavaScript SPA that needs rendering."""
    for pattern in _SPA_PATTERNS:
        if pattern.search(html):
            return True
    # Heuristic: very little visible text relative to total HTML size.
    # Strip <script> and <style> blocks first so their source code doesn't
    # count as visible text, then strip remaining tags.
    no_scripts = re.sub(r"<(script|style)[^>]*>.*?</(script|style)>", "", html, flags=re.IGNORECASE | re.DOTALL)
    stripped = re.sub(r"<[^>]+>", "", no_scripts).strip()
    if len(html) > 2000 and len(stripped) < 200:
        return True
    return False


def decode_body(body: bytes, charset: Optional[str] = None) -> str:
    """Decode *body*, trusting a header charset first and then ``<meta charset>``."""
    declared = charset or EncodingDetector.find_declared_encoding(body, is_html=True)
    dammit = UnicodeDammit(body, known_definite_encodings=[declared or "utf-8"], is_html=True)
    if dammit.unicode_markup is None:
        return body.decode("utf-8", errors="replace")
    return dammit.unicode_markup


def classify_content_type(content_type: str) -> str:
    """Map a Content-Type header to ``"json"``, ``"html"`` or ``"other"``."""
    ct = content_type.lower()
    if "application/json" in ct:
        return "json"
    if "text/html" in ct or "application/xhtml" in ct:
        return "html"
    return "other"


# ---------------------------------------------------------------------------
# Abstract base
# ---------------------------------------------------------------------------

class PageSource(ABC):
    """Anything that can turn a URL into a :class:`FetchResult`."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Short source name used in log lines."""

    @abstractmethod
    def fetch(self, url: str, timeout: Optional[float] = None) -> FetchResult:
        """Fetch *url* within *timeout* seconds.

        Must return a failed result (not raise) for network, timeout and HTTP
        errors.
        """


# ---------------------------------------------------------------------------
# Static HTTP fetcher
# ---------------------------------------------------------------------------

class Fetcher(PageSource):
    """Single GET with browser-like headers and a hard wall-clock deadline.

    ``httpx`` timeouts only bound each network operation, so a server that
    trickles its headers could hold a request far past its budget.  The
    exchange therefore runs in a worker thread that the caller stops waiting
    for once the budget is spent; the client is closed so the worker's socket
    is released.  The body is streamed and the deadline is checked after
    every chunk as well.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings
        self._headers = {
            "User-Agent": settings.user_agent,
            "Accept": _ACCEPT,
            "Accept-Language": settings.accept_language,
        }

    @property
    def name(self) -> str:
        return "static"

    def fetch(self, url: str, timeout: Optional[float] = None) -> FetchResult:
        budget = timeout if timeout is not None else self._settings.request_timeout
        deadline = time.monotonic() + budget
        clients: list[httpx.Client] = []

        pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="fetch")
        try:
            future = pool.submit(self._exchange, url, budget, deadline, clients)
            try:
                return future.result(timeout=budget)
            except FuturesTimeout:
                print(f"[Fetch] {url} exceeded its {budget:.1f}s budget; abandoning.")
                for client in clients:
                    client.close()
                return FetchResult.failure(url, ErrorKind.TIMEOUT, "Timeout")
        finally:
            pool.shutdown(wait=False)

    def _exchange(
        self,
        url: str,
        budget: float,
        deadline: float,
        clients: list[httpx.Client],
    ) -> FetchResult:
        try:
            with httpx.Client(
                headers=self._headers,
                timeout=budget,
                follow_redirects=True,
            ) as client:
                clients.append(client)
                with client.stream("GET", url) as response:
                    if time.monotonic() > deadline:
                        raise FetchTimeout(url, "Timeout")
                    status = response.status_code
                    content_type = response.headers.get("content-type", "")
                    final_url = str(response.url)
                    if not response.is_success:
                        return FetchResult.failure(url, ErrorKind.HTTP, f"HTTP {status}", status)
                    body = self._read_body(url, response, deadline)
                    charset = response.charset_encoding
        except (FetchTimeout, httpx.TimeoutException):
            return FetchResult.failure(url, ErrorKind.TIMEOUT, "Timeout")
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            return FetchResult.failure(url, ErrorKind.NETWORK, str(exc) or type(exc).__name__)

        kind = classify_content_type(content_type)
        if kind == "json":
            try:
                data = json.loads(body)
            except ValueError:
                return FetchResult.failure(url, ErrorKind.PARSE_ERROR, "Invalid JSON body", status)
            return FetchResult(
                url=url,
                succeeded=True,
                http_status=status,
                content_type=content_type,
                kind="json",
                json_data=data,
                final_url=final_url,
            )

        return FetchResult(
            url=url,
            succeeded=True,
            http_status=status,
            content_type=content_type,
            kind=kind,
            body=decode_body(body, charset),
            final_url=final_url,
        )

    def _read_body(self, url: str, response: httpx.Response, deadline: float) -> bytes:
        limit = self._settings.max_body_bytes
        buf = bytearray()
        for chunk in response.iter_bytes():
            if time.monotonic() > deadline:
                raise FetchTimeout(url, "Timeout")
            buf.extend(chunk)
            if len(buf) >= limit:
                print(f"[Fetch] {url} body exceeds {limit} bytes; truncating.")
                break
        return bytes(buf[:limit])


# ---------------------------------------------------------------------------
# Headless-browser renderer
# ---------------------------------------------------------------------------

class RenderedPageSource(PageSource):
    """Render *url* with headless Chromium and return the final DOM as HTML.

    Playwright is imported lazily so the static path keeps working on hosts
    without a browser install; in that case :class:`RenderingUnavailable` is
    raised and the caller decides how to degrade.
    """

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    @property
    def name(self) -> str:
        return "playwright"

    def fetch(self, url: str, timeout: Optional[float] = None) -> FetchResult:
        try:
            from playwright.sync_api import Error as PlaywrightError  # noqa: PLC0415
            from playwright.sync_api import TimeoutError as PlaywrightTimeout  # noqa: PLC0415
            from playwright.sync_api import sync_playwright  # noqa: PLC0415
        except ImportError as exc:
            raise RenderingUnavailable(
                "JavaScript rendering is not available on this server. Use /fetch instead."
            ) from exc

        budget = timeout if timeout is not None else self._settings.render_timeout
        json_responses: list = []

        try:
            with sync_playwright() as pw:
                try:
                    browser = pw.chromium.launch(
                        headless=True,
                        args=["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu"],
                    )
                except PlaywrightError as exc:
                    raise RenderingUnavailable(f"Could not launch Chromium: {exc}") from exc

                try:
                    page = browser.new_page(
                        user_agent=self._settings.user_agent,
                        viewport={"width": 1920, "height": 1080},
                        extra_http_headers={"Accept-Language": self._settings.accept_language},
                    )
                    page.on("response", lambda resp: _remember_json_response(resp, json_responses))
                    response = page.goto(url, timeout=int(budget * 1000), wait_until="networkidle")
                    page.wait_for_timeout(int(self._settings.render_settle_delay * 1000))
                    html = page.content()
                    final_url = page.url
                    api_calls = _summarise_api_calls(json_responses, PlaywrightError)
                finally:
                    browser.close()
        except PlaywrightTimeout:
            return FetchResult.failure(url, ErrorKind.TIMEOUT, "Timeout")
        except PlaywrightError as exc:
            return FetchResult.failure(url, ErrorKind.NETWORK, str(exc))

        status = response.status if response is not None else 200
        if not 200 <= status < 300:
            return FetchResult.failure(url, ErrorKind.HTTP, f"HTTP {status}", status)

        for call in api_calls:
            print(f"[FetchJS] API call captured: {call['url']}")

        return FetchResult(
            url=url,
            succeeded=True,
            http_status=status,
            content_type="text/html",
            kind="html",
            body=html,
            api_calls=api_calls,
            rendered_with=self.name,
            final_url=final_url,
        )


def _remember_json_response(response, sink: list) -> None:
    content_type = response.headers.get("content-type", "")
    if "application/json" not in content_type:
        return
    if any(host in response.url for host in _IGNORED_API_HOSTS):
        return
    sink.append(response)


def _summarise_api_calls(responses: list, error_cls: type) -> list[dict]:
    calls: list[dict] = []
    for response in responses:
        try:
            data = response.json()
        except (error_cls, ValueError):
            continue
        calls.append({
            "url": response.url,
            "method": response.request.method,
            "status": response.status,
            "data_preview": json.dumps(data)[:500],
            "is_array": isinstance(data, list),
            "item_count": len(data) if isinstance(data, list) else None,
        })
    return calls


# ---------------------------------------------------------------------------
# Static first, render when the page turns out to be an SPA
# ---------------------------------------------------------------------------

class AutoPageSource(PageSource):
    """Fetch statically and re-fetch with *rendered* when the HTML is an SPA shell."""

    def __init__(self, static: PageSource, rendered: PageSource) -> None:
        self._static = static
        self._rendered = rendered

    @property
    def name(self) -> str:
        return "auto"

    def fetch(self, url: str, timeout: Optional[float] = None) -> FetchResult:
        result = self._static.fetch(url, timeout)
        if not result.is_html or not is_spa(result.body or ""):
            return result

        print(f"[Fetch] {url} looks like a JavaScript app; rendering with {self._rendered.name} …")
        try:
            rendered = self._rendered.fetch(url, timeout)
        except RenderingUnavailable as exc:
            print(f"[Fetch] rendering unavailable ({exc}); keeping static HTML.")
            return result

        if not rendered.succeeded:
            print(f"[Fetch] rendering failed ({rendered.error}); keeping static HTML.")
            return result
        return rendered
