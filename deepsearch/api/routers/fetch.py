"""Single-page extraction endpoints.

Routes
------
GET /fetch?url=...&render=never|auto    static fetch (optionally SPA-aware)
GET /fetch-js?url=...                   headless-browser render
"""

from __future__ import annotations

from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Literal

from fastapi import APIRouter, HTTPException, Request

from deepsearch.errors import DeepSearchError, RenderingUnavailable, UnsupportedContentType
from deepsearch.scraper.extractor import extract_page
from deepsearch.scraper.models import FetchResult

router = APIRouter()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _error(error: str, exc: Exception) -> dict[str, str]:
    return {"error": error, "message": str(exc)}


def _page_response(result: FetchResult, tag: str) -> dict[str, Any]:
    """Turn a fetch result into the single-page payload, or raise ``HTTPException``."""
    try:
        result.raise_for_error()
        if result.kind == "json":
            return {"type": "json", "url": result.url, "data": result.json_data}
        result.require_html().raise_for_error()
    except UnsupportedContentType as exc:
        raise HTTPException(status_code=415, detail=_error("Unsupported content type", exc)) from exc
    except DeepSearchError as exc:
        print(f"[{tag}] Error: {exc}")
        raise HTTPException(status_code=502, detail=_error("Error fetching URL", exc)) from exc

    mode = "rendered" if result.rendered_with else "page"
    page = extract_page(result.body or "", result.effective_url, mode=mode)

    payload: dict[str, Any] = {
        "type": "html",
        "url": result.url,
        "title": page.title,
        "text_content": page.text_content,
        "tables": [asdict(table) for table in page.tables],
        "download_links": [asdict(link) for link in page.download_links],
        "fetched_at": datetime.now(timezone.utc).isoformat(),
    }
    embedded = page.embedded_data
    if embedded is not None and embedded.found:
        print(
            f"[{tag}] Embedded data found: {embedded.total_items} item(s), "
            f"{len(embedded.api_urls)} API URL(s)"
        )
        payload["embedded_data"] = embedded.to_dict()
    if result.api_calls:
        payload["api_calls"] = result.api_calls
    if result.rendered_with:
        payload["rendered_with"] = result.rendered_with

    print(
        f"[{tag}] Extracted: {len(page.text_content)} text block(s), "
        f"{len(page.tables)} table(s), {len(page.download_links)} file(s)"
    )
    return payload


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/fetch")
def fetch(
    request: Request,
    url: str,
    render: Literal["never", "auto"] = "never",
) -> dict[str, Any]:
    """Fetch *url* and return its title, text blocks, tables and download links.

    JSON responses are passed through as ``{"type": "json", "data": ...}``.
    With ``render=auto`` pages that look like JavaScript apps are re-fetched
    through the headless browser when one is available.
    """
    source = request.app.state.auto_source if render == "auto" else request.app.state.fetcher
    print(f"[Fetch] Fetching: {url}")
    return _page_response(source.fetch(url), "Fetch")


@router.get("/fetch-js")
def fetch_js(request: Request, url: str) -> dict[str, Any]:
    """Render *url* in headless Chromium and extract the final DOM."""
    print(f"[FetchJS] Rendering: {url}")
    try:
        result = request.app.state.renderer.fetch(url)
    except RenderingUnavailable as exc:
        raise HTTPException(
            status_code=503,
            detail={
                "error": "Rendering not available",
                "message": str(exc),
                "suggestion": "Try using the static fetch endpoint: /fetch",
            },
        ) from exc
    return _page_response(result, "FetchJS")
