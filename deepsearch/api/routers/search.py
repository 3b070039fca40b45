"""Search proxy and deep-search endpoints.

Routes
------
GET  /search?q=<query>&...      SearXNG JSON passed through
GET  /config                    SearXNG instance configuration passed through
POST /deep-search               Body: {"query": "...", "max_results": 5, ...}
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from deepsearch.errors import CrawlCapacityExceeded, UpstreamSearchError

router = APIRouter()


# ---------------------------------------------------------------------------
# Schemas
# ---------------------------------------------------------------------------

class DeepSearchRequest(BaseModel):
    query: str = Field(..., min_length=1)
    max_results: int = Field(5, ge=1, le=20)
    # 0 visits search results only; any larger value follows one level of links.
    max_depth: int = Field(1, ge=0)
    max_pages_per_site: int = Field(3, ge=1, le=10)
    language: str = "es"


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.get("/search")
def search_proxy(request: Request, q: str) -> dict[str, Any]:
    """Forward the query string to SearXNG and return its JSON unchanged."""
    print(f"[Proxy] Searching: {q}")
    params = dict(request.query_params)
    try:
        data = request.app.state.searxng.raw_search(params)
    except UpstreamSearchError as exc:
        print(f"[Proxy] Error: {exc}")
        raise HTTPException(
            status_code=502, detail={"error": "Search failed", "message": str(exc)}
        ) from exc
    print(f"[Proxy] {len(data.get('results') or [])} result(s)")
    return data


@router.get("/config")
def config_proxy(request: Request) -> dict[str, Any]:
    """Return the SearXNG instance configuration (engines, categories, locales)."""
    try:
        return request.app.state.searxng.raw_config()
    except UpstreamSearchError as exc:
        print(f"[Proxy] Config error: {exc}")
        raise HTTPException(
            status_code=502, detail={"error": "Config request failed", "message": str(exc)}
        ) from exc


@router.post("/deep-search")
def deep_search(body: DeepSearchRequest, request: Request) -> dict[str, Any]:
    """Search, crawl the top results and return a consolidated digest.

    Individual page failures are listed under ``errors``; only a failing
    search collaborator fails the whole request.
    """
    controller = request.app.state.controller
    try:
        result = controller.deep_search(
            body.query,
            max_results=body.max_results,
            max_depth=body.max_depth,
            max_pages_per_site=body.max_pages_per_site,
            language=body.language,
        )
    except ValueError as exc:
        raise HTTPException(
            status_code=400, detail={"error": "Invalid request", "message": str(exc)}
        ) from exc
    except UpstreamSearchError as exc:
        print(f"[DeepSearch] Error: {exc}")
        raise HTTPException(
            status_code=502, detail={"error": "Deep search failed", "message": str(exc)}
        ) from exc
    except CrawlCapacityExceeded as exc:
        raise HTTPException(
            status_code=503, detail={"error": "Too many deep searches", "message": str(exc)}
        ) from exc
    return result.to_dict()
