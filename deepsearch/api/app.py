"""FastAPI application factory.

Lifespan
--------
On startup the app builds its collaborators once from the
:class:`~deepsearch.config.Settings` passed to :func:`create_app` and
stores them on ``app.state``:

    settings     — the configuration value
    fetcher      — static HTTP page source
    renderer     — headless-browser page source
    auto_source  — static first, rendered for SPA shells
    searxng      — SearXNG client used by the ``/search`` and ``/config`` proxies
    controller   — deep-search crawl controller

Routers
-------
    /health, /search, /config, /deep-search   — search proxies and deep search
    /fetch, /fetch-js                          — single-page extraction
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from deepsearch import __version__
from deepsearch.api.routers import fetch as fetch_router
from deepsearch.api.routers import search as search_router
from deepsearch.config import Settings
from deepsearch.crawl.controller import DeepSearchController
from deepsearch.crawl.search_providers import SearXNGProvider, build_default_chain
from deepsearch.scraper.fetcher import AutoPageSource, Fetcher, RenderedPageSource


def build_services(app: FastAPI, settings: Settings) -> None:
    """Construct every collaborator from *settings* and attach it to ``app.state``."""
    fetcher = Fetcher(settings)
    renderer = RenderedPageSource(settings)
    app.state.settings = settings
    app.state.fetcher = fetcher
    app.state.renderer = renderer
    app.state.auto_source = AutoPageSource(fetcher, renderer)
    app.state.searxng = SearXNGProvider(settings)
    app.state.controller = DeepSearchController(
        settings,
        search=build_default_chain(settings),
        source=fetcher,
    )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """Return a fully-configured FastAPI application instance."""

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        build_services(app, settings or Settings())
        print(f"[server] deepsearch {__version__} ready")
        yield

    app = FastAPI(
        title="deepsearch API",
        description=(
            "Search proxy, single-page content extraction (static and "
            "JavaScript-rendered) and bounded deep-search crawling that "
            "consolidates visited pages into one digest."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    # Allow browser frontends on any origin (tighten for production).
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.get("/health", tags=["health"])
    def health() -> dict[str, Any]:
        return {
            "status": "ok",
            "version": __version__,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    app.include_router(search_router.router, tags=["search"])
    app.include_router(fetch_router.router, tags=["fetch"])

    return app


# Module-level instance used by uvicorn:
#   uvicorn deepsearch.api.app:app --reload
app = create_app()
