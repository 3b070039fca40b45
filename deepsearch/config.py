"""Centralised settings for the deepsearch service.

All runtime configuration is resolved here in one place.  Values can be
overridden via environment variables or a `.env` file in the project root
(loaded automatically when this module is imported).

A :class:`Settings` value is built once at process start-up and handed to
the fetcher, the search providers and the crawl controller when they are
constructed; nothing in the core reads configuration from module globals.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

# Load .env from the project root (one level up from the package)
_env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(_env_path, override=False)

_BROWSER_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)


def _split_csv(value: str) -> list[str]:
    return [item.strip().rstrip("/") for item in value.split(",") if item.strip()]


@dataclass
class Settings:
    # ------------------------------------------------------------------
    # Search collaborator
    # ------------------------------------------------------------------
    searxng_base_url: str = field(
        default_factory=lambda: os.environ.get("SEARXNG_URL", "http://localhost:8080")
    )
    searxng_fallback_instances: list[str] = field(
        default_factory=lambda: _split_csv(os.environ.get("SEARXNG_FALLBACK_INSTANCES", ""))
    )
    brave_api_key: str = field(
        default_factory=lambda: os.environ.get("BRAVE_API_KEY", "")
    )
    search_timeout: float = field(
        default_factory=lambda: float(os.environ.get("SEARCH_TIMEOUT", "10.0"))
    )
    search_retry_max: int = field(
        default_factory=lambda: int(os.environ.get("SEARCH_RETRY_MAX", "2"))
    )
    search_retry_base_delay: float = field(
        default_factory=lambda: float(os.environ.get("SEARCH_RETRY_BASE_DELAY", "2.0"))
    )

    # ------------------------------------------------------------------
    # Fetcher
    # ------------------------------------------------------------------
    user_agent: str = field(
        default_factory=lambda: os.environ.get("USER_AGENT", _BROWSER_UA)
    )
    accept_language: str = field(
        default_factory=lambda: os.environ.get("ACCEPT_LANGUAGE", "es-ES,es;q=0.9,en;q=0.8")
    )
    request_timeout: float = field(
        default_factory=lambda: float(os.environ.get("REQUEST_TIMEOUT", "30.0"))
    )
    max_body_bytes: int = field(
        default_factory=lambda: int(os.environ.get("MAX_BODY_BYTES", str(10 * 1024 * 1024)))
    )

    # ------------------------------------------------------------------
    # Headless rendering
    # ------------------------------------------------------------------
    render_timeout: float = field(
        default_factory=lambda: float(os.environ.get("RENDER_TIMEOUT", "30.0"))
    )
    render_settle_delay: float = field(
        default_factory=lambda: float(os.environ.get("RENDER_SETTLE_DELAY", "2.0"))
    )

    # ------------------------------------------------------------------
    # Deep search
    # ------------------------------------------------------------------
    crawl_page_timeout: float = field(
        default_factory=lambda: float(os.environ.get("CRAWL_PAGE_TIMEOUT", "15.0"))
    )
    crawl_workers: int = field(
        default_factory=lambda: int(os.environ.get("CRAWL_WORKERS", "1"))
    )
    max_concurrent_crawls: int = field(
        default_factory=lambda: int(os.environ.get("MAX_CONCURRENT_CRAWLS", "4"))
    )
    digest_max_chars: int = field(
        default_factory=lambda: int(os.environ.get("DIGEST_MAX_CHARS", "30000"))
    )
    digest_page_chars: int = field(
        default_factory=lambda: int(os.environ.get("DIGEST_PAGE_CHARS", "2000"))
    )
