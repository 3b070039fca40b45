"""Data models for the scraper pipeline."""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, List, Optional

from deepsearch.errors import (
    FetchError,
    FetchTimeout,
    HttpError,
    NetworkError,
    ParseError,
    UnsupportedContentType,
)


class ErrorKind(str, enum.Enum):
    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP = "http"
    UNSUPPORTED_CONTENT_TYPE = "unsupported_content_type"
    PARSE_ERROR = "parse_error"


@dataclass
class FetchResult:
    """Outcome of one fetch attempt.

    ``kind`` is ``"html"``, ``"json"`` or ``"other"`` for successful fetches
    and ``None`` when the fetch failed.
    """

    url: str
    succeeded: bool
    http_status: Optional[int] = None
    content_type: Optional[str] = None
    kind: Optional[str] = None
    body: Optional[str] = None
    json_data: Any = None
    error_kind: Optional[ErrorKind] = None
    error: Optional[str] = None
    api_calls: List[dict] = field(default_factory=list)
    rendered_with: Optional[str] = None
    final_url: Optional[str] = None

    @classmethod
    def failure(
        cls,
        url: str,
        kind: ErrorKind,
        error: str,
        http_status: Optional[int] = None,
    ) -> "FetchResult":
        return cls(
            url=url,
            succeeded=False,
            http_status=http_status,
            error_kind=kind,
            error=error,
        )

    @property
    def effective_url(self) -> str:
        """URL the body was served from, after redirects."""
        return self.final_url or self.url

    @property
    def is_html(self) -> bool:
        return self.succeeded and self.kind == "html"

    def require_html(self) -> "FetchResult":
        """Return ``self`` if it holds HTML, else an unsupported-content failure."""
        if not self.succeeded or self.is_html:
            return self
        failed = FetchResult.failure(
            self.url, ErrorKind.UNSUPPORTED_CONTENT_TYPE, "Not HTML content", self.http_status
        )
        failed.content_type = self.content_type
        return failed

    def raise_for_error(self) -> None:
        """Raise the exception matching ``error_kind`` if the fetch failed."""
        if self.succeeded:
            return
        message = self.error or "Fetch failed"
        if self.error_kind is ErrorKind.HTTP and self.http_status is not None:
            raise HttpError(self.url, self.http_status)
        if self.error_kind is ErrorKind.TIMEOUT:
            raise FetchTimeout(self.url, message)
        if self.error_kind is ErrorKind.NETWORK:
            raise NetworkError(self.url, message)
        if self.error_kind is ErrorKind.UNSUPPORTED_CONTENT_TYPE:
            raise UnsupportedContentType(self.url, message)
        if self.error_kind is ErrorKind.PARSE_ERROR:
            raise ParseError(message)
        raise FetchError(self.url, message)


@dataclass
class Table:
    headers: List[str] = field(default_factory=list)
    rows: List[List[str]] = field(default_factory=list)


@dataclass
class DownloadLink:
    text: str
    url: str
    kind: str


@dataclass
class InternalLink:
    url: str
    text: str


@dataclass
class EmbeddedData:
    """Best-effort structured data mined from inline scripts and attributes."""

    stores: List[Any] = field(default_factory=list)
    markers: List[dict] = field(default_factory=list)
    json_objects: List[Any] = field(default_factory=list)
    api_urls: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.stores or self.markers or self.json_objects or self.api_urls)

    @property
    def total_items(self) -> int:
        return len(self.stores) + len(self.markers) + len(self.json_objects)

    def to_dict(self) -> dict[str, Any]:
        return {
            "found": self.found,
            "stores": self.stores,
            "markers": self.markers,
            "json_objects": self.json_objects,
            "api_urls": self.api_urls,
            "total_items": self.total_items,
        }


@dataclass(frozen=True)
class ExtractedPage:
    """Structured content extracted from one HTML document."""

    url: str
    title: str
    main_text: str
    content_length: int = 0
    paragraphs: List[str] = field(default_factory=list)
    text_content: List[str] = field(default_factory=list)
    tables: List[Table] = field(default_factory=list)
    download_links: List[DownloadLink] = field(default_factory=list)
    internal_links: List[InternalLink] = field(default_factory=list)
    embedded_data: Optional[EmbeddedData] = None
