"""HTTP API tests.

Every collaborator on ``app.state`` is replaced after startup with a mock or
an in-memory page source, so no network, browser or search engine is needed.
"""

from __future__ import annotations

from typing import Generator
from unittest.mock import MagicMock

import pytest
from fastapi.testclient import TestClient

from deepsearch import __version__
from deepsearch.api.app import create_app
from deepsearch.config import Settings
from deepsearch.crawl.state import CrawlError, CrawlResult, PageVisitRecord
from deepsearch.errors import CrawlCapacityExceeded, RenderingUnavailable, UpstreamSearchError
from deepsearch.scraper.models import ErrorKind, FetchResult

_PAGE_URL = "https://energia.test/precios"

_HTML = """\
<html>
<head>
  <title>Precios de combustibles</title>
  <script>var tiendas = [{"name": "Estación Norte", "lat": -0.18, "lng": -78.47}];</script>
</head>
<body>
  <nav>Inicio | Noticias</nav>
  <h1>Precios vigentes</h1>
  <p>Los precios de los combustibles se actualizan cada mes.</p>
  <table>
    <tr><th>Producto</th><th>Precio</th></tr>
    <tr><td>Diésel</td><td>1.80</td></tr>
  </table>
  <a href="/docs/boletin-marzo.pdf">Boletín de marzo</a>
</body>
</html>
"""


def _html_result(**overrides) -> FetchResult:
    values = dict(
        url=_PAGE_URL,
        succeeded=True,
        http_status=200,
        content_type="text/html",
        kind="html",
        body=_HTML,
    )
    values.update(overrides)
    return FetchResult(**values)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture()
def client() -> Generator[TestClient, None, None]:
    app = create_app(Settings(searxng_base_url="http://searx.invalid"))
    with TestClient(app, raise_server_exceptions=True) as c:
        c.app.state.fetcher = MagicMock()
        c.app.state.auto_source = MagicMock()
        c.app.state.renderer = MagicMock()
        c.app.state.searxng = MagicMock()
        c.app.state.controller = MagicMock()
        yield c


# ===========================================================================
# /health
# ===========================================================================

def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    body = resp.json()
    assert body["status"] == "ok"
    assert body["version"] == __version__
    assert "timestamp" in body


def test_startup_builds_services():
    with TestClient(create_app(Settings())) as c:
        state = c.app.state
        for name in ("settings", "fetcher", "renderer", "auto_source", "searxng", "controller"):
            assert getattr(state, name) is not None


# ===========================================================================
# /fetch
# ===========================================================================

class TestFetch:
    def test_html_page(self, client):
        client.app.state.fetcher.fetch.return_value = _html_result()

        resp = client.get("/fetch", params={"url": _PAGE_URL})

        assert resp.status_code == 200
        body = resp.json()
        assert body["type"] == "html"
        assert body["url"] == _PAGE_URL
        assert body["title"] == "Precios de combustibles"
        assert "Los precios de los combustibles se actualizan cada mes." in body["text_content"]
        assert "Inicio | Noticias" not in body["text_content"]
        assert body["tables"] == [{"headers": ["Producto", "Precio"], "rows": [["Diésel", "1.80"]]}]
        assert body["download_links"] == [
            {
                "text": "Boletín de marzo",
                "url": "https://energia.test/docs/boletin-marzo.pdf",
                "kind": "pdf",
            }
        ]
        assert body["embedded_data"]["found"] is True
        assert body["embedded_data"]["stores"][0]["name"] == "Estación Norte"
        assert "fetched_at" in body
        assert "rendered_with" not in body
        client.app.state.fetcher.fetch.assert_called_once_with(_PAGE_URL)

    def test_no_embedded_data_key_when_nothing_found(self, client):
        client.app.state.fetcher.fetch.return_value = _html_result(
            body="<html><body><p>Solo texto plano en esta página.</p></body></html>"
        )
        body = client.get("/fetch", params={"url": _PAGE_URL}).json()
        assert "embedded_data" not in body

    def test_json_passthrough(self, client):
        client.app.state.fetcher.fetch.return_value = FetchResult(
            url="https://api.test/stores",
            succeeded=True,
            http_status=200,
            content_type="application/json",
            kind="json",
            json_data=[{"id": 1}],
        )
        body = client.get("/fetch", params={"url": "https://api.test/stores"}).json()
        assert body == {"type": "json", "url": "https://api.test/stores", "data": [{"id": 1}]}

    def test_upstream_http_error_is_502(self, client):
        client.app.state.fetcher.fetch.return_value = FetchResult.failure(
            _PAGE_URL, ErrorKind.HTTP, "HTTP 404", 404
        )
        resp = client.get("/fetch", params={"url": _PAGE_URL})
        assert resp.status_code == 502
        assert resp.json()["detail"] == {"error": "Error fetching URL", "message": "HTTP 404"}

    def test_timeout_is_502(self, client):
        client.app.state.fetcher.fetch.return_value = FetchResult.failure(
            _PAGE_URL, ErrorKind.TIMEOUT, "Timeout"
        )
        resp = client.get("/fetch", params={"url": _PAGE_URL})
        assert resp.status_code == 502
        assert resp.json()["detail"]["message"] == "Timeout"

    def test_binary_content_is_415(self, client):
        client.app.state.fetcher.fetch.return_value = FetchResult(
            url=_PAGE_URL,
            succeeded=True,
            http_status=200,
            content_type="image/png",
            kind="other",
            body="\x89PNG",
        )
        resp = client.get("/fetch", params={"url": _PAGE_URL})
        assert resp.status_code == 415
        assert resp.json()["detail"]["message"] == "Not HTML content"

    def test_render_auto_uses_auto_source(self, client):
        client.app.state.auto_source.fetch.return_value = _html_result(rendered_with="playwright")
        body = client.get("/fetch", params={"url": _PAGE_URL, "render": "auto"}).json()

        assert body["rendered_with"] == "playwright"
        client.app.state.fetcher.fetch.assert_not_called()

    def test_unknown_render_mode_is_rejected(self, client):
        resp = client.get("/fetch", params={"url": _PAGE_URL, "render": "sometimes"})
        assert resp.status_code == 422

    def test_missing_url_is_rejected(self, client):
        assert client.get("/fetch").status_code == 422


# ===========================================================================
# /fetch-js
# ===========================================================================

class TestFetchJs:
    def test_rendered_page_includes_api_calls(self, client):
        api_calls = [{"url": "https://energia.test/api/precios", "method": "GET", "status": 200,
                      "data_preview": "[]", "is_array": True, "item_count": 0}]
        client.app.state.renderer.fetch.return_value = _html_result(
            api_calls=api_calls, rendered_with="playwright"
        )

        body = client.get("/fetch-js", params={"url": _PAGE_URL}).json()

        assert body["rendered_with"] == "playwright"
        assert body["api_calls"] == api_calls
        assert body["title"] == "Precios de combustibles"

    def test_rendering_unavailable_is_503(self, client):
        client.app.state.renderer.fetch.side_effect = RenderingUnavailable("no browser")
        resp = client.get("/fetch-js", params={"url": _PAGE_URL})

        assert resp.status_code == 503
        detail = resp.json()["detail"]
        assert detail["error"] == "Rendering not available"
        assert "/fetch" in detail["suggestion"]

    def test_render_failure_is_502(self, client):
        client.app.state.renderer.fetch.return_value = FetchResult.failure(
            _PAGE_URL, ErrorKind.NETWORK, "net::ERR_NAME_NOT_RESOLVED"
        )
        resp = client.get("/fetch-js", params={"url": _PAGE_URL})
        assert resp.status_code == 502


# ===========================================================================
# /search
# ===========================================================================

class TestSearchProxy:
    def test_passes_query_params_through(self, client):
        client.app.state.searxng.raw_search.return_value = {"results": [{"url": "https://a.test"}]}

        resp = client.get("/search", params={"q": "combustibles", "language": "es", "pageno": "2"})

        assert resp.status_code == 200
        assert resp.json() == {"results": [{"url": "https://a.test"}]}
        client.app.state.searxng.raw_search.assert_called_once_with(
            {"q": "combustibles", "language": "es", "pageno": "2"}
        )

    def test_upstream_failure_is_502(self, client):
        client.app.state.searxng.raw_search.side_effect = UpstreamSearchError("connection refused")
        resp = client.get("/search", params={"q": "combustibles"})

        assert resp.status_code == 502
        assert resp.json()["detail"]["error"] == "Search failed"

    def test_missing_query_is_rejected(self, client):
        assert client.get("/search").status_code == 422


class TestConfigProxy:
    def test_returns_instance_config(self, client):
        client.app.state.searxng.raw_config.return_value = {"engines": [{"name": "google"}]}

        resp = client.get("/config")

        assert resp.status_code == 200
        assert resp.json() == {"engines": [{"name": "google"}]}
        client.app.state.searxng.raw_config.assert_called_once_with()

    def test_upstream_failure_is_502(self, client):
        client.app.state.searxng.raw_config.side_effect = UpstreamSearchError("connection refused")
        resp = client.get("/config")

        assert resp.status_code == 502
        assert resp.json()["detail"]["error"] == "Config request failed"


# ===========================================================================
# /deep-search
# ===========================================================================

def _crawl_result(errors=None) -> CrawlResult:
    return CrawlResult(
        query="combustibles Ecuador",
        total_pages_visited=2,
        total_content_extracted=1,
        elapsed_time_ms=42,
        pages=[PageVisitRecord(url="https://a.test/", title="A", content="texto", depth=0)],
        consolidated_text='## Deep search results for: "combustibles Ecuador"\n\n',
        errors=list(errors or []),
    )


class TestDeepSearch:
    def test_success(self, client):
        controller = client.app.state.controller
        controller.deep_search.return_value = _crawl_result(
            errors=[CrawlError(url="https://b.test/", error="HTTP 404")]
        )

        resp = client.post(
            "/deep-search",
            json={"query": "combustibles Ecuador", "max_results": 2, "max_depth": 0},
        )

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["total_pages_visited"] == 2
        assert body["pages"][0] == {
            "url": "https://a.test/",
            "title": "A",
            "content": "texto",
            "paragraphs": [],
            "depth": 0,
        }
        assert body["errors"] == [{"url": "https://b.test/", "error": "HTTP 404"}]
        controller.deep_search.assert_called_once_with(
            "combustibles Ecuador",
            max_results=2,
            max_depth=0,
            max_pages_per_site=3,
            language="es",
        )

    def test_errors_omitted_when_none(self, client):
        client.app.state.controller.deep_search.return_value = _crawl_result()
        body = client.post("/deep-search", json={"query": "combustibles Ecuador"}).json()
        assert "errors" not in body

    def test_missing_query_is_rejected(self, client):
        resp = client.post("/deep-search", json={})
        assert resp.status_code == 422
        client.app.state.controller.deep_search.assert_not_called()

    @pytest.mark.parametrize("field,value", [("max_results", 0), ("max_results", 21), ("max_pages_per_site", 0)])
    def test_out_of_range_bounds_are_rejected(self, client, field, value):
        resp = client.post("/deep-search", json={"query": "q", field: value})
        assert resp.status_code == 422

    def test_blank_query_is_400(self, client):
        client.app.state.controller.deep_search.side_effect = ValueError("query is required")
        resp = client.post("/deep-search", json={"query": "   "})
        assert resp.status_code == 400
        assert resp.json()["detail"]["message"] == "query is required"

    def test_search_failure_is_502(self, client):
        client.app.state.controller.deep_search.side_effect = UpstreamSearchError("down")
        resp = client.post("/deep-search", json={"query": "combustibles"})
        assert resp.status_code == 502
        assert resp.json()["detail"]["error"] == "Deep search failed"

    def test_capacity_exceeded_is_503(self, client):
        client.app.state.controller.deep_search.side_effect = CrawlCapacityExceeded("busy")
        resp = client.post("/deep-search", json={"query": "combustibles"})
        assert resp.status_code == 503
