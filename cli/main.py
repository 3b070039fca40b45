"""deepsearch CLI — entry-point for the service's operations.

Usage:
    python cli/main.py --help

Commands:
    fetch        → single-page extraction (static, auto or rendered)
    deep-search  → search + bounded crawl + consolidated digest
    serve        → run the HTTP API with uvicorn
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from deepsearch.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import json
from dataclasses import asdict

import typer

from deepsearch.config import Settings
from deepsearch.errors import DeepSearchError

app = typer.Typer(
    name="deepsearch",
    help="deepsearch content-acquisition CLI.",
    no_args_is_help=True,
)

_RENDER_MODES = ("never", "auto", "always")


# ---------------------------------------------------------------------------
# Single-page extraction
# ---------------------------------------------------------------------------
@app.command("fetch")
def fetch(
    url: str = typer.Option(..., help="URL to fetch."),
    render: str = typer.Option("never", help="JavaScript rendering: never | auto | always."),
    as_json: bool = typer.Option(False, "--json", help="Print the extracted page as JSON."),
) -> None:
    """Fetch a URL and print its extracted content."""
    from deepsearch.scraper import AutoPageSource, Fetcher, RenderedPageSource, extract_page

    if render not in _RENDER_MODES:
        typer.echo(f"[fetch] Unknown render mode {render!r}. Use: never | auto | always")
        raise typer.Exit(1)

    settings = Settings()
    fetcher = Fetcher(settings)
    if render == "always":
        source = RenderedPageSource(settings)
    elif render == "auto":
        source = AutoPageSource(fetcher, RenderedPageSource(settings))
    else:
        source = fetcher

    if not as_json:
        typer.echo(f"[fetch] Fetching {url!r} …")
    try:
        result = source.fetch(url)
        result.raise_for_error()
        if result.kind == "json":
            typer.echo(json.dumps(result.json_data, indent=2, ensure_ascii=False))
            return
        result.require_html().raise_for_error()
    except DeepSearchError as exc:
        typer.echo(f"[fetch] Failed: {exc}")
        raise typer.Exit(1)

    mode = "rendered" if result.rendered_with else "page"
    page = extract_page(result.body or "", result.effective_url, mode=mode)

    if as_json:
        typer.echo(json.dumps(asdict(page), indent=2, ensure_ascii=False, default=str))
        return

    typer.echo(f"[fetch] HTTP {result.http_status} — extracting content …")
    typer.echo(f"[fetch] Title     : {page.title or '(none)'}")
    typer.echo(f"[fetch] Blocks    : {len(page.text_content)}")
    typer.echo(f"[fetch] Tables    : {len(page.tables)}")
    typer.echo(f"[fetch] Downloads : {len(page.download_links)}")
    if page.embedded_data is not None and page.embedded_data.found:
        typer.echo(f"[fetch] Embedded  : {page.embedded_data.total_items} item(s)")
    for link in page.download_links:
        typer.echo(f"  [{link.kind}] {link.text}  {link.url}")
    typer.echo("")
    typer.echo(page.main_text)


# ---------------------------------------------------------------------------
# Deep search
# ---------------------------------------------------------------------------
@app.command("deep-search")
def deep_search(
    query: str = typer.Option(..., help="Natural-language query."),
    max_results: int = typer.Option(5, help="Search results to visit."),
    max_depth: int = typer.Option(1, help="0 = results only, 1 = follow one level of links."),
    max_pages_per_site: int = typer.Option(3, help="Pages per result site, parent included."),
    language: str = typer.Option("es", help="Search language."),
    as_json: bool = typer.Option(False, "--json", help="Print the full result as JSON."),
) -> None:
    """Search, crawl the top results and print the consolidated digest."""
    from deepsearch.crawl import DeepSearchController, build_default_chain
    from deepsearch.scraper import Fetcher

    settings = Settings()
    controller = DeepSearchController(
        settings,
        search=build_default_chain(settings),
        source=Fetcher(settings),
    )
    try:
        result = controller.deep_search(
            query,
            max_results=max_results,
            max_depth=max_depth,
            max_pages_per_site=max_pages_per_site,
            language=language,
        )
    except (ValueError, DeepSearchError) as exc:
        typer.echo(f"[deep-search] Failed: {exc}")
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), indent=2, ensure_ascii=False))
        return

    typer.echo(result.consolidated_text)
    typer.echo("=" * 72)
    typer.echo(
        f"[deep-search] {result.total_content_extracted} page(s) extracted, "
        f"{result.total_pages_visited} visited in {result.elapsed_time_ms}ms"
    )
    for error in result.errors:
        typer.echo(f"  ✗ {error.url}: {error.error}")


# ---------------------------------------------------------------------------
# HTTP server
# ---------------------------------------------------------------------------
@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Bind address."),
    port: int = typer.Option(3000, help="Port to listen on."),
) -> None:
    """Run the HTTP API."""
    import uvicorn

    uvicorn.run("deepsearch.api.app:app", host=host, port=port)


# ---------------------------------------------------------------------------
# Entry-point
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    app()
