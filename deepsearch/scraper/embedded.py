"""Heuristic mining of structured data embedded in inline scripts.

Four independent matchers each produce a partial result; the outputs are
concatenated into one :class:`EmbeddedData`.  This is recall-oriented
pattern matching, not a parser: false positives and misses are expected,
and malformed fragments are dropped without noise.
"""

from __future__ import annotations

import json
import re
from typing import Any, List, Union

from bs4 import BeautifulSoup

from deepsearch.errors import ParseError
from deepsearch.scraper.models import EmbeddedData

_STORE_ARRAY = re.compile(
    r"\[\s*\{[^[\]]*"
    r"(?:lat|lng|latitude|longitude|address|direccion|ciudad|city|nombre|name|tienda|store|sucursal|local)"
    r"[^[\]]*\}(?:\s*,\s*\{[^[\]]*\})*\s*\]",
    re.IGNORECASE,
)
_STORE_KEYS = re.compile(r"lat|lng|address|nombre|name|tienda|store|city|ciudad|direccion")

_MARKER_CALL = re.compile(
    r"(?:new\s+google\.maps\.Marker|markers\.push|addMarker)\s*\(\s*\{([^}]*(?:lat|lng|position)[^}]+)\}",
    re.IGNORECASE,
)
_MARKER_LAT = re.compile(r"lat[itude]*\s*:\s*([-\d.]+)", re.IGNORECASE)
_MARKER_LNG = re.compile(r"(?:lng|lon|longitude)\s*:\s*([-\d.]+)", re.IGNORECASE)
_MARKER_TITLE = re.compile(r"title\s*:\s*['\"`]([^'\"`]+)['\"`]", re.IGNORECASE)

_API_URL = re.compile(
    r"['\"`]((?:https?:)?//[^'\"`\s]+(?:api|json|stores|locations|sucursales|tiendas)[^'\"`\s]*)['\"`]",
    re.IGNORECASE,
)

_DATA_ATTRIBUTES = ("data-stores", "data-locations", "data-markers", "data-json")

_MIN_SCRIPT_CHARS = 20


def _loads(fragment: str) -> Any:
    try:
        return json.loads(fragment)
    except ValueError as exc:
        raise ParseError(str(exc)) from exc


# ---------------------------------------------------------------------------
# Matchers
# ---------------------------------------------------------------------------

def match_store_arrays(script: str) -> List[Any]:
    """JSON array literals whose first element looks like a store/location record."""
    found: List[Any] = []
    for match in _STORE_ARRAY.finditer(script):
        try:
            parsed = _loads(match.group(0))
        except ParseError:
            continue
        if not isinstance(parsed, list) or not parsed:
            continue
        sample = parsed[0]
        if isinstance(sample, dict) and _STORE_KEYS.search(" ".join(sample.keys()).lower()):
            found.extend(parsed)
    return found


def match_markers(script: str) -> List[dict]:
    """Map-marker constructor calls with a latitude and longitude."""
    markers: List[dict] = []
    for match in _MARKER_CALL.finditer(script):
        body = match.group(1)
        lat = _MARKER_LAT.search(body)
        lng = _MARKER_LNG.search(body)
        if not (lat and lng):
            continue
        try:
            position = {"lat": float(lat.group(1)), "lng": float(lng.group(1))}
        except ValueError:
            continue
        title = _MARKER_TITLE.search(body)
        position["title"] = title.group(1) if title else None
        markers.append(position)
    return markers


def match_api_urls(script: str) -> List[str]:
    """Quoted absolute or protocol-relative URLs that look like data endpoints."""
    urls: List[str] = []
    for match in _API_URL.finditer(script):
        url = match.group(1)
        if url not in urls:
            urls.append(url)
    return urls


def match_data_attributes(soup: BeautifulSoup) -> List[Any]:
    """JSON values of ``data-stores``/``data-locations``/``data-markers``/``data-json``."""
    objects: List[Any] = []
    selector = ", ".join(f"[{attr}]" for attr in _DATA_ATTRIBUTES)
    for element in soup.select(selector):
        for attr in _DATA_ATTRIBUTES:
            value = element.get(attr)
            if not value:
                continue
            try:
                parsed = _loads(value)
            except ParseError:
                continue
            if isinstance(parsed, list):
                objects.extend(parsed)
            elif isinstance(parsed, dict):
                objects.append(parsed)
    return objects


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------

def mine_embedded_data(soup: BeautifulSoup) -> EmbeddedData:
    """Run every matcher over *soup*; call before scripts are stripped."""
    data = EmbeddedData()
    for script in soup.find_all("script"):
        content = script.get_text()
        if len(content) < _MIN_SCRIPT_CHARS:
            continue
        data.stores.extend(match_store_arrays(content))
        data.markers.extend(match_markers(content))
        for url in match_api_urls(content):
            if url not in data.api_urls:
                data.api_urls.append(url)
    data.json_objects.extend(match_data_attributes(soup))
    return data


def extract_embedded_data(html: Union[str, BeautifulSoup]) -> EmbeddedData:
    """Convenience wrapper accepting raw HTML."""
    soup = html if isinstance(html, BeautifulSoup) else BeautifulSoup(html, "html.parser")
    return mine_embedded_data(soup)
