"""Paged queries against the game wiki's cargo tables."""

from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, List, Tuple
from urllib.parse import urlencode, urljoin

import requests

logger = logging.getLogger(__name__)

WIKI_BASE = "https://www.poewiki.net/"
API_PATH = "/w/api.php"
PAGE_LIMIT = 500


def build_query_url(query: Iterable[Tuple[str, str]]) -> str:
    """The API URL for a cargo query, without the page offset."""
    base = urljoin(WIKI_BASE, API_PATH)
    pairs = list(query) + [
        ("action", "cargoquery"),
        ("format", "json"),
        ("limit", str(PAGE_LIMIT)),
    ]
    return f"{base}?{urlencode(pairs)}"


def parse_cargo_items(payload: Any) -> List[Any]:
    """Unwrap the rows of one cargo query response."""
    try:
        rows = payload["cargoquery"]
    except (KeyError, TypeError) as err:
        raise ValueError("expected wiki cargo items") from err
    if not isinstance(rows, list):
        raise ValueError("expected wiki cargo items")

    items = []
    for entry in rows:
        if not isinstance(entry, dict) or "title" not in entry:
            raise ValueError("expected wiki cargo items")
        items.append(entry["title"])
    return items


def cargo_fetch(query: Iterable[Tuple[str, str]], session=None) -> Iterator[Any]:
    """Yield every row of a cargo query, fetching page after page."""
    http = session if session is not None else requests
    base_url = build_query_url(query)
    offset = 0

    while True:
        url = f"{base_url}&{urlencode([('offset', offset)])}"
        logger.debug("fetching cargo page %s", url)
        response = http.get(url)
        response.raise_for_status()
        items = parse_cargo_items(response.json())

        offset += PAGE_LIMIT
        if not items:
            return
        yield from items
        if len(items) < PAGE_LIMIT:
            return