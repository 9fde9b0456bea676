"""Client for the Brave Search web API."""

from __future__ import annotations

import logging
import os
from typing import Any, Optional

import httpx

from ..config import SearchConfig
from ..errors import AdapterError, BrowserTimeoutError, InvalidError
from ..models import SearchResult, SearchResults

LOGGER = logging.getLogger(__name__)

API_KEY_ENV = "BRAVE_SEARCH_API_KEY"
MAX_RESULTS = 20


class BraveSearchClient:
    """Wrapper around the Brave Search HTTP API."""

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self._config = config or SearchConfig()
        self._transport = transport

    def search(
        self,
        query: str,
        *,
        max_results: int = 10,
        country: str = "us",
        search_lang: str = "en",
        freshness: Optional[str] = None,
    ) -> SearchResults:
        if not query or not query.strip():
            raise InvalidError("Search query must not be empty")
        api_key = self._api_key()
        count = max(1, min(max_results, MAX_RESULTS))
        params: dict[str, Any] = {
            "q": query,
            "count": count,
            "country": country,
            "search_lang": search_lang,
            "text_decorations": "false",
        }
        if freshness:
            params["freshness"] = freshness
        headers = {
            "X-Subscription-Token": api_key,
            "Accept": "application/json",
            "Accept-Encoding": "gzip",
        }
        LOGGER.info("Searching Brave for %r (count=%s)", query, count)
        try:
            with httpx.Client(timeout=self._config.timeout, transport=self._transport) as client:
                response = client.get(self._config.brave_endpoint, params=params, headers=headers)
        except httpx.TimeoutException as exc:
            raise BrowserTimeoutError("search", self._config.timeout) from exc
        except httpx.HTTPError as exc:
            raise AdapterError(
                f"Brave Search API request failed: {exc}", {"reason": str(exc)}
            ) from exc

        if response.status_code == 401:
            raise AdapterError("Brave Search API: invalid API key", {"status": 401})
        if response.status_code == 429:
            raise AdapterError("Brave Search API: rate limit exceeded", {"status": 429})
        if response.status_code != 200:
            raise AdapterError(
                f"Brave Search API error ({response.status_code}): {response.text[:200]}",
                {"status": response.status_code},
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise AdapterError("Brave Search API returned invalid JSON") from exc
        return SearchResults(query=query, source="brave", results=parse_results(body, count))

    def _api_key(self) -> str:
        key = self._config.brave_api_key
        if key is None:
            key = os.environ.get(API_KEY_ENV)
        if key is None:
            raise InvalidError(
                "Brave Search API key not configured. Set search.brave_api_key "
                f"or the {API_KEY_ENV} environment variable."
            )
        if not key.strip():
            raise InvalidError("Brave Search API key is empty")
        return key


def parse_results(body: Any, max_results: int) -> list[SearchResult]:
    """Convert a Brave response body into ranked results."""

    web = body.get("web") if isinstance(body, dict) else None
    items = web.get("results") if isinstance(web, dict) else None
    if not isinstance(items, list):
        return []
    results: list[SearchResult] = []
    for item in items:
        if len(results) >= max_results:
            break
        if not isinstance(item, dict):
            continue
        results.append(
            SearchResult(
                rank=len(results) + 1,
                title=item.get("title") or "",
                url=item.get("url") or "",
                snippet=item.get("description") or "",
                age=item.get("age"),
            )
        )
    return results
