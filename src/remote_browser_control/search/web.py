"""Web search by scraping an engine's results page through a browser backend."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional
from urllib.parse import urlencode

from ..extraction.search import parse_search_results
from ..models import ContentFormat, SearchResults

if TYPE_CHECKING:
    from ..dispatcher import BrowserDispatcher

LOGGER = logging.getLogger(__name__)

DEFAULT_SEARCH_URL = "https://html.duckduckgo.com/html/"


def search_url(query: str, base_url: str = DEFAULT_SEARCH_URL) -> str:
    return f"{base_url}?{urlencode({'q': query})}"


def search_web(
    dispatcher: "BrowserDispatcher",
    query: str,
    *,
    max_results: int = 10,
    adapter: Optional[str] = "cli",
    base_url: str = DEFAULT_SEARCH_URL,
    timeout: Optional[float] = None,
) -> SearchResults:
    """Load the results page for ``query`` and parse it into ranked results.

    The session is always ended, also when navigation or parsing fails.
    """

    session = dispatcher.start_session(adapter)
    try:
        session, navigation = dispatcher.navigate(
            session, search_url(query, base_url), timeout=timeout
        )
        text = navigation.content
        if not text:
            session, page = dispatcher.extract_content(
                session, format=ContentFormat.MARKDOWN, timeout=timeout
            )
            text = page.content
    finally:
        dispatcher.end_session(session)
    results = parse_search_results(text, max_results)
    LOGGER.info("Search for %r returned %s result(s)", query, len(results))
    return SearchResults(query=query, source="scrape", results=results)
