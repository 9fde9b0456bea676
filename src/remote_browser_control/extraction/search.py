"""Best-effort parser for search engine result pages.

The CLI backend renders the engine's HTML results page as markdown in which
every hit is framed by horizontal rules::

    ----------
    [Title of the page](//duckduckgo.com/l/?uddg=https%3A%2F%2Fexample.com&rut=...)
    ----------
    example.com
    Snippet text describing the page.

The document is split on those rules and the chunks are read in
(title block, body block) pairs. Anything that does not fit the pattern is
skipped instead of failing the whole page.
"""

from __future__ import annotations

import logging
import re
from typing import Iterable, Optional
from urllib.parse import unquote

from ..models import SearchResult

LOGGER = logging.getLogger(__name__)

SEPARATOR_RE = re.compile(r"^[ \t]*-{3,}[ \t]*$", re.MULTILINE)
TITLE_RE = re.compile(r"^\s*(?:#{1,6}\s*)?\[?(?P<title>[^\[\]()\n]*?)\]?\s*\(", re.MULTILINE)
REDIRECT_URL_RE = re.compile(r"[?&]uddg=(?P<url>[^&)\s]+)")
BARE_URL_RE = re.compile(r"\((?P<url>https?://[^)\s]+)\)")

REDIRECT_DOMAINS = ("duckduckgo.com/l/",)
AD_URL_MARKERS = (
    "duckduckgo.com/y.js",
    "ad_domain=",
    "ad_provider=",
    "bing.com/aclick",
    "doubleclick.net",
    "googleadservices.com",
    "googlesyndication.com",
)

_PARENTHETICAL_LINE_RE = re.compile(r"^\(.*\)$")
_HOSTNAME_LINE_RE = re.compile(r"^(?:www\.)?[\w-]+(?:\.[\w-]+)+(?:/\S*)?$")
_URL_LINE_RE = re.compile(r"^(?:https?:)?//\S+$")
_WHITESPACE_RE = re.compile(r"\s+")


def parse_search_results(text: Optional[str], max_results: int = 10) -> list[SearchResult]:
    """Extract ranked organic results from a rendered results page."""

    if not text or max_results <= 0:
        return []
    chunks = SEPARATOR_RE.split(text)[1:]
    candidates: list[SearchResult] = []
    for title_block, body_block in _pairs(chunks):
        result = _parse_pair(title_block, body_block, len(candidates) + 1)
        if result is not None:
            candidates.append(result)
    organic = [result for result in candidates if not is_ad_url(result.url)]
    return [
        result.model_copy(update={"rank": rank})
        for rank, result in enumerate(organic[:max_results], start=1)
    ]


def is_ad_url(url: str) -> bool:
    return any(marker in url for marker in AD_URL_MARKERS)


def extract_title(block: str) -> Optional[str]:
    match = TITLE_RE.search(block)
    if not match:
        return None
    title = _WHITESPACE_RE.sub(" ", match.group("title")).strip(" *_#")
    return title or None


def extract_url(block: str) -> Optional[str]:
    """Return the target URL, unwrapping redirect links when present."""

    match = REDIRECT_URL_RE.search(block)
    if match:
        return unquote(match.group("url"))
    match = BARE_URL_RE.search(block)
    if match:
        return match.group("url")
    return None


def build_snippet(block: str) -> str:
    kept = [line.strip() for line in block.splitlines() if not _is_boilerplate(line.strip())]
    return _WHITESPACE_RE.sub(" ", " ".join(kept)).strip()


def _pairs(chunks: list[str]) -> Iterable[tuple[str, str]]:
    for index in range(0, len(chunks), 2):
        title_block = chunks[index]
        body_block = chunks[index + 1] if index + 1 < len(chunks) else ""
        yield title_block, body_block


def _parse_pair(title_block: str, body_block: str, rank: int) -> Optional[SearchResult]:
    try:
        url = extract_url(title_block)
        if not url:
            return None
        return SearchResult(
            rank=rank,
            title=extract_title(title_block) or url,
            url=url,
            snippet=build_snippet(body_block),
        )
    except (ValueError, TypeError):
        LOGGER.debug("Skipping unparseable search result block", exc_info=True)
        return None


def _is_boilerplate(line: str) -> bool:
    if not line:
        return True
    if _PARENTHETICAL_LINE_RE.match(line):
        return True
    if any(domain in line for domain in REDIRECT_DOMAINS):
        return True
    if _URL_LINE_RE.match(line):
        return True
    return bool(_HOSTNAME_LINE_RE.match(line))
