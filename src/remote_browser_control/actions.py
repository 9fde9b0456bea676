"""Self-contained operations that manage their own browser session."""

from __future__ import annotations

import logging
from typing import Optional, Union

from .dispatcher import BrowserDispatcher
from .extraction.snapshot import DEFAULT_MAX_CONTENT_LENGTH
from .models import ContentFormat, PageContent, Snapshot

LOGGER = logging.getLogger(__name__)


def read_page(
    dispatcher: BrowserDispatcher,
    url: str,
    *,
    selector: str = "body",
    format: Union[ContentFormat, str] = ContentFormat.MARKDOWN,
    adapter: Optional[str] = None,
    timeout: Optional[float] = None,
) -> PageContent:
    """Open ``url`` in a fresh session and return its content."""

    session = dispatcher.start_session(adapter)
    try:
        session, _ = dispatcher.navigate(session, url, timeout=timeout)
        session, page = dispatcher.extract_content(
            session, selector=selector, format=format, timeout=timeout
        )
    finally:
        dispatcher.end_session(session)
    return page.model_copy(update={"url": url})


def snapshot_url(
    dispatcher: BrowserDispatcher,
    url: str,
    *,
    selector: str = "body",
    include_links: bool = True,
    include_forms: bool = True,
    include_headings: bool = True,
    max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH,
    adapter: Optional[str] = None,
    timeout: Optional[float] = None,
) -> Snapshot:
    """Open ``url`` in a fresh session and return a snapshot of it.

    Backends without script evaluation produce a fallback snapshot.
    """

    session = dispatcher.start_session(adapter)
    try:
        session, _ = dispatcher.navigate(session, url, timeout=timeout)
        session, snapshot = dispatcher.snapshot(
            session,
            selector=selector,
            include_links=include_links,
            include_forms=include_forms,
            include_headings=include_headings,
            max_content_length=max_content_length,
            timeout=timeout,
        )
    finally:
        dispatcher.end_session(session)
    if snapshot.url is None:
        snapshot = snapshot.model_copy(update={"url": url})
    LOGGER.debug("Snapshot of %s (fallback=%s)", url, snapshot.fallback)
    return snapshot
