"""Rich page snapshots built from a single injected script."""

from __future__ import annotations

import json
import logging
from textwrap import dedent
from typing import TYPE_CHECKING, Any, Optional

from pydantic import ValidationError

from ..errors import AdapterError
from ..models import (
    MAX_SNAPSHOT_HEADINGS,
    MAX_SNAPSHOT_LINKS,
    ContentFormat,
    Snapshot,
)
from ..session import Session
from .content import decode_script_result, truncate_content

if TYPE_CHECKING:
    from ..dispatcher import BrowserDispatcher

LOGGER = logging.getLogger(__name__)

DEFAULT_MAX_CONTENT_LENGTH = 50_000


class ScriptSnapshot(Snapshot):
    """What the injected script must hand back: a page URL and its content."""

    url: str
    content: str

_SNAPSHOT_JS = dedent(
    """
    (function snapshot(selector, includeLinks, includeForms, includeHeadings, maxContentLength) {
      const root = document.querySelector(selector) || document.body;
      const result = {
        url: window.location.href,
        title: document.title,
        meta: {
          viewport_height: window.innerHeight,
          scroll_height: document.body.scrollHeight,
          scroll_position: window.scrollY
        }
      };
      result.content = (root.innerText || '').substring(0, maxContentLength);
      if (includeLinks) {
        result.links = Array.from(root.querySelectorAll('a[href]')).slice(0, %(max_links)d).map((a, i) => ({
          id: 'link_' + i,
          text: (a.innerText || '').trim().substring(0, 100),
          href: a.href
        }));
      }
      if (includeForms) {
        result.forms = Array.from(root.querySelectorAll('form')).map(form => ({
          id: form.id || null,
          action: form.action,
          method: (form.method || 'GET').toUpperCase(),
          fields: Array.from(form.querySelectorAll('input, select, textarea')).map(f => {
            const label = f.id ? document.querySelector('label[for="' + f.id + '"]') : null;
            return {
              name: f.name || null,
              type: f.type || 'text',
              label: label ? label.innerText.trim() : null,
              required: !!f.required,
              value: f.type === 'password' ? '' : (f.value || null)
            };
          })
        }));
      }
      if (includeHeadings) {
        result.headings = Array.from(root.querySelectorAll('h1,h2,h3,h4,h5,h6')).slice(0, %(max_headings)d).map(h => ({
          level: parseInt(h.tagName.substring(1), 10),
          text: (h.innerText || '').trim().substring(0, 200)
        }));
      }
      return JSON.stringify(result);
    })(%(args)s)
    """
).strip()


def snapshot_script(
    selector: str = "body",
    include_links: bool = True,
    include_forms: bool = True,
    include_headings: bool = True,
    max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH,
) -> str:
    """Return the page script that collects a snapshot as a JSON string."""

    args = ", ".join(
        json.dumps(value)
        for value in (
            selector or "body",
            bool(include_links),
            bool(include_forms),
            bool(include_headings),
            int(max_content_length),
        )
    )
    return _SNAPSHOT_JS % {
        "args": args,
        "max_links": MAX_SNAPSHOT_LINKS,
        "max_headings": MAX_SNAPSHOT_HEADINGS,
    }


def normalize_snapshot(
    data: dict[str, Any],
    *,
    include_links: bool,
    include_forms: bool,
    include_headings: bool,
    max_content_length: int,
) -> Snapshot:
    """Validate a decoded script result and enforce section presence and caps.

    Raises :class:`pydantic.ValidationError` when ``data`` lacks the page URL or
    content, which callers treat as an unusable result.
    """

    snapshot = Snapshot.model_validate(ScriptSnapshot.model_validate(data).model_dump())
    updates: dict[str, Any] = {
        "content": truncate_content(snapshot.content, max_content_length),
        "fallback": False,
    }
    if include_links:
        updates["links"] = (snapshot.links or [])[:MAX_SNAPSHOT_LINKS]
    else:
        updates["links"] = None
    updates["forms"] = (snapshot.forms or []) if include_forms else None
    if include_headings:
        updates["headings"] = (snapshot.headings or [])[:MAX_SNAPSHOT_HEADINGS]
    else:
        updates["headings"] = None
    return snapshot.model_copy(update=updates)


def take_snapshot(
    dispatcher: "BrowserDispatcher",
    session: Session,
    *,
    selector: str = "body",
    include_links: bool = True,
    include_forms: bool = True,
    include_headings: bool = True,
    max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH,
    timeout: Optional[float] = None,
) -> tuple[Session, Snapshot]:
    """Snapshot the session's current page.

    Uses script evaluation when the backend supports it and falls back to plain
    markdown extraction (marked with ``fallback=True``) when it does not or when
    the script result cannot be understood.
    """

    if session.adapter.supports_evaluate:
        script = snapshot_script(
            selector, include_links, include_forms, include_headings, max_content_length
        )
        try:
            session, evaluation = dispatcher.evaluate(session, script, timeout=timeout)
        except AdapterError as exc:
            LOGGER.info("Snapshot script failed, falling back to content extraction: %s", exc)
        else:
            data = decode_script_result(evaluation.result)
            if data is not None:
                try:
                    return session, normalize_snapshot(
                        data,
                        include_links=include_links,
                        include_forms=include_forms,
                        include_headings=include_headings,
                        max_content_length=max_content_length,
                    )
                except ValidationError as exc:
                    LOGGER.info("Snapshot result did not validate: %s", exc)
            else:
                LOGGER.info("Snapshot script returned no usable data")
    return _fallback_snapshot(
        dispatcher,
        session,
        selector=selector,
        max_content_length=max_content_length,
        timeout=timeout,
    )


def _fallback_snapshot(
    dispatcher: "BrowserDispatcher",
    session: Session,
    *,
    selector: str,
    max_content_length: int,
    timeout: Optional[float],
) -> tuple[Session, Snapshot]:
    session, page = dispatcher.extract_content(
        session,
        selector=selector,
        format=ContentFormat.MARKDOWN,
        timeout=timeout,
    )
    snapshot = Snapshot(
        url=page.url or session.current_url,
        content=truncate_content(page.content, max_content_length),
        fallback=True,
    )
    return session, snapshot
