"""Helpers for normalizing raw page content returned by backends."""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from typing import Any, Optional

import html2text

LOGGER = logging.getLogger(__name__)

ENVELOPE_KEYS = ("result", "value", "text")


def truncate_content(text: Optional[str], max_length: Optional[int]) -> str:
    """Return at most ``max_length`` characters of ``text``."""

    if not text:
        return ""
    if max_length is None or max_length < 0:
        return text
    return text[:max_length]


def html_to_markdown(html: str) -> str:
    """Convert an HTML fragment to markdown without hard line wrapping."""

    converter = html2text.HTML2Text()
    converter.body_width = 0
    converter.ignore_images = True
    converter.unicode_snob = True
    return converter.handle(html).strip()


def decode_script_result(value: Any) -> Optional[dict[str, Any]]:
    """Turn an evaluated script result into a mapping.

    Backends either hand back structured values or the JSON text printed by the
    page. Anything that does not decode to an object yields ``None``.
    """

    if isinstance(value, Mapping):
        return _unwrap(value)
    if isinstance(value, (bytes, bytearray)):
        value = value.decode("utf-8", errors="replace")
    if not isinstance(value, str):
        return None
    try:
        decoded = json.loads(value)
    except ValueError:
        LOGGER.debug("Script result is not JSON: %.80s", value)
        return None
    if isinstance(decoded, Mapping):
        return _unwrap(decoded)
    return None


def _unwrap(value: Mapping[str, Any]) -> Optional[dict[str, Any]]:
    # Backends wrap script output as {"result": ...}, {"value": ...}, {"text": ...}
    # or {"content": [{"text": ...}]}; a page object carries its own "url".
    if "url" in value:
        return dict(value)
    for key in ENVELOPE_KEYS:
        if key in value:
            return decode_script_result(value[key])
    parts = value.get("content")
    if isinstance(parts, list):
        return decode_script_result(
            "".join(part.get("text", "") for part in parts if isinstance(part, Mapping))
        )
    return dict(value)


def element_script(selector: Optional[str], prop: str) -> str:
    """Build a script returning ``prop`` of the element matching ``selector``.

    Falls back to ``document.body`` when nothing matches.
    """

    target = json.dumps(selector or "body")
    return (
        f"(function() {{ const el = document.querySelector({target}) || document.body; "
        f"return el.{prop}; }})()"
    )
