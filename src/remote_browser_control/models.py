"""Structured results shared by every browser backend."""

from __future__ import annotations

import enum
from typing import Any, Optional

from pydantic import BaseModel, Field

MAX_SNAPSHOT_LINKS = 100
MAX_SNAPSHOT_HEADINGS = 50
SNAPSHOT_SECTIONS = ("links", "forms", "headings")


class ContentFormat(str, enum.Enum):
    """Formats a page can be extracted in."""

    MARKDOWN = "markdown"
    TEXT = "text"
    HTML = "html"


class ScreenshotFormat(str, enum.Enum):
    """Image encodings for screenshots."""

    PNG = "png"
    JPEG = "jpeg"

    @property
    def mime(self) -> str:
        return f"image/{self.value}"


class NavigationResult(BaseModel):
    """Outcome of navigating to a URL."""

    url: str
    title: Optional[str] = None
    content: Optional[str] = Field(
        default=None,
        description="Page content when the backend returns it as part of navigation.",
    )
    raw: Any = None


class ElementResult(BaseModel):
    """Outcome of clicking or typing into an element."""

    action: str
    selector: str
    content: Optional[str] = None
    raw: Any = None


class Screenshot(BaseModel):
    data: bytes
    mime: str = "image/png"


class PageContent(BaseModel):
    content: str
    format: ContentFormat = ContentFormat.MARKDOWN
    url: Optional[str] = None


class EvaluationResult(BaseModel):
    result: Any = None


class SearchResult(BaseModel):
    """A single organic search hit."""

    rank: int = Field(ge=1)
    title: str
    url: str
    snippet: str = ""
    age: Optional[str] = Field(default=None, description="Freshness annotation, if known.")


class SearchResults(BaseModel):
    query: str
    source: str
    results: list[SearchResult] = Field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.results)


class Link(BaseModel):
    id: str
    text: str = ""
    href: str


class FormField(BaseModel):
    name: Optional[str] = None
    type: str = "text"
    label: Optional[str] = None
    required: bool = False
    value: Optional[str] = None


class Form(BaseModel):
    id: Optional[str] = None
    action: Optional[str] = None
    method: str = "GET"
    fields: list[FormField] = Field(default_factory=list)


class Heading(BaseModel):
    level: int = Field(ge=1, le=6)
    text: str = ""


class PageMeta(BaseModel):
    viewport_height: Optional[int] = None
    scroll_height: Optional[int] = None
    scroll_position: Optional[float] = None


class Snapshot(BaseModel):
    """Size-bounded structured view of a page.

    ``links``, ``forms`` and ``headings`` are ``None`` when they were not
    requested. ``fallback`` marks snapshots built from plain content extraction
    because script evaluation was unavailable or returned something unusable.
    """

    url: Optional[str] = None
    title: Optional[str] = None
    content: str = ""
    links: Optional[list[Link]] = None
    forms: Optional[list[Form]] = None
    headings: Optional[list[Heading]] = None
    meta: Optional[PageMeta] = None
    fallback: bool = False

    def to_payload(self) -> dict[str, Any]:
        """Serialize the snapshot, leaving out sections that were not requested."""

        omitted = {name for name in SNAPSHOT_SECTIONS if getattr(self, name) is None}
        return self.model_dump(mode="json", exclude=omitted)
