"""Immutable browser session values."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Mapping, Optional

from .errors import InvalidError

if TYPE_CHECKING:
    from .browser.base import BrowserAdapter


def _freeze(data: Optional[Mapping[str, Any]]) -> Mapping[str, Any]:
    return MappingProxyType(dict(data or {}))


@dataclass(frozen=True)
class Session:
    """One logical browsing session at a point in time.

    ``adapter`` is the owning backend and the only thing used for dispatch.
    ``connection`` holds backend-defined state such as ``base_url`` and ``port``
    for the RPC backend or ``profile`` and ``current_url`` for the CLI backend.
    Sessions are never changed in place: operations that alter backend-visible
    state return a new value built with :meth:`with_connection`.
    """

    adapter: "BrowserAdapter"
    connection: Mapping[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "connection", _freeze(self.connection))
        object.__setattr__(self, "options", _freeze(self.options))

    @classmethod
    def new(
        cls,
        adapter: "BrowserAdapter",
        connection: Optional[Mapping[str, Any]] = None,
        *,
        id: Optional[str] = None,
        options: Optional[Mapping[str, Any]] = None,
    ) -> "Session":
        if adapter is None:
            raise InvalidError("A session requires an adapter")
        kwargs: dict[str, Any] = {
            "adapter": adapter,
            "connection": connection or {},
            "options": options or {},
        }
        if id is not None:
            kwargs["id"] = id
        return cls(**kwargs)

    def with_connection(self, **changes: Any) -> "Session":
        """Return a copy of this session with ``changes`` merged into ``connection``."""

        merged = dict(self.connection)
        merged.update(changes)
        return replace(self, connection=merged)

    @property
    def current_url(self) -> Optional[str]:
        return self.connection.get("current_url")

    @property
    def timeout(self) -> Optional[float]:
        return self.options.get("timeout")

    def require_current_url(self, operation: str) -> str:
        url = self.current_url
        if not url:
            raise InvalidError(
                f"Cannot {operation}: the session has no current URL, navigate first",
                {"operation": operation, "session_id": self.id},
            )
        return url
