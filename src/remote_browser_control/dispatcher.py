"""Single entry point that forwards operations to the session's adapter."""

from __future__ import annotations

import enum
import logging
from collections import OrderedDict
from collections.abc import Mapping
from typing import Any, Callable, Optional, TypeVar, Union

from .browser.base import BrowserAdapter
from .errors import AdapterError, BrowserError, InvalidError
from .extraction.snapshot import DEFAULT_MAX_CONTENT_LENGTH, take_snapshot
from .models import (
    ContentFormat,
    ElementResult,
    EvaluationResult,
    NavigationResult,
    PageContent,
    Screenshot,
    ScreenshotFormat,
    Snapshot,
)
from .session import Session

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_TIMEOUT = 30.0
MAX_ENDED_SESSIONS = 1024


class SessionState(str, enum.Enum):
    ACTIVE = "active"
    ENDED = "ended"


class BrowserDispatcher:
    """Resolve the adapter owning a session and forward calls to it.

    Results come back unchanged, paired with the session callers must use for
    their next call. Typed :class:`BrowserError` instances pass straight
    through; any other exception raised by a backend is wrapped in
    :class:`AdapterError`.
    """

    def __init__(
        self,
        adapters: Mapping[str, BrowserAdapter],
        *,
        default_adapter: Optional[str] = None,
        default_timeout: float = DEFAULT_TIMEOUT,
        max_ended: int = MAX_ENDED_SESSIONS,
    ) -> None:
        if not adapters:
            raise ValueError("At least one adapter is required")
        self._adapters = dict(adapters)
        self._default_adapter = default_adapter or next(iter(self._adapters))
        self._default_timeout = default_timeout
        self._live: set[str] = set()
        # Most recently ended ids, oldest first, capped at ``max_ended``.
        self._ended: OrderedDict[str, None] = OrderedDict()
        self._max_ended = max_ended

    @property
    def adapter_names(self) -> list[str]:
        return list(self._adapters)

    def adapter(self, name: Optional[str] = None) -> BrowserAdapter:
        key = name or self._default_adapter
        try:
            return self._adapters[key]
        except KeyError:
            raise InvalidError(
                f"Unknown adapter: {key}",
                {"adapter": key, "available": self.adapter_names},
            ) from None

    def state(self, session: Session) -> Optional[SessionState]:
        if session.id in self._live:
            return SessionState.ACTIVE
        if session.id in self._ended:
            return SessionState.ENDED
        return None

    # Lifecycle ---------------------------------------------------------

    def start_session(
        self,
        adapter: Union[str, BrowserAdapter, None] = None,
        **options: Any,
    ) -> Session:
        backend = adapter if isinstance(adapter, BrowserAdapter) else self.adapter(adapter)
        options.setdefault("timeout", self._default_timeout)
        session = self._forward(backend, "start_session", lambda: backend.start_session(**options))
        self._live.add(session.id)
        LOGGER.info("Started %s session %s", backend.name, session.id)
        return session

    def end_session(self, session: Session) -> None:
        if session is None:
            raise InvalidError("No browser session given")
        if session.id in self._ended:
            LOGGER.debug("Session %s already ended", session.id)
            return
        backend = session.adapter
        self._forward(backend, "end_session", lambda: backend.end_session(session))
        self._live.discard(session.id)
        self._ended[session.id] = None
        while len(self._ended) > self._max_ended:
            self._ended.popitem(last=False)
        LOGGER.info("Ended %s session %s", backend.name, session.id)

    # Operations --------------------------------------------------------

    def navigate(
        self,
        session: Session,
        url: str,
        *,
        timeout: Optional[float] = None,
    ) -> tuple[Session, NavigationResult]:
        if not url:
            raise InvalidError("navigate requires a URL")
        backend = self._active(session, "navigate")
        LOGGER.info("Navigating session %s to %s", session.id, url)
        return self._forward(
            backend,
            "navigate",
            lambda: backend.navigate(session, url, timeout=timeout),
        )

    def click(
        self,
        session: Session,
        selector: str,
        *,
        text: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> tuple[Session, ElementResult]:
        backend = self._active(session, "click")
        return self._forward(
            backend,
            "click",
            lambda: backend.click(session, selector, text=text, timeout=timeout),
        )

    def type(
        self,
        session: Session,
        selector: str,
        text: str,
        *,
        clear: bool = False,
        timeout: Optional[float] = None,
    ) -> tuple[Session, ElementResult]:
        backend = self._active(session, "type")
        return self._forward(
            backend,
            "type",
            lambda: backend.type(session, selector, text, clear=clear, timeout=timeout),
        )

    def screenshot(
        self,
        session: Session,
        *,
        full_page: bool = False,
        format: Union[ScreenshotFormat, str] = ScreenshotFormat.PNG,
        timeout: Optional[float] = None,
    ) -> tuple[Session, Screenshot]:
        backend = self._active(session, "screenshot")
        return self._forward(
            backend,
            "screenshot",
            lambda: backend.screenshot(
                session, full_page=full_page, format=format, timeout=timeout
            ),
        )

    def extract_content(
        self,
        session: Session,
        *,
        selector: Optional[str] = None,
        format: Union[ContentFormat, str] = ContentFormat.MARKDOWN,
        timeout: Optional[float] = None,
    ) -> tuple[Session, PageContent]:
        backend = self._active(session, "extract_content")
        return self._forward(
            backend,
            "extract_content",
            lambda: backend.extract_content(
                session, selector=selector, format=format, timeout=timeout
            ),
        )

    def evaluate(
        self,
        session: Session,
        script: str,
        *,
        timeout: Optional[float] = None,
    ) -> tuple[Session, EvaluationResult]:
        backend = self._active(session, "evaluate")
        return self._forward(
            backend,
            "evaluate",
            lambda: backend.evaluate(session, script, timeout=timeout),
        )

    def snapshot(
        self,
        session: Session,
        *,
        selector: str = "body",
        include_links: bool = True,
        include_forms: bool = True,
        include_headings: bool = True,
        max_content_length: int = DEFAULT_MAX_CONTENT_LENGTH,
        timeout: Optional[float] = None,
    ) -> tuple[Session, Snapshot]:
        self._active(session, "snapshot")
        return take_snapshot(
            self,
            session,
            selector=selector,
            include_links=include_links,
            include_forms=include_forms,
            include_headings=include_headings,
            max_content_length=max_content_length,
            timeout=timeout,
        )

    def close(self) -> None:
        """Close every adapter, then raise if any of them failed."""

        failures: dict[str, str] = {}
        first: Optional[BrowserError] = None
        for name, backend in self._adapters.items():
            try:
                self._forward(backend, "close", backend.close)
            except BrowserError as exc:
                LOGGER.warning("Closing the %s adapter failed: %s", name, exc)
                failures[name] = str(exc)
                first = first or exc
        if first is not None:
            raise AdapterError(
                f"Failed to close {len(failures)} adapter(s)", {"failures": failures}
            ) from first

    # Internals ---------------------------------------------------------

    def _active(self, session: Session, operation: str) -> BrowserAdapter:
        if session is None:
            raise InvalidError(f"{operation} requires a browser session")
        if session.id in self._ended:
            raise InvalidError(
                f"Cannot {operation}: session {session.id} has ended",
                {"session_id": session.id},
            )
        return session.adapter

    @staticmethod
    def _forward(backend: BrowserAdapter, operation: str, call: Callable[[], T]) -> T:
        try:
            return call()
        except BrowserError:
            raise
        except Exception as exc:
            LOGGER.exception("Untyped failure from %s adapter during %s", backend.name, operation)
            raise AdapterError(
                f"{operation} failed in the {backend.name} adapter",
                {"reason": str(exc), "operation": operation},
            ) from exc
