"""Browser adapter abstractions."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional, Union

from ..errors import AdapterError, InvalidError
from ..models import (
    ContentFormat,
    ElementResult,
    EvaluationResult,
    NavigationResult,
    PageContent,
    Screenshot,
    ScreenshotFormat,
)
from ..session import Session

DEFAULT_TIMEOUT = 30.0


class BrowserAdapter(ABC):
    """Interface every browser backend implements.

    Each operation takes the caller's session and returns the session to use
    from then on together with its result. Backends never modify the session
    they were handed; state changes (the current URL after navigation, most
    notably) come back as a new :class:`Session`.
    """

    name: str = "abstract"

    @property
    def supports_evaluate(self) -> bool:
        """Whether :meth:`evaluate` can run arbitrary scripts."""

        return False

    @abstractmethod
    def start_session(self, **options: Any) -> Session:
        """Create a session, starting backend resources if needed."""

    @abstractmethod
    def end_session(self, session: Session) -> None:
        """Release backend resources held for ``session``. Must be idempotent."""

    @abstractmethod
    def navigate(
        self,
        session: Session,
        url: str,
        *,
        timeout: Optional[float] = None,
    ) -> tuple[Session, NavigationResult]:
        """Load ``url`` and return a session whose current URL is ``url``."""

    @abstractmethod
    def click(
        self,
        session: Session,
        selector: str,
        *,
        text: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> tuple[Session, ElementResult]:
        """Click the element matching ``selector`` (optionally filtered by ``text``)."""

    @abstractmethod
    def type(
        self,
        session: Session,
        selector: str,
        text: str,
        *,
        clear: bool = False,
        timeout: Optional[float] = None,
    ) -> tuple[Session, ElementResult]:
        """Type ``text`` into the element matching ``selector``."""

    @abstractmethod
    def screenshot(
        self,
        session: Session,
        *,
        full_page: bool = False,
        format: Union[ScreenshotFormat, str] = ScreenshotFormat.PNG,
        timeout: Optional[float] = None,
    ) -> tuple[Session, Screenshot]:
        """Capture the current page."""

    @abstractmethod
    def extract_content(
        self,
        session: Session,
        *,
        selector: Optional[str] = None,
        format: Union[ContentFormat, str] = ContentFormat.MARKDOWN,
        timeout: Optional[float] = None,
    ) -> tuple[Session, PageContent]:
        """Return the page (or the ``selector`` scope) in the requested format.

        Backends that cannot produce ``format`` must convert or raise
        :class:`AdapterError`; returning another format is not allowed.
        """

    def evaluate(
        self,
        session: Session,
        script: str,
        *,
        timeout: Optional[float] = None,
    ) -> tuple[Session, EvaluationResult]:
        """Run ``script`` in the page. Optional capability."""

        raise AdapterError.unsupported(self.name, "evaluate")

    def close(self) -> None:
        """Release adapter-wide resources. Most adapters hold none."""

    def _timeout(self, session: Session, timeout: Optional[float]) -> float:
        if timeout is not None:
            return timeout
        return session.timeout or DEFAULT_TIMEOUT


def coerce_content_format(value: Union[ContentFormat, str, None]) -> ContentFormat:
    if value is None:
        return ContentFormat.MARKDOWN
    try:
        return ContentFormat(value)
    except ValueError as exc:
        raise InvalidError(
            f"Unknown content format: {value}",
            {"requested_format": str(value)},
        ) from exc


def coerce_screenshot_format(value: Union[ScreenshotFormat, str, None]) -> ScreenshotFormat:
    if value is None:
        return ScreenshotFormat.PNG
    try:
        return ScreenshotFormat(value)
    except ValueError as exc:
        raise InvalidError(
            f"Unknown screenshot format: {value}",
            {"requested_format": str(value)},
        ) from exc
