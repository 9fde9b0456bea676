"""Playwright-powered in-process browser adapter."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from typing import Any, Callable, Optional, TypeVar, Union

from playwright.sync_api import Error, sync_playwright
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError

from ..config import PlaywrightBackendConfig
from ..errors import (
    AdapterError,
    BrowserError,
    BrowserTimeoutError,
    ElementError,
    InvalidError,
    NavigationError,
)
from ..extraction.content import html_to_markdown
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
from .base import BrowserAdapter, coerce_content_format, coerce_screenshot_format

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class _PageHandle:
    context: Any
    page: Any


class PlaywrightBrowserAdapter(BrowserAdapter):
    """Browser adapter driving Chromium through Playwright's sync API.

    One browser is shared by the adapter; each session gets its own context.
    The session connection carries only a ``handle`` key into that table and
    the current URL.
    """

    name = "playwright"

    def __init__(self, config: Optional[PlaywrightBackendConfig] = None) -> None:
        self._config = config or PlaywrightBackendConfig()
        self._playwright = None
        self._browser = None
        self._handles: dict[str, _PageHandle] = {}

    @property
    def supports_evaluate(self) -> bool:
        return True

    def start_session(self, **options: Any) -> Session:
        headless = options.get("headless")
        if headless is None:
            headless = self._config.headless
        try:
            browser = self._ensure_browser(bool(headless))
            context = browser.new_context(
                viewport={
                    "width": self._config.viewport_width,
                    "height": self._config.viewport_height,
                }
            )
            page = context.new_page()
        except Error as exc:
            raise AdapterError("Failed to start Playwright session", {"reason": str(exc)}) from exc
        handle = uuid.uuid4().hex
        self._handles[handle] = _PageHandle(context=context, page=page)
        LOGGER.debug("Started Playwright context %s", handle)
        return Session.new(self, {"handle": handle, "current_url": None}, options=options)

    def end_session(self, session: Session) -> None:
        handle = self._handles.pop(session.connection.get("handle"), None)
        if handle is None:
            return
        LOGGER.debug("Closing Playwright context for session %s", session.id)
        try:
            handle.context.close()
        except Error as exc:
            raise AdapterError("Failed to close browser context", {"reason": str(exc)}) from exc

    def navigate(
        self,
        session: Session,
        url: str,
        *,
        timeout: Optional[float] = None,
    ) -> tuple[Session, NavigationResult]:
        page = self._page(session)
        budget = self._timeout(session, timeout)
        self._guard(
            "navigate",
            budget,
            lambda reason: NavigationError(url, reason),
            lambda: page.goto(url, wait_until="load", timeout=_to_timeout(budget)),
        )
        title = self._guard(
            "navigate", budget, lambda reason: NavigationError(url, reason), page.title
        )
        return session.with_connection(current_url=url), NavigationResult(
            url=url,
            title=title,
        )

    def click(
        self,
        session: Session,
        selector: str,
        *,
        text: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> tuple[Session, ElementResult]:
        page = self._page(session, "click")
        budget = self._timeout(session, timeout)
        locator = page.locator(selector)
        if text:
            locator = locator.filter(has_text=text)
        self._guard(
            "click",
            budget,
            lambda reason: ElementError("click", selector, reason),
            lambda: locator.first.click(timeout=_to_timeout(budget)),
        )
        return self._after_action(session, page), ElementResult(action="click", selector=selector)

    def type(
        self,
        session: Session,
        selector: str,
        text: str,
        *,
        clear: bool = False,
        timeout: Optional[float] = None,
    ) -> tuple[Session, ElementResult]:
        page = self._page(session, "type")
        budget = self._timeout(session, timeout)
        locator = page.locator(selector).first

        def _type() -> None:
            if clear:
                locator.fill(text, timeout=_to_timeout(budget))
            else:
                locator.press_sequentially(text, timeout=_to_timeout(budget))

        self._guard(
            "type",
            budget,
            lambda reason: ElementError("type", selector, reason),
            _type,
        )
        return session, ElementResult(action="type", selector=selector)

    def screenshot(
        self,
        session: Session,
        *,
        full_page: bool = False,
        format: Union[ScreenshotFormat, str] = ScreenshotFormat.PNG,
        timeout: Optional[float] = None,
    ) -> tuple[Session, Screenshot]:
        page = self._page(session, "screenshot")
        budget = self._timeout(session, timeout)
        image_format = coerce_screenshot_format(format)
        data = self._guard(
            "screenshot",
            budget,
            lambda reason: AdapterError("Screenshot failed", {"reason": reason}),
            lambda: page.screenshot(
                full_page=full_page,
                type=image_format.value,
                timeout=_to_timeout(budget),
            ),
        )
        return session, Screenshot(data=data, mime=image_format.mime)

    def extract_content(
        self,
        session: Session,
        *,
        selector: Optional[str] = None,
        format: Union[ContentFormat, str] = ContentFormat.MARKDOWN,
        timeout: Optional[float] = None,
    ) -> tuple[Session, PageContent]:
        page = self._page(session, "extract content")
        budget = self._timeout(session, timeout)
        content_format = coerce_content_format(format)
        scope = selector or "body"
        locator = page.locator(scope).first

        def _extract() -> str:
            if content_format is ContentFormat.TEXT:
                return locator.inner_text(timeout=_to_timeout(budget))
            return locator.evaluate("el => el.outerHTML", timeout=_to_timeout(budget))

        content = self._guard(
            "extract",
            budget,
            lambda reason: ElementError("extract", scope, reason),
            _extract,
        )
        if content_format is ContentFormat.MARKDOWN:
            content = html_to_markdown(content)
        return session, PageContent(content=content, format=content_format, url=page.url)

    def evaluate(
        self,
        session: Session,
        script: str,
        *,
        timeout: Optional[float] = None,
    ) -> tuple[Session, EvaluationResult]:
        page = self._page(session, "evaluate")
        budget = self._timeout(session, timeout)
        page.set_default_timeout(_to_timeout(budget))
        result = self._guard(
            "evaluate",
            budget,
            lambda reason: AdapterError("Evaluate failed", {"reason": reason}),
            lambda: page.evaluate(script),
        )
        return self._after_action(session, page), EvaluationResult(result=result)

    def close(self) -> None:
        LOGGER.debug("Stopping Playwright driver")
        handles = list(self._handles.values())
        self._handles.clear()
        try:
            for handle in handles:
                handle.context.close()
        finally:
            if self._browser:
                self._browser.close()
            if self._playwright:
                self._playwright.stop()
        self._browser = None
        self._playwright = None

    # Internals ---------------------------------------------------------

    def _ensure_browser(self, headless: bool) -> Any:
        if self._browser is None:
            LOGGER.debug("Starting Playwright browser")
            self._playwright = sync_playwright().start()
            self._browser = self._playwright.chromium.launch(
                headless=headless,
                args=list(self._config.args),
            )
        return self._browser

    def _page(self, session: Session, operation: Optional[str] = None) -> Any:
        if operation is not None:
            session.require_current_url(operation)
        handle = self._handles.get(session.connection.get("handle"))
        if handle is None:
            raise InvalidError(
                "Playwright session is not active",
                {"session_id": session.id},
            )
        return handle.page

    @staticmethod
    def _after_action(session: Session, page: Any) -> Session:
        # Clicks and scripts can trigger navigation.
        if page.url and page.url != session.current_url:
            return session.with_connection(current_url=page.url)
        return session

    @staticmethod
    def _guard(
        operation: str,
        budget: float,
        on_error: Callable[[Any], BrowserError],
        func: Callable[[], T],
    ) -> T:
        try:
            return func()
        except PlaywrightTimeoutError as exc:
            raise BrowserTimeoutError(operation, budget) from exc
        except Error as exc:
            raise on_error(exc.message) from exc


def _to_timeout(timeout: float) -> int:
    return int(timeout * 1000)
