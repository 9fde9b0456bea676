from __future__ import annotations

from typing import Any, Optional

import pytest

from remote_browser_control.browser.base import BrowserAdapter
from remote_browser_control.dispatcher import BrowserDispatcher
from remote_browser_control.errors import AdapterError
from remote_browser_control.models import (
    ContentFormat,
    ElementResult,
    EvaluationResult,
    NavigationResult,
    PageContent,
    Screenshot,
    ScreenshotFormat,
)
from remote_browser_control.session import Session

PNG_HEADER = b"\x89PNG\r\n\x1a\n"


class StubAdapter(BrowserAdapter):
    """In-memory adapter that records calls and tracks the current URL."""

    name = "stub"

    def __init__(
        self,
        *,
        evaluate_result: Any = None,
        can_evaluate: bool = True,
        content: str = "Stub page content",
    ) -> None:
        self.calls: list[tuple[str, Any]] = []
        self.evaluate_result = evaluate_result
        self.can_evaluate = can_evaluate
        self.content = content
        self.ended: list[str] = []
        self.failure: Optional[Exception] = None

    @property
    def supports_evaluate(self) -> bool:
        return self.can_evaluate

    def _record(self, name: str, payload: Any = None) -> None:
        self.calls.append((name, payload))
        if self.failure is not None:
            raise self.failure

    def start_session(self, **options: Any) -> Session:
        self._record("start_session", options)
        return Session.new(self, {"current_url": None}, options=options)

    def end_session(self, session: Session) -> None:
        self.calls.append(("end_session", session.id))
        self.ended.append(session.id)

    def navigate(self, session, url, *, timeout=None):
        self._record("navigate", url)
        return session.with_connection(current_url=url), NavigationResult(
            url=url, title=f"Stub Page - {url}"
        )

    def click(self, session, selector, *, text=None, timeout=None):
        session.require_current_url("click")
        self._record("click", selector)
        return session, ElementResult(action="click", selector=selector)

    def type(self, session, selector, text, *, clear=False, timeout=None):
        session.require_current_url("type")
        self._record("type", (selector, text, clear))
        return session, ElementResult(action="type", selector=selector)

    def screenshot(self, session, *, full_page=False, format=ScreenshotFormat.PNG, timeout=None):
        session.require_current_url("screenshot")
        self._record("screenshot", full_page)
        if ScreenshotFormat(format) is not ScreenshotFormat.PNG:
            raise AdapterError("Stub adapter only supports PNG screenshots")
        return session, Screenshot(data=PNG_HEADER, mime="image/png")

    def extract_content(self, session, *, selector=None, format=ContentFormat.MARKDOWN, timeout=None):
        url = session.require_current_url("extract content")
        self._record("extract_content", {"selector": selector, "format": ContentFormat(format)})
        return session, PageContent(content=self.content, format=ContentFormat(format), url=url)

    def evaluate(self, session, script, *, timeout=None):
        if not self.can_evaluate:
            return super().evaluate(session, script, timeout=timeout)
        session.require_current_url("evaluate")
        self._record("evaluate", script)
        return session, EvaluationResult(result=self.evaluate_result)


@pytest.fixture
def stub_adapter() -> StubAdapter:
    return StubAdapter()


@pytest.fixture
def dispatcher(stub_adapter: StubAdapter) -> BrowserDispatcher:
    return BrowserDispatcher({"stub": stub_adapter}, default_adapter="stub", default_timeout=5.0)
