import pytest

from conftest import StubAdapter
from remote_browser_control.actions import read_page, snapshot_url
from remote_browser_control.dispatcher import BrowserDispatcher
from remote_browser_control.errors import ElementError, NavigationError
from remote_browser_control.models import ContentFormat
from remote_browser_control.search.web import search_url, search_web

RESULTS_PAGE = "\n".join(
    [
        "DuckDuckGo",
        "----------",
        "[First hit](//duckduckgo.com/l/?uddg=https%3A%2F%2Ffirst.example%2F&rut=1)",
        "----------",
        "first.example",
        "The first snippet.",
        "----------",
        "[Ad](https://duckduckgo.com/y.js?ad_domain=ads.example)",
        "----------",
        "Buy things",
        "----------",
        "[Second hit](https://second.example/)",
        "----------",
        "The second snippet.",
    ]
)


def test_read_page_returns_content_and_ends_session(dispatcher, stub_adapter):
    page = read_page(dispatcher, "https://example.com", selector="main", format="text")

    assert page.content == "Stub page content"
    assert page.format is ContentFormat.TEXT
    assert page.url == "https://example.com"
    assert len(stub_adapter.ended) == 1
    assert ("extract_content", {"selector": "main", "format": ContentFormat.TEXT}) in stub_adapter.calls


def test_read_page_ends_session_on_failure(dispatcher, stub_adapter, monkeypatch):
    def broken(session, *, selector=None, format=ContentFormat.MARKDOWN, timeout=None):
        raise ElementError("extract", selector, "not found")

    monkeypatch.setattr(stub_adapter, "extract_content", broken)

    with pytest.raises(ElementError):
        read_page(dispatcher, "https://example.com")

    assert len(stub_adapter.ended) == 1


def test_snapshot_url_falls_back_and_ends_session():
    adapter = StubAdapter(can_evaluate=False, content="body text")
    dispatcher = BrowserDispatcher({"stub": adapter})

    snapshot = snapshot_url(dispatcher, "https://example.com", max_content_length=4)

    assert snapshot.fallback is True
    assert snapshot.content == "body"
    assert snapshot.url == "https://example.com"
    assert len(adapter.ended) == 1


def test_snapshot_url_ends_session_when_navigation_fails(dispatcher, stub_adapter, monkeypatch):
    def broken(session, url, *, timeout=None):
        raise NavigationError(url, "dns failure")

    monkeypatch.setattr(stub_adapter, "navigate", broken)

    with pytest.raises(NavigationError):
        snapshot_url(dispatcher, "https://example.com")

    assert len(stub_adapter.ended) == 1


def test_search_url_encodes_query():
    assert search_url("a b&c") == "https://html.duckduckgo.com/html/?q=a+b%26c"


def test_search_web_parses_page_and_ends_session():
    adapter = StubAdapter(content=RESULTS_PAGE)
    dispatcher = BrowserDispatcher({"stub": adapter})

    results = search_web(dispatcher, "python", adapter="stub", max_results=5)

    assert results.source == "scrape"
    assert results.query == "python"
    assert [(r.rank, r.url) for r in results.results] == [
        (1, "https://first.example/"),
        (2, "https://second.example/"),
    ]
    assert results.results[0].snippet == "The first snippet."
    navigated = [payload for name, payload in adapter.calls if name == "navigate"]
    assert navigated == ["https://html.duckduckgo.com/html/?q=python"]
    assert len(adapter.ended) == 1


def test_search_web_ends_session_on_failure(monkeypatch):
    adapter = StubAdapter()
    dispatcher = BrowserDispatcher({"stub": adapter})

    def broken(session, url, *, timeout=None):
        raise NavigationError(url, "blocked")

    monkeypatch.setattr(adapter, "navigate", broken)

    with pytest.raises(NavigationError):
        search_web(dispatcher, "python", adapter="stub")

    assert len(adapter.ended) == 1
