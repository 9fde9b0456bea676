import json

import pytest

from conftest import StubAdapter
from remote_browser_control.dispatcher import BrowserDispatcher
from remote_browser_control.errors import AdapterError, BrowserTimeoutError
from remote_browser_control.extraction.snapshot import normalize_snapshot, snapshot_script
from remote_browser_control.models import ContentFormat


def _page_data(links: int = 150, headings: int = 80) -> dict:
    return {
        "url": "https://example.com",
        "title": "Example Domain",
        "content": "x" * 500,
        "links": [
            {"id": f"link_{i}", "text": f"Link {i}", "href": f"https://example.com/{i}"}
            for i in range(links)
        ],
        "forms": [
            {
                "id": "login",
                "action": "https://example.com/login",
                "method": "POST",
                "fields": [
                    {"name": "user", "type": "text", "label": "User", "required": True, "value": "bob"},
                    {"name": "pass", "type": "password", "label": None, "required": True, "value": ""},
                ],
            }
        ],
        "headings": [{"level": 2, "text": f"Heading {i}"} for i in range(headings)],
        "meta": {"viewport_height": 720, "scroll_height": 2000, "scroll_position": 0},
    }


def _dispatcher(adapter: StubAdapter) -> BrowserDispatcher:
    return BrowserDispatcher({"stub": adapter}, default_adapter="stub")


def _navigated(dispatcher: BrowserDispatcher):
    session = dispatcher.start_session()
    session, _ = dispatcher.navigate(session, "https://example.com")
    return session


def test_script_embeds_arguments_and_caps():
    script = snapshot_script('main[data-x="1"]', True, False, True, 1234)

    assert "function snapshot" in script
    assert json.dumps('main[data-x="1"]') in script
    assert "true, false, true, 1234" in script
    assert "slice(0, 100)" in script
    assert "slice(0, 50)" in script
    assert "f.type === 'password' ? ''" in script


def test_rich_snapshot_from_structured_result():
    adapter = StubAdapter(evaluate_result=_page_data())
    dispatcher = _dispatcher(adapter)
    session = _navigated(dispatcher)

    session, snapshot = dispatcher.snapshot(session, max_content_length=100)

    assert snapshot.fallback is False
    assert snapshot.title == "Example Domain"
    assert len(snapshot.content) == 100
    assert len(snapshot.links) == 100
    assert len(snapshot.headings) == 50
    assert snapshot.forms[0].fields[1].type == "password"
    assert snapshot.meta.viewport_height == 720


def test_rich_snapshot_from_json_string():
    adapter = StubAdapter(evaluate_result=json.dumps(_page_data(links=3, headings=2)))
    dispatcher = _dispatcher(adapter)
    session = _navigated(dispatcher)

    _, snapshot = dispatcher.snapshot(session)

    assert snapshot.fallback is False
    assert [link.id for link in snapshot.links] == ["link_0", "link_1", "link_2"]


def test_unrequested_sections_are_omitted():
    adapter = StubAdapter(evaluate_result=_page_data())
    dispatcher = _dispatcher(adapter)
    session = _navigated(dispatcher)

    _, snapshot = dispatcher.snapshot(
        session, include_links=False, include_forms=False, include_headings=False
    )

    payload = snapshot.to_payload()
    assert "links" not in payload
    assert "forms" not in payload
    assert "headings" not in payload
    assert payload["title"] == "Example Domain"


def test_requested_but_empty_sections_are_present():
    data = _page_data()
    data.pop("links")
    data.pop("headings")
    snapshot = normalize_snapshot(
        data,
        include_links=True,
        include_forms=True,
        include_headings=True,
        max_content_length=10,
    )

    payload = snapshot.to_payload()
    assert payload["links"] == []
    assert payload["headings"] == []


def test_falls_back_when_result_is_not_json():
    adapter = StubAdapter(evaluate_result="not-json", content="abcdefghijklmnopqrstuvwxyz")
    dispatcher = _dispatcher(adapter)
    session = _navigated(dispatcher)

    _, snapshot = dispatcher.snapshot(session, selector="main", max_content_length=8)

    assert snapshot.fallback is True
    assert snapshot.content == "abcdefgh"
    assert snapshot.url == "https://example.com"
    assert snapshot.links is None
    extract_calls = [payload for name, payload in adapter.calls if name == "extract_content"]
    assert extract_calls == [{"selector": "main", "format": ContentFormat.MARKDOWN}]


def test_falls_back_when_adapter_cannot_evaluate():
    adapter = StubAdapter(can_evaluate=False, content="plain content")
    dispatcher = _dispatcher(adapter)
    session = _navigated(dispatcher)

    _, snapshot = dispatcher.snapshot(session)

    assert snapshot.fallback is True
    assert snapshot.content == "plain content"
    assert not any(name == "evaluate" for name, _ in adapter.calls)


def test_falls_back_when_evaluate_raises_adapter_error(monkeypatch):
    adapter = StubAdapter(content="fallback body")
    dispatcher = _dispatcher(adapter)
    session = _navigated(dispatcher)

    def failing_evaluate(session, script, *, timeout=None):
        raise AdapterError("Evaluate failed")

    monkeypatch.setattr(adapter, "evaluate", failing_evaluate)

    _, snapshot = dispatcher.snapshot(session)

    assert snapshot.fallback is True
    assert snapshot.content == "fallback body"


def test_timeout_is_not_masked_by_fallback(monkeypatch):
    adapter = StubAdapter()
    dispatcher = _dispatcher(adapter)
    session = _navigated(dispatcher)

    def slow_evaluate(session, script, *, timeout=None):
        raise BrowserTimeoutError("evaluate", 1.0)

    monkeypatch.setattr(adapter, "evaluate", slow_evaluate)

    with pytest.raises(BrowserTimeoutError):
        dispatcher.snapshot(session)


def test_falls_back_when_result_does_not_validate():
    adapter = StubAdapter(evaluate_result={"headings": [{"level": "not-a-number"}]}, content="ok")
    dispatcher = _dispatcher(adapter)
    session = _navigated(dispatcher)

    _, snapshot = dispatcher.snapshot(session)

    assert snapshot.fallback is True
    assert snapshot.content == "ok"


def test_mapping_without_page_fields_falls_back():
    adapter = StubAdapter(evaluate_result={"ok": True}, content="real content")
    dispatcher = _dispatcher(adapter)
    session = _navigated(dispatcher)

    _, snapshot = dispatcher.snapshot(session)

    assert snapshot.fallback is True
    assert snapshot.content == "real content"
    assert snapshot.url == "https://example.com"


def test_wrapped_results_are_unwrapped():
    page = _page_data(links=2, headings=1)
    for wrapped in (
        {"value": page},
        {"result": json.dumps(page)},
        {"content": [{"type": "text", "text": json.dumps(page)}]},
    ):
        adapter = StubAdapter(evaluate_result=wrapped)
        dispatcher = _dispatcher(adapter)
        session = _navigated(dispatcher)

        _, snapshot = dispatcher.snapshot(session)

        assert snapshot.fallback is False
        assert snapshot.title == "Example Domain"
        assert len(snapshot.links) == 2


def test_payload_keeps_nested_nulls():
    snapshot = normalize_snapshot(
        _page_data(links=1, headings=1),
        include_links=False,
        include_forms=True,
        include_headings=True,
        max_content_length=10,
    )

    payload = snapshot.to_payload()

    assert "links" not in payload
    password = payload["forms"][0]["fields"][1]
    assert password["label"] is None
    assert "label" in password
