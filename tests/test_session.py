from datetime import datetime

import pytest

from conftest import StubAdapter
from remote_browser_control.errors import InvalidError
from remote_browser_control.session import Session


def test_new_session_has_identity_and_timestamp():
    adapter = StubAdapter()
    session = Session.new(adapter, {"port": 9515})

    assert session.adapter is adapter
    assert session.connection == {"port": 9515}
    assert isinstance(session.id, str) and session.id
    assert isinstance(session.created_at, datetime)
    assert session.options == {}


def test_new_session_allows_custom_id():
    session = Session.new(StubAdapter(), id="custom-id")
    assert session.id == "custom-id"


def test_new_session_requires_adapter():
    with pytest.raises(InvalidError):
        Session.new(None)  # type: ignore[arg-type]


def test_with_connection_returns_new_value():
    original = Session.new(StubAdapter(), {"profile": "default", "current_url": None})

    updated = original.with_connection(current_url="https://example.com")

    assert updated is not original
    assert updated.id == original.id
    assert updated.current_url == "https://example.com"
    assert updated.connection["profile"] == "default"
    assert original.current_url is None


def test_session_is_immutable():
    session = Session.new(StubAdapter(), {"current_url": None})

    with pytest.raises(AttributeError):
        session.id = "other"  # type: ignore[misc]
    with pytest.raises(TypeError):
        session.connection["current_url"] = "https://example.com"  # type: ignore[index]


def test_connection_is_copied_on_creation():
    connection = {"current_url": None}
    session = Session.new(StubAdapter(), connection)

    connection["current_url"] = "https://changed.example"

    assert session.current_url is None


def test_require_current_url_raises_precondition_error():
    session = Session.new(StubAdapter(), {"current_url": None})

    with pytest.raises(InvalidError) as excinfo:
        session.require_current_url("click")

    assert "navigate first" in str(excinfo.value)
    assert excinfo.value.details["operation"] == "click"
