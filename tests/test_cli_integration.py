from __future__ import annotations

import json

from typer.testing import CliRunner

from conftest import PNG_HEADER, StubAdapter
from remote_browser_control import cli
from remote_browser_control.cli import app
from remote_browser_control.config import Settings
from remote_browser_control.dispatcher import BrowserDispatcher
from remote_browser_control.errors import AdapterError, NavigationError
from remote_browser_control.models import SearchResult, SearchResults


def _install(monkeypatch, adapter: StubAdapter) -> dict[str, object]:
    state: dict[str, object] = {"closed": 0}
    config = Settings()

    def fake_load_config(path, *, env_file=None, **overrides):  # type: ignore[no-untyped-def]
        state["path"] = path
        state["env_file"] = env_file
        state["overrides"] = overrides
        return config

    class RecordingDispatcher(BrowserDispatcher):
        def close(self) -> None:
            state["closed"] += 1
            super().close()

    def fake_build_dispatcher(settings):  # type: ignore[no-untyped-def]
        assert settings is config
        return RecordingDispatcher({"stub": adapter}, default_adapter="stub")

    monkeypatch.setattr(cli, "load_config", fake_load_config)
    monkeypatch.setattr(cli, "build_dispatcher", fake_build_dispatcher)
    return state


def test_read_command_prints_content(monkeypatch, tmp_path):
    runner = CliRunner()
    adapter = StubAdapter(content="# Hello")
    state = _install(monkeypatch, adapter)
    config_path = tmp_path / "config.yaml"
    config_path.write_text("timeout: 10\n")

    result = runner.invoke(
        app,
        ["read", "https://example.com", "--format", "text", "--timeout", "3", "--config", str(config_path)],
    )

    assert result.exit_code == 0, result.output
    assert "# Hello" in result.output
    assert state["path"] == config_path
    assert state["overrides"] == {"timeout": 3.0}
    assert state["closed"] == 1
    assert len(adapter.ended) == 1


def test_read_command_reports_typed_errors(monkeypatch):
    runner = CliRunner()
    adapter = StubAdapter()
    state = _install(monkeypatch, adapter)

    def broken(session, url, *, timeout=None):
        raise NavigationError(url, "dns failure")

    monkeypatch.setattr(adapter, "navigate", broken)

    result = runner.invoke(app, ["read", "https://nowhere.example"])

    assert result.exit_code == 1
    assert "NavigationError" in result.output
    assert state["closed"] == 1


def test_snapshot_command_prints_json(monkeypatch):
    runner = CliRunner()
    adapter = StubAdapter(can_evaluate=False, content="snapshot body")
    _install(monkeypatch, adapter)

    result = runner.invoke(app, ["snapshot", "https://example.com", "--no-links"])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["content"] == "snapshot body"
    assert payload["fallback"] is True
    assert payload["url"] == "https://example.com"


def test_screenshot_command_writes_file(monkeypatch, tmp_path):
    runner = CliRunner()
    adapter = StubAdapter()
    _install(monkeypatch, adapter)
    output = tmp_path / "shot.png"

    result = runner.invoke(app, ["screenshot", "https://example.com", str(output), "--full-page"])

    assert result.exit_code == 0, result.output
    assert output.read_bytes() == PNG_HEADER
    assert ("screenshot", True) in adapter.calls
    assert len(adapter.ended) == 1


def test_search_command_with_brave(monkeypatch):
    runner = CliRunner()
    _install(monkeypatch, StubAdapter())
    queries: list[tuple[str, int, object]] = []

    class FakeClient:
        def search(self, query, *, max_results=10, freshness=None):  # type: ignore[no-untyped-def]
            queries.append((query, max_results, freshness))
            return SearchResults(
                query=query,
                source="brave",
                results=[SearchResult(rank=1, title="Python", url="https://python.org")],
            )

    monkeypatch.setattr(cli, "build_search_client", lambda config: FakeClient())

    result = runner.invoke(app, ["search", "python", "--source", "brave", "-n", "3", "--freshness", "pw"])

    assert result.exit_code == 0, result.output
    assert queries == [("python", 3, "pw")]
    assert "https://python.org" in result.output


def test_search_command_reports_brave_errors(monkeypatch):
    runner = CliRunner()
    _install(monkeypatch, StubAdapter())

    class FailingClient:
        def search(self, query, **kwargs):  # type: ignore[no-untyped-def]
            raise AdapterError("Brave Search API: rate limit exceeded", {"status": 429})

    monkeypatch.setattr(cli, "build_search_client", lambda config: FailingClient())

    result = runner.invoke(app, ["search", "python", "--source", "brave"])

    assert result.exit_code == 1
    assert "rate limit exceeded" in result.output


def test_version_command():
    result = CliRunner().invoke(app, ["version"])

    assert result.exit_code == 0
    assert result.stdout.startswith("remote-browser-control ")
    assert "adapters: rpc, cli, playwright" in result.stdout
