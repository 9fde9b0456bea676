"""Factories for constructing components from configuration."""

from __future__ import annotations

from .browser.base import BrowserAdapter
from .browser.playwright_backend import PlaywrightBrowserAdapter
from .browser.rpc import RpcBrowserAdapter
from .browser.web_cli import CliBrowserAdapter
from .config import Settings
from .dispatcher import BrowserDispatcher
from .search.brave import BraveSearchClient

ADAPTER_NAMES = ("rpc", "cli", "playwright")


def build_adapter(name: str, config: Settings) -> BrowserAdapter:
    backend = name.lower()
    if backend == "rpc":
        return RpcBrowserAdapter(config.rpc)
    if backend == "cli":
        return CliBrowserAdapter(config.cli)
    if backend == "playwright":
        return PlaywrightBrowserAdapter(config.playwright)
    raise ValueError(f"Unsupported browser adapter: {name}")


def build_dispatcher(config: Settings) -> BrowserDispatcher:
    adapters = {name: build_adapter(name, config) for name in ADAPTER_NAMES}
    if config.default_adapter not in adapters:
        raise ValueError(f"Unsupported browser adapter: {config.default_adapter}")
    return BrowserDispatcher(
        adapters,
        default_adapter=config.default_adapter,
        default_timeout=config.timeout,
    )


def build_search_client(config: Settings) -> BraveSearchClient:
    return BraveSearchClient(config.search)
