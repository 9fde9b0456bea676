"""Configuration models for remote browser control."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RpcBackendConfig(BaseModel):
    """Settings for the persistent RPC backend (a local Vibium process)."""

    binary_path: Optional[Path] = None
    host: str = "localhost"
    port: int = 9515
    headless: bool = True
    health_retries: int = Field(default=10, ge=1)
    health_interval: float = Field(default=0.5, ge=0)
    health_timeout: float = Field(default=1.0, gt=0)
    launch_timeout: float = Field(default=30.0, gt=0)


class CliBackendConfig(BaseModel):
    """Settings for the per-call CLI backend (the ``web`` executable)."""

    binary_path: Optional[Path] = None
    profile: Optional[str] = "default"


class PlaywrightBackendConfig(BaseModel):
    """Settings for the in-process Playwright backend."""

    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 720
    args: list[str] = Field(
        default_factory=lambda: ["--no-sandbox", "--disable-dev-shm-usage", "--disable-gpu"]
    )


class SearchConfig(BaseModel):
    """Settings for web search."""

    brave_api_key: Optional[str] = None
    brave_endpoint: str = "https://api.search.brave.com/res/v1/web/search"
    timeout: float = 15.0
    scrape_url: str = "https://html.duckduckgo.com/html/"
    scrape_adapter: str = "cli"


class Settings(BaseSettings):
    """Top-level configuration."""

    model_config = SettingsConfigDict(
        env_prefix="REMOTE_BROWSER_CONTROL_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    default_adapter: str = Field(default="rpc")
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Default per-operation timeout in seconds.",
    )
    rpc: RpcBackendConfig = Field(default_factory=RpcBackendConfig)
    cli: CliBackendConfig = Field(default_factory=CliBackendConfig)
    playwright: PlaywrightBackendConfig = Field(default_factory=PlaywrightBackendConfig)
    search: SearchConfig = Field(default_factory=SearchConfig)


def load_config(
    path: Path | None = None,
    *,
    env_file: Path | None = None,
    **overrides: object,
) -> Settings:
    """Build :class:`Settings` for the browser backends and search.

    Precedence, lowest first: defaults, ``REMOTE_BROWSER_CONTROL_*`` variables
    (and ``env_file``), the YAML file at ``path``, then ``overrides``. Sections
    such as ``rpc``, ``cli`` or ``search`` merge key by key, so a file setting
    ``rpc.port`` keeps an environment-provided ``rpc.host``.
    """

    file_data = _read_yaml(path) if path else {}
    layered = _merged(file_data, overrides)
    settings_kwargs: dict[str, object] = {}
    if env_file is not None:
        settings_kwargs["_env_file"] = env_file
    settings = Settings(**layered, **settings_kwargs)
    if not layered:
        return settings
    return Settings.model_validate(_merged(settings.model_dump(mode="python"), layered))


def _read_yaml(path: Path) -> dict[str, Any]:
    import yaml

    data = yaml.safe_load(path.read_text()) or {}
    if not isinstance(data, Mapping):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return dict(data)


def _merged(base: Mapping[str, Any], updates: Mapping[str, Any]) -> dict[str, Any]:
    """Return ``base`` with ``updates`` applied, descending into nested sections."""

    result = dict(base)
    for key, value in updates.items():
        current = result.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            result[key] = _merged(current, value)
        else:
            result[key] = value
    return result
