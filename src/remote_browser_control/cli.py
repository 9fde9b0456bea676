"""Command line interface for remote-browser-control."""

from __future__ import annotations

import json
import logging
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path
from typing import Annotated, Any, NoReturn, Optional

import typer
from rich.console import Console
from rich.table import Table

from .actions import read_page, snapshot_url
from .config import Settings, load_config
from .errors import BrowserError
from .factory import ADAPTER_NAMES, build_dispatcher, build_search_client
from .models import ContentFormat, SearchResults
from .search.web import search_web

app = typer.Typer(help="Remote Browser Control entry point")
console = Console()
DISTRIBUTION = "remote-browser-control"

ConfigOption = Annotated[
    Optional[Path],
    typer.Option("--config", "-c", help="Path to YAML configuration."),
]
EnvFileOption = Annotated[
    Optional[Path],
    typer.Option("--env-file", help="Path to an .env file with default configuration values."),
]
AdapterOption = Annotated[
    Optional[str],
    typer.Option("--adapter", "-a", help="Browser adapter: rpc, cli or playwright."),
]
TimeoutOption = Annotated[
    Optional[float],
    typer.Option("--timeout", help="Per-operation timeout in seconds."),
]


@app.callback()
def main(
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Set up logging for the browser backends before any command runs.

    Backend lifecycle and per-request detail only show with ``--verbose``;
    httpx request lines are kept at warning level otherwise.
    """

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


@app.command()
def version() -> None:
    """Print the installed version and the available browser adapters."""

    try:
        installed = get_version(DISTRIBUTION)
    except PackageNotFoundError:  # pragma: no cover - when running from source tree
        installed = "0.0.0"
    typer.echo(f"{DISTRIBUTION} {installed} (adapters: {', '.join(ADAPTER_NAMES)})")


@app.command()
def read(
    url: Annotated[str, typer.Argument(help="Page to read.")],
    selector: Annotated[str, typer.Option("--selector", "-s", help="CSS scope.")] = "body",
    format: Annotated[
        ContentFormat,
        typer.Option("--format", "-f", help="Output format."),
    ] = ContentFormat.MARKDOWN,
    adapter: AdapterOption = None,
    timeout: TimeoutOption = None,
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
) -> None:
    """Print the content of a page."""

    config = _load(config_path, env_file, timeout)
    dispatcher = build_dispatcher(config)
    try:
        page = read_page(dispatcher, url, selector=selector, format=format, adapter=adapter)
    except BrowserError as exc:
        _fail(exc)
    finally:
        dispatcher.close()
    typer.echo(page.content)


@app.command()
def snapshot(
    url: Annotated[str, typer.Argument(help="Page to snapshot.")],
    selector: Annotated[str, typer.Option("--selector", "-s", help="CSS scope.")] = "body",
    links: Annotated[bool, typer.Option("--links/--no-links")] = True,
    forms: Annotated[bool, typer.Option("--forms/--no-forms")] = True,
    headings: Annotated[bool, typer.Option("--headings/--no-headings")] = True,
    max_content_length: Annotated[
        int,
        typer.Option("--max-content-length", help="Truncate content at this length."),
    ] = 50_000,
    adapter: AdapterOption = None,
    timeout: TimeoutOption = None,
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
) -> None:
    """Print a JSON snapshot of a page."""

    config = _load(config_path, env_file, timeout)
    dispatcher = build_dispatcher(config)
    try:
        result = snapshot_url(
            dispatcher,
            url,
            selector=selector,
            include_links=links,
            include_forms=forms,
            include_headings=headings,
            max_content_length=max_content_length,
            adapter=adapter,
        )
    except BrowserError as exc:
        _fail(exc)
    finally:
        dispatcher.close()
    typer.echo(json.dumps(result.to_payload(), indent=2))


@app.command()
def search(
    query: Annotated[str, typer.Argument(help="Search query.")],
    max_results: Annotated[int, typer.Option("--max-results", "-n")] = 10,
    source: Annotated[
        str,
        typer.Option("--source", help="Where results come from: scrape or brave."),
    ] = "scrape",
    freshness: Annotated[
        Optional[str],
        typer.Option("--freshness", help="Brave freshness filter: pd, pw, pm or py."),
    ] = None,
    timeout: TimeoutOption = None,
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
) -> None:
    """Search the web and print ranked results."""

    config = _load(config_path, env_file, timeout)
    if source == "brave":
        try:
            results = build_search_client(config).search(
                query, max_results=max_results, freshness=freshness
            )
        except BrowserError as exc:
            _fail(exc)
    elif source == "scrape":
        dispatcher = build_dispatcher(config)
        try:
            results = search_web(
                dispatcher,
                query,
                max_results=max_results,
                adapter=config.search.scrape_adapter,
                base_url=config.search.scrape_url,
            )
        except BrowserError as exc:
            _fail(exc)
        finally:
            dispatcher.close()
    else:
        raise typer.BadParameter(f"Unknown search source: {source}", param_hint="--source")
    _print_results(results)


@app.command()
def screenshot(
    url: Annotated[str, typer.Argument(help="Page to capture.")],
    output: Annotated[Path, typer.Argument(help="Where to write the image.")],
    full_page: Annotated[bool, typer.Option("--full-page")] = False,
    adapter: AdapterOption = None,
    timeout: TimeoutOption = None,
    config_path: ConfigOption = None,
    env_file: EnvFileOption = None,
) -> None:
    """Save a screenshot of a page."""

    config = _load(config_path, env_file, timeout)
    dispatcher = build_dispatcher(config)
    try:
        session = dispatcher.start_session(adapter)
        try:
            session, _ = dispatcher.navigate(session, url)
            session, image = dispatcher.screenshot(session, full_page=full_page)
        finally:
            dispatcher.end_session(session)
    except BrowserError as exc:
        _fail(exc)
    finally:
        dispatcher.close()
    output.write_bytes(image.data)
    typer.echo(f"Saved {image.mime} screenshot to {output}")


def _load(
    config_path: Optional[Path],
    env_file: Optional[Path],
    timeout: Optional[float],
) -> Settings:
    overrides: dict[str, Any] = {}
    if timeout is not None:
        overrides["timeout"] = timeout
    return load_config(config_path, env_file=env_file, **overrides)


def _print_results(results: SearchResults) -> None:
    table = Table(title=f"{results.count} result(s) for {results.query!r}")
    table.add_column("#", justify="right")
    table.add_column("Title")
    table.add_column("URL", style="cyan")
    table.add_column("Snippet", style="dim")
    for result in results.results:
        table.add_row(str(result.rank), result.title, result.url, result.snippet)
    console.print(table)


def _fail(exc: BrowserError) -> NoReturn:
    typer.echo(f"{type(exc).__name__}: {exc}", err=True)
    raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
