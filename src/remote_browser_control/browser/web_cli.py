"""Adapter for the ``web`` command line browser.

Every operation spawns a fresh process that loads the page, performs one step
and prints the result. Continuity between calls (cookies, logins) comes from
the on-disk profile; the current URL lives in the caller's session.
"""

from __future__ import annotations

import contextlib
import logging
import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Callable, Iterator, Optional, Sequence, Union

from ..config import CliBackendConfig
from ..errors import (
    AdapterError,
    BrowserError,
    BrowserTimeoutError,
    ElementError,
    NavigationError,
)
from ..extraction.content import element_script, html_to_markdown
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


class CommandFailed(Exception):
    """The executable ran but exited with a non-zero status."""

    def __init__(self, returncode: int, output: str) -> None:
        super().__init__(f"web exited with code {returncode}: {output}")
        self.returncode = returncode
        self.output = output


class CliBrowserAdapter(BrowserAdapter):
    """Browser adapter that shells out to the ``web`` executable per operation."""

    name = "cli"

    def __init__(self, config: Optional[CliBackendConfig] = None) -> None:
        self._config = config or CliBackendConfig()

    @property
    def supports_evaluate(self) -> bool:
        return True

    def start_session(self, **options: Any) -> Session:
        profile = options.get("profile") or self._config.profile
        return Session.new(
            self,
            {"profile": profile, "current_url": None},
            options=options,
        )

    def end_session(self, session: Session) -> None:
        # Nothing runs between invocations; the profile stays on disk.
        return None

    def navigate(
        self,
        session: Session,
        url: str,
        *,
        timeout: Optional[float] = None,
    ) -> tuple[Session, NavigationResult]:
        output = self._run(
            session,
            "navigate",
            [url],
            timeout,
            lambda reason: NavigationError(url, reason),
        )
        return session.with_connection(current_url=url), NavigationResult(url=url, content=output)

    def click(
        self,
        session: Session,
        selector: str,
        *,
        text: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> tuple[Session, ElementResult]:
        url = session.require_current_url("click")
        args = [url, "--click", selector]
        if text:
            args.extend(["--text", text])
        output = self._run(
            session,
            "click",
            args,
            timeout,
            lambda reason: ElementError("click", selector, reason),
        )
        return session, ElementResult(action="click", selector=selector, content=output)

    def type(
        self,
        session: Session,
        selector: str,
        text: str,
        *,
        clear: bool = False,
        timeout: Optional[float] = None,
    ) -> tuple[Session, ElementResult]:
        # --fill replaces the field value, so ``clear`` is implied.
        url = session.require_current_url("type")
        output = self._run(
            session,
            "type",
            [url, "--fill", f"{selector}={text}"],
            timeout,
            lambda reason: ElementError("type", selector, reason),
        )
        return session, ElementResult(action="type", selector=selector, content=output)

    def screenshot(
        self,
        session: Session,
        *,
        full_page: bool = False,
        format: Union[ScreenshotFormat, str] = ScreenshotFormat.PNG,
        timeout: Optional[float] = None,
    ) -> tuple[Session, Screenshot]:
        url = session.require_current_url("screenshot")
        image_format = coerce_screenshot_format(format)
        if image_format is not ScreenshotFormat.PNG:
            raise AdapterError(
                "CLI backend only captures PNG screenshots",
                {"requested_format": image_format.value, "supported_formats": ["png"]},
            )
        with _temporary_path(".png") as path:
            self._run(
                session,
                "screenshot",
                [url, "--screenshot", str(path)],
                timeout,
                lambda reason: AdapterError("Screenshot failed", {"reason": reason}),
            )
            try:
                data = path.read_bytes()
            except OSError as exc:
                raise AdapterError(
                    "Failed to read screenshot", {"reason": str(exc), "path": str(path)}
                ) from exc
        if not data:
            raise AdapterError("Screenshot failed", {"reason": "empty screenshot file"})
        return session, Screenshot(data=data, mime=image_format.mime)

    def extract_content(
        self,
        session: Session,
        *,
        selector: Optional[str] = None,
        format: Union[ContentFormat, str] = ContentFormat.MARKDOWN,
        timeout: Optional[float] = None,
    ) -> tuple[Session, PageContent]:
        url = session.require_current_url("extract content")
        content_format = coerce_content_format(format)
        scoped = bool(selector) and selector != "body"

        def failure(reason: Any) -> BrowserError:
            return AdapterError("Extract content failed", {"reason": reason})

        if content_format is ContentFormat.MARKDOWN and not scoped:
            content = self._run(session, "extract", [url], timeout, failure)
        elif content_format is ContentFormat.TEXT:
            script = element_script(selector, "innerText")
            content = self._run(session, "extract", [url, "--js", script], timeout, failure)
        else:
            script = element_script(selector, "outerHTML")
            content = self._run(session, "extract", [url, "--js", script], timeout, failure)
            if content_format is ContentFormat.MARKDOWN:
                content = html_to_markdown(content)
        return session, PageContent(content=content, format=content_format, url=url)

    def evaluate(
        self,
        session: Session,
        script: str,
        *,
        timeout: Optional[float] = None,
    ) -> tuple[Session, EvaluationResult]:
        url = session.require_current_url("evaluate")
        output = self._run(
            session,
            "evaluate",
            [url, "--js", script],
            timeout,
            lambda reason: AdapterError("Evaluate failed", {"reason": reason}),
        )
        return session, EvaluationResult(result=output)

    # Internals ---------------------------------------------------------

    def _run(
        self,
        session: Session,
        operation: str,
        args: Sequence[str],
        timeout: Optional[float],
        on_error: Callable[[Any], BrowserError],
    ) -> str:
        budget = self._timeout(session, timeout)
        profile = session.connection.get("profile")
        command = [self._find_binary()]
        if profile:
            command.extend(["--profile", str(profile)])
        command.extend(args)
        LOGGER.debug("Running %s", command[0])
        try:
            return run_command(command, budget)
        except subprocess.TimeoutExpired as exc:
            raise BrowserTimeoutError(operation, budget) from exc
        except CommandFailed as exc:
            raise on_error(str(exc)) from exc
        except OSError as exc:
            raise AdapterError(
                f"Failed to run web executable for {operation}",
                {"reason": str(exc)},
            ) from exc

    def _find_binary(self) -> str:
        if self._config.binary_path:
            return str(self._config.binary_path)
        found = shutil.which("web")
        if found:
            return found
        raise AdapterError(
            "web binary not found",
            {"reason": "Install from https://github.com/chrismccord/web"},
        )


def run_command(command: Sequence[str], timeout: float) -> str:
    """Run ``command`` and return its stripped output.

    stdout and stderr share one pipe, drained by ``communicate`` which collects
    chunks and joins them once. On timeout the child is killed and reaped
    before :class:`subprocess.TimeoutExpired` propagates.
    """

    with subprocess.Popen(
        list(command),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.PIPE,
        stderr=subprocess.STDOUT,
    ) as process:
        try:
            raw, _ = process.communicate(timeout=timeout)
        except subprocess.TimeoutExpired:
            process.kill()
            process.communicate()
            raise
    output = raw.decode("utf-8", errors="replace").strip()
    if process.returncode != 0:
        raise CommandFailed(process.returncode, output)
    return output


@contextlib.contextmanager
def _temporary_path(suffix: str) -> Iterator[Path]:
    handle, name = tempfile.mkstemp(prefix="remote_browser_", suffix=suffix)
    os.close(handle)
    path = Path(name)
    try:
        yield path
    finally:
        path.unlink(missing_ok=True)
