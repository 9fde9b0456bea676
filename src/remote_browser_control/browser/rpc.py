"""Adapter for a long-lived local browser process speaking JSON-RPC over HTTP.

The process (Vibium by default) exposes ``GET /health`` and a ``POST /mcp``
endpoint accepting ``tools/call`` requests. The adapter probes for a running
instance, launches one in the background when needed and then sends one
request per operation.
"""

from __future__ import annotations

import base64
import binascii
import enum
import itertools
import logging
import shutil
import subprocess
import time
from typing import Any, Callable, Optional, Union

import httpx

from ..config import RpcBackendConfig
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

ErrorFactory = Callable[[Any], BrowserError]


class BackendState(str, enum.Enum):
    """Lifecycle of the backend process as seen by the adapter."""

    NOT_RUNNING = "not_running"
    STARTING = "starting"
    HEALTHY = "healthy"


class RpcCommandError(Exception):
    """Raised internally when the backend answers a command with an error."""

    def __init__(self, reason: Any) -> None:
        super().__init__(str(reason))
        self.reason = reason


class RpcBrowserAdapter(BrowserAdapter):
    """Browser adapter backed by a persistent RPC process."""

    name = "rpc"

    def __init__(
        self,
        config: Optional[RpcBackendConfig] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config or RpcBackendConfig()
        self._transport = transport
        self._sleep = sleep
        self._ids = itertools.count(1)
        self._state = BackendState.NOT_RUNNING
        self._live: set[str] = set()

    @property
    def state(self) -> BackendState:
        return self._state

    @property
    def supports_evaluate(self) -> bool:
        return True

    # Session lifecycle -------------------------------------------------

    def start_session(self, **options: Any) -> Session:
        port = int(options.get("port") or self._config.port)
        headless = options.get("headless")
        if headless is None:
            headless = self._config.headless
        base_url = f"http://{self._config.host}:{port}"
        self._ensure_running(base_url, port, bool(headless))
        session = Session.new(
            self,
            {"base_url": base_url, "port": port, "current_url": None},
            options=options,
        )
        self._live.add(session.id)
        LOGGER.info("RPC browser session %s ready at %s", session.id, base_url)
        return session

    def end_session(self, session: Session) -> None:
        if session.id not in self._live:
            return
        try:
            self._send(session, "browser_quit", {}, timeout=self._config.health_timeout * 5)
        except (httpx.ConnectError, httpx.TimeoutException) as exc:
            LOGGER.warning("Browser process already unreachable on quit: %s", exc)
        except RpcCommandError as exc:
            raise AdapterError("Failed to quit browser", {"reason": exc.reason}) from exc
        except httpx.HTTPError as exc:
            raise AdapterError("Failed to quit browser", {"reason": str(exc)}) from exc
        self._live.discard(session.id)
        self._state = BackendState.NOT_RUNNING

    # Operations --------------------------------------------------------

    def navigate(
        self,
        session: Session,
        url: str,
        *,
        timeout: Optional[float] = None,
    ) -> tuple[Session, NavigationResult]:
        result = self._call(
            session,
            "navigate",
            "browser_navigate",
            {"url": url},
            timeout,
            lambda reason: NavigationError(url, reason),
        )
        title = result.get("title") if isinstance(result, dict) else None
        return session.with_connection(current_url=url), NavigationResult(
            url=url,
            title=title,
            raw=result,
        )

    def click(
        self,
        session: Session,
        selector: str,
        *,
        text: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> tuple[Session, ElementResult]:
        session.require_current_url("click")
        params: dict[str, Any] = {"selector": selector}
        if text:
            params["text"] = text
        result = self._call(
            session,
            "click",
            "browser_click",
            params,
            timeout,
            lambda reason: ElementError("click", selector, reason),
        )
        return session, ElementResult(action="click", selector=selector, raw=result)

    def type(
        self,
        session: Session,
        selector: str,
        text: str,
        *,
        clear: bool = False,
        timeout: Optional[float] = None,
    ) -> tuple[Session, ElementResult]:
        session.require_current_url("type")
        params: dict[str, Any] = {"selector": selector, "text": text}
        if clear:
            params["clear"] = True
        result = self._call(
            session,
            "type",
            "browser_type",
            params,
            timeout,
            lambda reason: ElementError("type", selector, reason),
        )
        return session, ElementResult(action="type", selector=selector, raw=result)

    def screenshot(
        self,
        session: Session,
        *,
        full_page: bool = False,
        format: Union[ScreenshotFormat, str] = ScreenshotFormat.PNG,
        timeout: Optional[float] = None,
    ) -> tuple[Session, Screenshot]:
        session.require_current_url("screenshot")
        image_format = coerce_screenshot_format(format)
        if image_format is not ScreenshotFormat.PNG:
            raise AdapterError(
                "RPC backend only captures PNG screenshots",
                {"requested_format": image_format.value, "supported_formats": ["png"]},
            )
        params: dict[str, Any] = {}
        if full_page:
            params["full_page"] = True
        result = self._call(
            session,
            "screenshot",
            "browser_screenshot",
            params,
            timeout,
            lambda reason: AdapterError("Screenshot failed", {"reason": reason}),
        )
        return session, Screenshot(data=_decode_image(result), mime=image_format.mime)

    def extract_content(
        self,
        session: Session,
        *,
        selector: Optional[str] = None,
        format: Union[ContentFormat, str] = ContentFormat.MARKDOWN,
        timeout: Optional[float] = None,
    ) -> tuple[Session, PageContent]:
        session.require_current_url("extract content")
        content_format = coerce_content_format(format)
        scope = selector or "body"

        def failure(reason: Any) -> BrowserError:
            return ElementError("extract", scope, reason)

        if content_format is ContentFormat.TEXT:
            result = self._call(
                session, "extract", "browser_find", {"selector": scope}, timeout, failure
            )
            content = _text_of(result)
        else:
            result = self._call(
                session,
                "extract",
                "browser_evaluate",
                {"script": element_script(scope, "outerHTML")},
                timeout,
                failure,
            )
            content = _text_of(result)
            if content_format is ContentFormat.MARKDOWN:
                content = html_to_markdown(content)
        return session, PageContent(
            content=content,
            format=content_format,
            url=session.current_url,
        )

    def evaluate(
        self,
        session: Session,
        script: str,
        *,
        timeout: Optional[float] = None,
    ) -> tuple[Session, EvaluationResult]:
        session.require_current_url("evaluate")
        result = self._call(
            session,
            "evaluate",
            "browser_evaluate",
            {"script": script},
            timeout,
            lambda reason: AdapterError("Evaluate failed", {"reason": reason}),
        )
        return session, EvaluationResult(result=result)

    # Internals ---------------------------------------------------------

    def _call(
        self,
        session: Session,
        operation: str,
        tool: str,
        arguments: dict[str, Any],
        timeout: Optional[float],
        on_error: ErrorFactory,
    ) -> Any:
        budget = self._timeout(session, timeout)
        LOGGER.debug("Sending %s to %s", tool, session.connection.get("base_url"))
        try:
            return self._send(session, tool, arguments, timeout=budget)
        except httpx.TimeoutException as exc:
            raise BrowserTimeoutError(operation, budget) from exc
        except RpcCommandError as exc:
            raise on_error(exc.reason) from exc
        except httpx.HTTPError as exc:
            raise on_error(str(exc)) from exc

    def _send(
        self,
        session: Session,
        tool: str,
        arguments: dict[str, Any],
        *,
        timeout: float,
    ) -> Any:
        base_url = session.connection.get("base_url")
        if not base_url:
            raise AdapterError("Session has no RPC connection", {"session_id": session.id})
        body = {
            "jsonrpc": "2.0",
            "id": next(self._ids),
            "method": "tools/call",
            "params": {"name": tool, "arguments": arguments},
        }
        with self._client(base_url, timeout) as client:
            response = client.post("/mcp", json=body)
        if not response.is_success:
            raise RpcCommandError(f"HTTP {response.status_code}: {response.text}")
        if response.status_code == 204 or not response.content:
            return None
        try:
            payload = response.json()
        except ValueError as exc:
            raise RpcCommandError(f"Invalid JSON response: {response.text[:200]}") from exc
        if not isinstance(payload, dict):
            raise RpcCommandError(f"Unexpected response: {payload!r}")
        if payload.get("error") is not None:
            raise RpcCommandError(payload["error"])
        if "result" not in payload:
            raise RpcCommandError(f"Response carries neither result nor error: {payload!r}")
        return payload["result"]

    def _client(self, base_url: str, timeout: float) -> httpx.Client:
        return httpx.Client(base_url=base_url, timeout=timeout, transport=self._transport)

    def _ensure_running(self, base_url: str, port: int, headless: bool) -> None:
        if self._is_healthy(base_url):
            self._state = BackendState.HEALTHY
            return
        self._state = BackendState.STARTING
        try:
            self._launch(port, headless)
            self._wait_until_healthy(base_url)
        except AdapterError:
            self._state = BackendState.NOT_RUNNING
            raise
        self._state = BackendState.HEALTHY

    def _is_healthy(self, base_url: str) -> bool:
        try:
            with self._client(base_url, self._config.health_timeout) as client:
                response = client.get("/health")
        except httpx.HTTPError:
            return False
        return response.status_code == 200

    def _launch(self, port: int, headless: bool) -> None:
        args = [*self._find_binary(), "--port", str(port)]
        if headless:
            args.append("--headless")
        args.append("--background")
        LOGGER.info("Launching browser process: %s", " ".join(args))
        try:
            completed = subprocess.run(
                args,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=self._config.launch_timeout,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise AdapterError(
                "Failed to start browser process",
                {"reason": f"launch timed out after {self._config.launch_timeout:g}s"},
            ) from exc
        except OSError as exc:
            raise AdapterError("Failed to start browser process", {"reason": str(exc)}) from exc
        if completed.returncode != 0:
            raise AdapterError(
                "Failed to start browser process",
                {
                    "reason": (
                        f"exited with code {completed.returncode}: {completed.stdout.strip()}"
                    )
                },
            )

    def _wait_until_healthy(self, base_url: str) -> None:
        for attempt in range(1, self._config.health_retries + 1):
            if self._is_healthy(base_url):
                LOGGER.debug("Browser process healthy after %s probe(s)", attempt)
                return
            self._sleep(self._config.health_interval)
        raise AdapterError(
            "Failed to start browser process",
            {"reason": f"not healthy after {self._config.health_retries} probes"},
        )

    def _find_binary(self) -> list[str]:
        if self._config.binary_path:
            return [str(self._config.binary_path)]
        found = shutil.which("vibium")
        if found:
            return [found]
        npx = shutil.which("npx")
        if npx:
            return [npx, "vibium"]
        raise AdapterError(
            "Failed to start browser process",
            {"reason": "Vibium binary not found. Install with: npm install -g vibium"},
        )


def _text_of(result: Any) -> str:
    if isinstance(result, str):
        return result
    if isinstance(result, dict):
        for key in ("text", "value", "result"):
            value = result.get(key)
            if isinstance(value, str):
                return value
        content = result.get("content")
        if isinstance(content, list):
            return "\n".join(
                item.get("text", "") for item in content if isinstance(item, dict)
            )
    if result is None:
        return ""
    return str(result)


def _decode_image(result: Any) -> bytes:
    data = result.get("data") if isinstance(result, dict) else result
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, str):
        try:
            return base64.b64decode(data, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise AdapterError("Screenshot payload is not valid base64") from exc
    raise AdapterError("Screenshot payload missing", {"result": result})
