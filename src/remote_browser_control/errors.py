"""Typed errors raised by browser adapters and the dispatcher."""

from __future__ import annotations

from typing import Any, Optional


class BrowserError(Exception):
    """Base class for every error surfaced to callers."""

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details: dict[str, Any] = dict(details or {})

    def __str__(self) -> str:
        return self.message


class AdapterError(BrowserError):
    """Backend or process level failure."""

    @classmethod
    def unsupported(cls, adapter: str, operation: str) -> "AdapterError":
        return cls(
            f"{operation} is not supported by the {adapter} adapter",
            {"unsupported": operation, "adapter": adapter},
        )

    @property
    def is_unsupported(self) -> bool:
        return "unsupported" in self.details


class NavigationError(BrowserError):
    """Navigating to a URL failed."""

    def __init__(self, url: str, reason: Any) -> None:
        super().__init__(f"Navigation to {url} failed: {reason}", {"reason": reason})
        self.url = url
        self.reason = reason


class ElementError(BrowserError):
    """Interacting with an element failed."""

    def __init__(self, action: str, selector: str, reason: Any) -> None:
        super().__init__(
            f"Failed to {action} element '{selector}': {reason}",
            {"reason": reason},
        )
        self.action = action
        self.selector = selector
        self.reason = reason


class BrowserTimeoutError(BrowserError):
    """An operation exceeded its time budget."""

    def __init__(self, operation: str, timeout: float) -> None:
        super().__init__(
            f"{operation} timed out after {timeout:g}s",
            {"operation": operation, "timeout": timeout},
        )
        self.operation = operation
        self.timeout = timeout


class InvalidError(BrowserError):
    """The caller violated a precondition (missing session, no current URL, ...)."""
