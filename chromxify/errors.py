from __future__ import annotations

from typing import Any, Optional


class ChromxifyError(Exception):
    def __init__(self, message: str) -> None:
        super().__init__(message)


class URLParseError(ChromxifyError):
    def __init__(self, url: str) -> None:
        super().__init__(f"Failed to parse url: {url}")
        self.url = url


class TransportError(ChromxifyError):
    """The DevTools websocket is closed or was never opened."""


class ProtocolError(ChromxifyError):
    """The browser answered a DevTools command with an error object."""

    def __init__(self, method: str, error: dict[str, Any]) -> None:
        self.method = method
        self.code: Optional[int] = error.get("code")
        self.error_message: str = error.get("message", "")
        self.data: Optional[str] = error.get("data")
        message = f"{method} failed ({self.code}): {self.error_message}"
        if self.data:
            message += f" [{self.data}]"
        super().__init__(message)


class PayloadExecutionError(ChromxifyError):
    def __init__(self, description: str) -> None:
        super().__init__(f"An error has occurred during payload execution: {description}")
        self.description = description
