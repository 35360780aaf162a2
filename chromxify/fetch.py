"""
Runs ``fetch()`` inside a browser tab and brings the response back.

The URL and the fetch options are embedded in the expression as JSON
literals, so quotes, backslashes or template-looking text inside them
cannot change the script.
"""

from __future__ import annotations

import json
from typing import Any, Optional, TypedDict

from .devtools import DevToolsClient
from .errors import PayloadExecutionError
from .logs import get_logger

logger = get_logger(__name__)

# Resolves to {status, statusText, headers, body}; the body is a plain array
# of byte values because only JSON crosses the protocol.
FETCH_FUNCTION = """\
async (url, options) => {
    const response = await fetch(url, options);
    const { status, statusText, headers } = response;
    const body = Array.from(new Uint8Array(await response.arrayBuffer()));
    return { status, statusText, headers: Object.fromEntries([...headers.entries()]), body };
}"""


class FetchOptions(TypedDict, total=False):
    method: str
    headers: dict[str, str]
    body: str
    credentials: str


class FetchResult(TypedDict):
    status: int
    statusText: str
    headers: dict[str, str]
    body: list[int]


def build_fetch_options(
    method: str,
    headers: Optional[dict[str, str]] = None,
    body: Optional[str] = None,
) -> FetchOptions:
    options: FetchOptions = {"method": method, "credentials": "include"}
    if headers:
        options["headers"] = headers
    if body:
        options["body"] = body
    return options


def render_expression(url: str, options: FetchOptions) -> str:
    return f"({FETCH_FUNCTION})({json.dumps(url)}, {json.dumps(options)})"


def body_bytes(values: list[int]) -> bytes:
    return bytes(values)


class FetchBridge:
    def __init__(self, client: DevToolsClient) -> None:
        self.client = client

    async def dispatch(self, session_id: str, url: str, options: FetchOptions) -> FetchResult:
        """Execute the fetch in *session_id* and return the browser's response.

        Raises
        ------
        PayloadExecutionError
            The script threw or the returned promise rejected (network
            errors, CORS, invalid options...).
        """
        options = FetchOptions(**options)
        options["credentials"] = "include"
        reply = await self.client.evaluate(render_expression(url, options), session_id)

        result: dict[str, Any] = reply.get("result", {})
        details: Optional[dict[str, Any]] = reply.get("exceptionDetails")
        if result.get("subtype") == "error" or details is not None:
            raise PayloadExecutionError(_describe(result, details))
        return result["value"]


def _describe(result: dict[str, Any], details: Optional[dict[str, Any]]) -> str:
    if result.get("description"):
        return result["description"]
    if details:
        exception = details.get("exception") or {}
        return exception.get("description") or details.get("text") or "unknown error"
    return "unknown error"
