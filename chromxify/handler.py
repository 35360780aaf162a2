"""
handler.py: Turns one proxied HTTP request into an in-browser fetch.

Pipeline
--------
::

    RECEIVED ─► NORMALIZED ─┬─► REDIRECTED                       (302)
                            └─► DISPATCHED ─┬─► SUCCEEDED          (browser status)
                                            └─► FAILED             (500)

* **normalize**: parse the URL and force ``https`` (``redirect_https``).
  A URL that changes is answered with a redirect instead of being fetched,
  which keeps the browser clear of mixed-content errors.
* **dispatch**: filter headers, pick the host's tab through the
  :class:`TargetRegistry` and run the fetch through the :class:`FetchBridge`.
* **reconstruct**: turn the byte-value list back into a body.

Any exception along the way ends the request with a 500 whose body is the
error text.

:class:`BrowserProxyAddon` plugs the handler into mitmproxy.
"""

from __future__ import annotations

import traceback
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional
from urllib.parse import SplitResult, urlsplit, urlunsplit

from mitmproxy import http

from .errors import URLParseError
from .fetch import FetchBridge, FetchResult, body_bytes, build_fetch_options
from .headers import filter_headers
from .logs import get_logger
from .stats import Stats
from .targets import DEFAULT_PORTS, TargetRegistry

logger = get_logger(__name__)


# ============================================================================
# Data Classes
# ============================================================================


@dataclass
class ProxyRequest:
    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None


class Outcome(Enum):
    REDIRECTED = "redirected"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass
class ProxyResponse:
    """What the proxy sends back to its client.

    ``reason`` is the browser's status text and is ``None`` for responses
    generated locally (redirects and failures).
    """

    status_code: int
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    reason: Optional[str] = None
    outcome: Outcome = Outcome.SUCCEEDED


# ============================================================================
# URL handling
# ============================================================================


def parse_url(url: str) -> SplitResult:
    try:
        parsed = urlsplit(url)
        _ = parsed.port
    except ValueError as e:
        raise URLParseError(url) from e
    if parsed.scheme.lower() not in DEFAULT_PORTS or not parsed.hostname:
        raise URLParseError(url)
    return parsed


def normalize_url(url: str, redirect_https: bool = True) -> str:
    """Canonical form of *url*, with the scheme forced to https if requested.

    The scheme and host are lowercased, a port equal to the default of the
    original or the final scheme is dropped and an empty path becomes
    ``/``.  An empty query or fragment marker is kept.  Normalizing an
    already normalized URL returns it unchanged.
    """
    parsed = parse_url(url)
    scheme = parsed.scheme.lower()
    final_scheme = "https" if redirect_https else scheme

    host = parsed.hostname or ""
    if ":" in host:
        host = f"[{host}]"
    port = parsed.port
    if port is not None and port not in (DEFAULT_PORTS[scheme], DEFAULT_PORTS[final_scheme]):
        host = f"{host}:{port}"
    userinfo, sep, _ = parsed.netloc.rpartition("@")
    netloc = f"{userinfo}{sep}{host}"

    # urlunsplit drops a bare "?" or "#"
    base, hash_sep, _ = url.partition("#")
    query_sep = "?" if "?" in base else ""
    normalized = urlunsplit((final_scheme, netloc, parsed.path or "/", "", ""))
    return f"{normalized}{query_sep}{parsed.query}{hash_sep}{parsed.fragment}"


def _truncate(s: str, max_length: int) -> str:
    return s if len(s) <= max_length else s[: max_length - 3] + "..."


# ============================================================================
# Request handler
# ============================================================================


class ProxyRequestHandler:
    """Runs the normalize → dispatch → reconstruct pipeline for each request.

    Parameters
    ----------
    registry:
        Shared host → tab mapping.
    bridge:
        Executes fetches inside a tab.
    redirect_https:
        Answer plain ``http://`` requests with a redirect to ``https://``.
    stats:
        Optional counters updated with every outcome.
    """

    def __init__(
        self,
        registry: TargetRegistry,
        bridge: FetchBridge,
        redirect_https: bool = True,
        stats: Optional[Stats] = None,
    ) -> None:
        self.registry = registry
        self.bridge = bridge
        self.redirect_https = redirect_https
        self.stats = stats or Stats()

    async def handle(self, request: ProxyRequest) -> ProxyResponse:
        request_repr = f"--> [{request.method}] {_truncate(request.url, 80)}"
        try:
            url = normalize_url(request.url, self.redirect_https)
            if url != request.url:
                return self.redirect(request.url, url)

            result = await self.dispatch(request, url)
            response = self.reconstruct(result)
        except Exception as e:
            logger.error("%s: %s", request_repr, e)
            logger.debug(traceback.format_exc())
            self.stats.add_failed(request.url, str(e))
            return ProxyResponse(
                status_code=500,
                headers={"content-type": "text/plain; charset=utf-8"},
                body=str(e).encode("utf-8"),
                outcome=Outcome.FAILED,
            )

        logger.info("%s [%d]", request_repr, response.status_code)
        self.stats.add_succeeded()
        return response

    def redirect(self, original: str, location: str) -> ProxyResponse:
        logger.warning("Redirecting %s to %s", original, location)
        self.stats.add_redirected()
        return ProxyResponse(
            status_code=302,
            headers={"location": location},
            outcome=Outcome.REDIRECTED,
        )

    async def dispatch(self, request: ProxyRequest, url: str) -> FetchResult:
        headers = filter_headers(request.headers)
        body = request.body.decode("utf-8", errors="replace") if request.body else None
        target = await self.registry.resolve(url)
        options = build_fetch_options(request.method, headers, body)
        return await self.bridge.dispatch(target.session_id, url, options)

    @staticmethod
    def reconstruct(result: FetchResult) -> ProxyResponse:
        return ProxyResponse(
            status_code=result["status"],
            headers=dict(result["headers"]),
            body=body_bytes(result["body"]),
            reason=result["statusText"],
            outcome=Outcome.SUCCEEDED,
        )


# ============================================================================
# mitmproxy glue
# ============================================================================


class BrowserProxyAddon:
    """Answers every intercepted request from the browser instead of upstream."""

    def __init__(self, handler: ProxyRequestHandler) -> None:
        self.handler = handler

    async def request(self, flow: http.HTTPFlow) -> None:
        if flow.response is not None:
            return

        request = ProxyRequest(
            method=flow.request.method,
            url=flow.request.url,
            headers=dict(flow.request.headers),
            body=flow.request.get_content(strict=False) or None,
        )
        response = await self.handler.handle(request)
        flow.response = self.to_mitmproxy(response)

    @staticmethod
    def to_mitmproxy(response: ProxyResponse) -> http.Response:
        # The body is already decoded; mitmproxy re-encodes it to match
        # content-encoding and drops an encoding it cannot apply.
        resp = http.Response.make(response.status_code, response.body, response.headers)
        if response.reason:
            resp.reason = response.reason
        return resp
