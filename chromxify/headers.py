"""
Request header filtering.

The browser refuses to let a script set most of these
(https://developer.mozilla.org/en-US/docs/Glossary/Forbidden_request_header),
and the rest describe the hop between the client and the proxy rather than
the request itself.  They are dropped before the headers are handed to
``fetch()``.
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

IGNORED_HEADERS: frozenset[str] = frozenset(
    {
        "accept-charset",
        "accept-encoding",
        "access-control-request-headers",
        "access-control-request-method",
        "connection",
        "content-length",
        "cookie",
        "date",
        "dnt",
        "expect",
        "host",
        "keep-alive",
        "origin",
        "permissions-policy",
        "referer",
        "te",
        "trailer",
        "transfer-encoding",
        "upgrade",
        "via",
    }
)

IGNORED_HEADER_PREFIXES: tuple[str, ...] = ("proxy-", "sec-")


def is_ignored(name: str) -> bool:
    lower = name.lower()
    if lower in IGNORED_HEADERS:
        return True
    return any(lower.startswith(p) for p in IGNORED_HEADER_PREFIXES)


def filter_headers(headers: Optional[Mapping[str, Any]]) -> dict[str, str]:
    """Return a copy of *headers* without forbidden or non-text entries."""
    if not headers:
        return {}
    return {
        name: value
        for name, value in headers.items()
        if isinstance(value, str) and not is_ignored(name)
    }
