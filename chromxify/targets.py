"""
Host → browser tab bookkeeping.

Every destination host gets one tab.  Requests are executed from inside
that tab so that ``fetch()`` runs same-origin and the browser attaches the
site's cookies.  Tabs that are already open when the registry is loaded
are reused; missing ones are opened on first use.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Optional
from urllib.parse import SplitResult, urlsplit

from .devtools import DevToolsClient
from .logs import get_logger

logger = get_logger(__name__)

SUPPORTED_SCHEMES: tuple[str, ...] = ("http://", "https://")
DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}


@dataclass
class Target:
    target_id: str
    session_id: Optional[str] = None


def is_url(url: str) -> bool:
    return url.startswith(SUPPORTED_SCHEMES)


def host_key(url: SplitResult) -> str:
    """``host[:port]`` of *url*, without userinfo and without a default port."""
    host = (url.hostname or "").lower()
    if ":" in host:
        host = f"[{host}]"
    port = url.port
    if port is not None and port != DEFAULT_PORTS.get(url.scheme.lower()):
        return f"{host}:{port}"
    return host


class TargetRegistry:
    """Maps a request's host to a tab and an attached session.

    Parameters
    ----------
    client:
        Connected :class:`DevToolsClient`.
    settle_delay:
        Upper bound, in seconds, on how long a freshly created tab is
        given to finish loading before it is used.  ``0`` uses the tab
        right away.
    """

    def __init__(self, client: DevToolsClient, settle_delay: float = 1.0) -> None:
        self.client = client
        self.settle_delay = settle_delay
        self._targets: dict[str, Target] = {}
        self._locks: dict[str, tuple[asyncio.Lock, int]] = {}

    @property
    def hosts(self) -> list[str]:
        return list(self._targets)

    def get(self, host: str) -> Optional[Target]:
        return self._targets.get(host)

    def __contains__(self, host: str) -> bool:
        return host in self._targets

    def __len__(self) -> int:
        return len(self._targets)

    async def load_targets(self) -> None:
        """Replace the mapping with the browser's currently open tabs.

        Cached sessions are dropped; each host is re-attached on next use.
        When several tabs share a host the last one listed wins.
        """
        logger.info("Loading remote targets...")
        infos = await self.client.get_targets()
        targets: dict[str, Target] = {}
        for info in infos:
            url = info.get("url", "")
            if not is_url(url):
                continue
            try:
                host = host_key(urlsplit(url))
            except ValueError:
                logger.debug("Skipping target with unparsable url %s", url)
                continue
            targets[host] = Target(target_id=info["targetId"])
        self._targets = targets
        logger.info("Loaded targets: %s", ", ".join(self._targets) or "<none>")

    async def resolve(self, url: str) -> Target:
        """Return the attached target serving *url*'s host, creating it if needed."""
        host = host_key(urlsplit(url))

        target = self._targets.get(host)
        if target is not None and target.session_id:
            return target

        # One lock per host with callers in flight; the last caller out removes it.
        lock, users = self._locks.get(host, (asyncio.Lock(), 0))
        self._locks[host] = (lock, users + 1)
        try:
            async with lock:
                return await self._acquire(host, url)
        finally:
            lock, users = self._locks[host]
            if users > 1:
                self._locks[host] = (lock, users - 1)
            else:
                del self._locks[host]

    async def _acquire(self, host: str, url: str) -> Target:
        target = self._targets.get(host)
        if target is not None and target.session_id:
            return target

        if target is None:
            target_id = await self.client.create_target(url)
            logger.info("Opened a new tab %s for %s", target_id, host)
            session_id = await self.client.attach_to_target(target_id)
            if self.settle_delay > 0:
                await self._wait_loaded(session_id)
        else:
            target_id = target.target_id
            session_id = await self.client.attach_to_target(target_id)

        logger.debug("Attached to %s for %s (session %s)", target_id, host, session_id)
        target = Target(target_id, session_id)
        self._targets[host] = target
        return target

    async def _wait_loaded(self, session_id: str) -> None:
        # The load event may already have fired before Page.enable, in
        # which case the settle delay runs out.
        loaded = self.client.expect("Page.loadEventFired", session_id)
        try:
            await self.client.send("Page.enable", session_id=session_id)
            await asyncio.wait_for(loaded, self.settle_delay)
            logger.debug("Session %s finished loading", session_id)
        except asyncio.TimeoutError:
            logger.debug("Session %s still loading after %.1fs, using it anyway", session_id, self.settle_delay)
        finally:
            loaded.cancel()
        await self.client.send("Page.disable", session_id=session_id)
