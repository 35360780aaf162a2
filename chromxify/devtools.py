"""
devtools.py: Minimal DevTools Protocol client.

One websocket is opened to the *browser* endpoint (``/devtools/browser/...``).
Commands for a particular tab are routed over that same socket by adding the
``sessionId`` obtained from ``Target.attachToTarget`` with ``flatten: true``.

The client only correlates replies with requests and hands out event
waiters; it knows nothing about the protocol's domains beyond the few
convenience wrappers at the bottom of the class.

Usage::

    async with DevToolsClient("127.0.0.1", 9222) as client:
        infos = await client.get_targets()
        session_id = await client.attach_to_target(infos[0]["targetId"])
        reply = await client.evaluate("1 + 1", session_id)
"""

from __future__ import annotations

import asyncio
import itertools
import json
from typing import Any, Optional

import httpx
from websockets.asyncio.client import connect
from websockets.exceptions import ConnectionClosed

from .errors import ProtocolError, TransportError
from .logs import get_logger

logger = get_logger(__name__)


def _truncate(s: str, max_length: int = 300) -> str:
    return s if len(s) <= max_length else s[: max_length - 3] + "..."


class DevToolsClient:
    """Browser-level DevTools connection with flattened session routing.

    Parameters
    ----------
    host, port:
        Address of the browser's remote debugging HTTP endpoint.  Used to
        discover the websocket URL through ``/json/version``.
    ws_url:
        Explicit ``ws://`` URL of the browser endpoint.  Skips discovery.
    command_timeout:
        Default per-command deadline in seconds.  ``None`` waits forever.
    """

    def __init__(
        self,
        host: str = "127.0.0.1",
        port: int = 9222,
        ws_url: Optional[str] = None,
        command_timeout: Optional[float] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.ws_url = ws_url
        self.command_timeout = command_timeout

        self._ws: Any = None
        self._reader_task: Optional[asyncio.Task[None]] = None
        self._ids = itertools.count(1)
        self._pending: dict[int, tuple[str, asyncio.Future[dict[str, Any]]]] = {}
        self._waiters: list[tuple[str, Optional[str], asyncio.Future[dict[str, Any]]]] = []
        self._closed = False

    # ── lifecycle ─────────────────────────────────────────────────────────

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._closed

    async def discover(self) -> str:
        """Ask the debugging HTTP endpoint for the browser websocket URL."""
        endpoint = f"http://{self.host}:{self.port}/json/version"
        async with httpx.AsyncClient(timeout=10.0) as client:
            response = await client.get(endpoint)
            response.raise_for_status()
            info = response.json()
        logger.debug("Browser: %s", info.get("Browser"))
        return info["webSocketDebuggerUrl"]

    async def connect(self) -> None:
        if self.ws_url is None:
            self.ws_url = await self.discover()
        logger.info("Connecting to the debugger at %s", self.ws_url)
        self._ws = await connect(self.ws_url, max_size=None)
        self._closed = False
        self._reader_task = asyncio.create_task(self._read_loop(), name="devtools-reader")

    async def close(self) -> None:
        self._closed = True
        if self._ws is not None:
            try:
                await self._ws.close()
            except ConnectionClosed:
                pass
        if self._reader_task is not None:
            self._reader_task.cancel()
            await asyncio.gather(self._reader_task, return_exceptions=True)
            self._reader_task = None
        self._fail_pending(TransportError("DevTools connection closed"))
        logger.debug("DevTools client closed")

    async def __aenter__(self) -> DevToolsClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # ── message pump ──────────────────────────────────────────────────────

    async def _read_loop(self) -> None:
        reason = "DevTools connection closed"
        try:
            async for raw in self._ws:
                try:
                    message = json.loads(raw)
                except ValueError as e:
                    logger.warning("Undecodable DevTools message: %s", e)
                    continue
                logger.trace("<-- %s", _truncate(str(raw)))
                self._dispatch(message)
        except ConnectionClosed as e:
            reason = f"DevTools connection closed: {e}"
            logger.error(reason)
        finally:
            self._closed = True
            self._fail_pending(TransportError(reason))

    def _dispatch(self, message: dict[str, Any]) -> None:
        _id = message.get("id")
        if _id is not None:
            entry = self._pending.pop(_id, None)
            if entry is None:
                logger.debug("Reply to unknown command id %s", _id)
                return
            method, fut = entry
            if fut.done():
                return
            if "error" in message:
                fut.set_exception(ProtocolError(method, message["error"]))
            else:
                fut.set_result(message.get("result", {}))
            return

        event = message.get("method")
        session_id = message.get("sessionId")
        for name, wanted_session, fut in list(self._waiters):
            if name != event or fut.done():
                continue
            if wanted_session is not None and wanted_session != session_id:
                continue
            fut.set_result(message.get("params", {}))

    def _fail_pending(self, exc: Exception) -> None:
        for _, fut in self._pending.values():
            if not fut.done():
                fut.set_exception(exc)
        self._pending.clear()
        for _, _, fut in self._waiters:
            if not fut.done():
                fut.set_exception(exc)

    # ── public API ────────────────────────────────────────────────────────

    async def send(
        self,
        method: str,
        params: Optional[dict[str, Any]] = None,
        session_id: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> dict[str, Any]:
        """Send one command and return its ``result`` object.

        Raises
        ------
        ProtocolError
            The browser replied with an ``error`` object.
        TransportError
            The connection is not open or closed before the reply arrived.
        asyncio.TimeoutError
            *timeout* (or ``command_timeout``) elapsed.
        """
        if not self.connected:
            raise TransportError(f"Not connected to the debugger, cannot send {method}")

        _id = next(self._ids)
        message: dict[str, Any] = {"id": _id, "method": method, "params": params or {}}
        if session_id:
            message["sessionId"] = session_id

        fut: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        self._pending[_id] = (method, fut)
        try:
            data = json.dumps(message)
            logger.trace("--> %s", _truncate(data))
            try:
                await self._ws.send(data)
            except ConnectionClosed as e:
                raise TransportError(f"DevTools connection closed: {e}") from e

            timeout = self.command_timeout if timeout is None else timeout
            if timeout is None:
                return await fut
            return await asyncio.wait_for(fut, timeout)
        finally:
            self._pending.pop(_id, None)

    def expect(self, event: str, session_id: Optional[str] = None) -> asyncio.Future[dict[str, Any]]:
        """Register interest in the next *event* and return its future.

        Register before triggering the action that emits the event.
        ``session_id=None`` matches the event from any session.
        """
        fut: asyncio.Future[dict[str, Any]] = asyncio.get_running_loop().create_future()
        entry = (event, session_id, fut)
        self._waiters.append(entry)
        fut.add_done_callback(lambda _: self._waiters.remove(entry))
        return fut

    async def wait_for(
        self, event: str, session_id: Optional[str] = None, timeout: Optional[float] = None
    ) -> dict[str, Any]:
        return await asyncio.wait_for(self.expect(event, session_id), timeout)

    # -- Target / Runtime helpers -------------------------------------------

    async def get_targets(self) -> list[dict[str, Any]]:
        result = await self.send("Target.getTargets")
        return result.get("targetInfos", [])

    async def create_target(self, url: str) -> str:
        result = await self.send("Target.createTarget", {"url": url})
        return result["targetId"]

    async def attach_to_target(self, target_id: str) -> str:
        result = await self.send("Target.attachToTarget", {"targetId": target_id, "flatten": True})
        return result["sessionId"]

    async def evaluate(
        self,
        expression: str,
        session_id: str,
        await_promise: bool = True,
        return_by_value: bool = True,
    ) -> dict[str, Any]:
        """``Runtime.evaluate`` in *session_id*; returns the raw reply."""
        return await self.send(
            "Runtime.evaluate",
            {
                "expression": expression,
                "awaitPromise": await_promise,
                "returnByValue": return_by_value,
            },
            session_id=session_id,
        )
