import asyncio
import unittest
from unittest.mock import AsyncMock, patch

from chromxify.devtools import DevToolsClient
from chromxify.errors import ProtocolError, TransportError

from tests._fakes import FakeWebSocket


def echo_responder(message: dict) -> list[dict]:
    if message["method"] == "Broken.method":
        return [{"id": message["id"], "error": {"code": -32601, "message": "'Broken.method' wasn't found"}}]
    if message["method"] == "Slow.method":
        return []
    reply = {"id": message["id"], "result": {"echo": message["method"], "params": message["params"]}}
    if "sessionId" in message:
        reply["sessionId"] = message["sessionId"]
    return [reply]


class TestDevToolsClient(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.ws = FakeWebSocket(echo_responder)
        self.connect_patch = patch("chromxify.devtools.connect", AsyncMock(return_value=self.ws))
        self.connect_mock = self.connect_patch.start()
        self.client = DevToolsClient(ws_url="ws://127.0.0.1:9222/devtools/browser/abc")
        await self.client.connect()

    async def asyncTearDown(self) -> None:
        await self.client.close()
        self.connect_patch.stop()

    async def test_connects_to_configured_url(self) -> None:
        self.connect_mock.assert_awaited_once_with("ws://127.0.0.1:9222/devtools/browser/abc", max_size=None)
        self.assertTrue(self.client.connected)

    async def test_send_returns_result(self) -> None:
        result = await self.client.send("Target.getTargets")
        self.assertEqual(result, {"echo": "Target.getTargets", "params": {}})

    async def test_ids_increase_and_session_is_routed(self) -> None:
        await self.client.send("Browser.getVersion")
        await self.client.send("Runtime.evaluate", {"expression": "1"}, session_id="S1")

        first, second = self.ws.sent
        self.assertLess(first["id"], second["id"])
        self.assertNotIn("sessionId", first)
        self.assertEqual(second["sessionId"], "S1")
        self.assertEqual(second["params"], {"expression": "1"})

    async def test_error_reply_raises_protocol_error(self) -> None:
        with self.assertRaises(ProtocolError) as ctx:
            await self.client.send("Broken.method")

        self.assertEqual(ctx.exception.code, -32601)
        self.assertEqual(ctx.exception.method, "Broken.method")

    async def test_concurrent_replies_are_matched_by_id(self) -> None:
        results = await asyncio.gather(*(self.client.send(f"Domain.m{i}") for i in range(10)))
        self.assertEqual([r["echo"] for r in results], [f"Domain.m{i}" for i in range(10)])

    async def test_timeout(self) -> None:
        with self.assertRaises(asyncio.TimeoutError):
            await self.client.send("Slow.method", timeout=0.01)

    async def test_wait_for_matches_session(self) -> None:
        waiter = asyncio.ensure_future(self.client.wait_for("Page.loadEventFired", "S2", timeout=1))
        await asyncio.sleep(0)
        self.ws.push({"method": "Page.loadEventFired", "sessionId": "S1", "params": {"timestamp": 1}})
        self.ws.push({"method": "Page.loadEventFired", "sessionId": "S2", "params": {"timestamp": 2}})

        self.assertEqual(await waiter, {"timestamp": 2})

    async def test_closed_connection_fails_pending_commands(self) -> None:
        pending = asyncio.ensure_future(self.client.send("Slow.method"))
        await asyncio.sleep(0)
        self.ws.end()

        with self.assertRaises(TransportError):
            await pending
        self.assertFalse(self.client.connected)
        with self.assertRaises(TransportError):
            await self.client.send("Target.getTargets")

    async def test_helpers(self) -> None:
        def responder(message: dict) -> list[dict]:
            results = {
                "Target.getTargets": {"targetInfos": [{"targetId": "T1", "url": "https://a.example/"}]},
                "Target.createTarget": {"targetId": "T2"},
                "Target.attachToTarget": {"sessionId": "S2"},
            }
            return [{"id": message["id"], "result": results[message["method"]]}]

        self.ws.responder = responder

        self.assertEqual((await self.client.get_targets())[0]["targetId"], "T1")
        self.assertEqual(await self.client.create_target("https://b.example/"), "T2")
        self.assertEqual(await self.client.attach_to_target("T2"), "S2")
        self.assertEqual(self.ws.sent[-1]["params"], {"targetId": "T2", "flatten": True})


class TestNotConnected(unittest.IsolatedAsyncioTestCase):
    async def test_send_before_connect(self) -> None:
        with self.assertRaises(TransportError):
            await DevToolsClient().send("Target.getTargets")


if __name__ == "__main__":
    unittest.main()
