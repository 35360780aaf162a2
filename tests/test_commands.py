import asyncio
import io
import logging
import unittest

from chromxify.commands import Command, CommandChannel, KeyboardListener
from chromxify.logs import TRACE, ColoredFormatter
from chromxify.stats import Stats


class TestCommandChannel(unittest.IsolatedAsyncioTestCase):
    async def test_keys_become_commands(self) -> None:
        channel = CommandChannel()
        listener = KeyboardListener(channel, stream=io.StringIO())

        for key in "xr\x03":
            listener.feed(key)

        self.assertEqual(await channel.get(), Command.RELOAD)
        self.assertEqual(await channel.get(), Command.TERMINATE)

    async def test_async_iteration(self) -> None:
        channel = CommandChannel()
        channel.put(Command.RELOAD)
        channel.put(Command.TERMINATE)

        seen = []
        async for command in channel:
            seen.append(command)
            if command is Command.TERMINATE:
                break

        self.assertEqual(seen, [Command.RELOAD, Command.TERMINATE])

    async def test_get_waits_for_a_command(self) -> None:
        channel = CommandChannel()
        getter = asyncio.ensure_future(channel.get())
        await asyncio.sleep(0)
        self.assertFalse(getter.done())

        channel.put(Command.RELOAD)
        self.assertEqual(await getter, Command.RELOAD)


class TestColoredFormatter(unittest.TestCase):
    def test_level_colors(self) -> None:
        formatter = ColoredFormatter("%(levelname)s|%(message)s")
        record = logging.LogRecord("chromxify", logging.ERROR, __file__, 1, "boom", None, None)

        line = formatter.format(record)

        self.assertIn("\033[1;31m", line)
        self.assertIn("boom", line)
        self.assertEqual(logging.getLevelName(TRACE), "TRACE")


class TestStats(unittest.TestCase):
    def test_counts(self) -> None:
        stats = Stats()
        stats.add_succeeded()
        stats.add_redirected()
        stats.add_failed("https://a.example/", "boom")
        stats.add_failed("https://a.example/", "boom again")

        self.assertEqual((stats.succeeded, stats.redirected, stats.failed), (1, 1, 2))
        self.assertEqual(stats.failed_fetches, {"https://a.example/": "boom again"})

        with self.assertLogs("chromxify.stats", level="WARNING") as logs:
            stats.print_statistics()
        self.assertTrue(any("boom again" in line for line in logs.output))


if __name__ == "__main__":
    unittest.main()
