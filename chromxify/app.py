"""
app.py: Process entry point.

Everything runs on one event loop: the DevTools reader, mitmproxy's proxy
server, the operator command loop and every in-flight request.

Operator commands
~~~~~~~~~~~~~~~~~
* ``r`` or ``SIGHUP`` reloads the targets from the browser's open tabs.
* ``q``, Ctrl-C, ``SIGINT`` or ``SIGTERM`` shuts down; a second request
  during shutdown exits immediately.
"""

from __future__ import annotations

import asyncio
import os
import signal
import sys
import traceback
from typing import Optional, Sequence

import uvloop
from mitmproxy import options
from mitmproxy.tools.dump import DumpMaster

from .commands import Command, CommandChannel, KeyboardListener
from .config import Settings, load_settings
from .devtools import DevToolsClient
from .fetch import FetchBridge
from .handler import BrowserProxyAddon, ProxyRequestHandler
from .logs import get_logger, setup_logging
from .stats import Stats
from .targets import TargetRegistry

logger = get_logger(__name__)


class Application:
    def __init__(self, settings: Settings) -> None:
        self.settings = settings
        self.stats = Stats()
        self.client = DevToolsClient(
            host=settings.debugger_host,
            port=settings.debugger_port,
            ws_url=settings.debugger_url,
            command_timeout=settings.command_timeout,
        )
        self.registry = TargetRegistry(self.client, settle_delay=settings.settle_delay)
        self.bridge = FetchBridge(self.client)
        self.handler = ProxyRequestHandler(
            self.registry,
            self.bridge,
            redirect_https=settings.redirect_https,
            stats=self.stats,
        )
        self.commands = CommandChannel()
        self.keyboard: Optional[KeyboardListener] = None
        self.mitm: Optional[DumpMaster] = None
        self.in_progress: bool = False

    async def run(self) -> None:
        loop = asyncio.get_running_loop()

        await self.client.connect()
        await self.registry.load_targets()

        loop.add_signal_handler(signal.SIGHUP, self.commands.put, Command.RELOAD)
        loop.add_signal_handler(signal.SIGTERM, self.terminated)
        loop.add_signal_handler(signal.SIGINT, self.terminated)

        if self.keyboard_enabled():
            self.keyboard = KeyboardListener(self.commands)
            self.keyboard.start()
            logger.warning("Press [r] to reload targets, [q] to quit.")

        opts = options.Options(
            listen_host=self.settings.proxy_host,
            listen_port=self.settings.proxy_port,
            confdir=self.settings.confdir,
        )
        self.mitm = DumpMaster(opts, with_termlog=False, with_dumper=False)
        self.mitm.addons.add(BrowserProxyAddon(self.handler))

        commands_task = asyncio.create_task(self.process_commands(), name="Commands")
        logger.info(
            "Serving proxy on ('%s', %s)", self.settings.proxy_host, self.settings.proxy_port
        )
        logger.info(
            "Clients must trust %s",
            os.path.join(os.path.expanduser(self.settings.confdir), "mitmproxy-ca-cert.pem"),
        )
        logger.debug(
            "Note: subdomains (such as 'www') should be explicitly specified in requests sent through the proxy."
        )

        try:
            await self.mitm.run()
        finally:
            commands_task.cancel()
            await asyncio.gather(commands_task, return_exceptions=True)
            if self.keyboard is not None:
                self.keyboard.stop()
            await self.client.close()
            self.stats.print_statistics()

    def keyboard_enabled(self) -> bool:
        if self.settings.keyboard is not None:
            return self.settings.keyboard
        try:
            return sys.stdin.isatty()
        except ValueError:
            return False

    async def process_commands(self) -> None:
        async for command in self.commands:
            if command is Command.RELOAD:
                try:
                    await self.registry.load_targets()
                except Exception as e:
                    logger.error("Failed to reload targets: %s", e)
            elif command is Command.TERMINATE:
                self.terminated()

    def terminated(self) -> None:
        if self.in_progress:
            logger.info("Received a second shutdown request, exiting...")
            sys.exit(1)

        self.in_progress = True
        logger.info("Shutting down...")
        if self.mitm is not None:
            self.mitm.shutdown()


def main(argv: Optional[Sequence[str]] = None) -> None:
    settings = load_settings(argv)
    setup_logging(settings.log_level)
    app = Application(settings)
    try:
        uvloop.run(app.run())
    except KeyboardInterrupt:
        logger.info("Interrupted")
    except Exception:
        logger.critical("Failed to run: %s", traceback.format_exc())
        sys.exit(1)


if __name__ == "__main__":
    main()
