"""
Operator commands.

Commands reach the application through a :class:`CommandChannel`.  Two
producers feed it: :class:`KeyboardListener` (single keypresses on a TTY)
and the POSIX signal handlers installed by the application.
"""

from __future__ import annotations

import asyncio
import os
import sys
import termios
import tty
from enum import Enum
from typing import Any, AsyncIterator, Optional, TextIO

from .logs import get_logger

logger = get_logger(__name__)


class Command(Enum):
    RELOAD = "reload"
    TERMINATE = "terminate"


KEYMAP: dict[str, Command] = {
    "r": Command.RELOAD,
    "R": Command.RELOAD,
    "q": Command.TERMINATE,
    "Q": Command.TERMINATE,
    "\x03": Command.TERMINATE,  # Ctrl-C in cbreak mode
    "\x04": Command.TERMINATE,  # Ctrl-D
}


class CommandChannel:
    def __init__(self) -> None:
        self._queue: asyncio.Queue[Command] = asyncio.Queue()

    def put(self, command: Command) -> None:
        logger.debug("Command: %s", command.value)
        self._queue.put_nowait(command)

    async def get(self) -> Command:
        return await self._queue.get()

    async def __aiter__(self) -> AsyncIterator[Command]:
        while True:
            yield await self._queue.get()


class KeyboardListener:
    """Translates keypresses on *stream* into commands.

    The terminal is switched to cbreak mode while listening so keys arrive
    without Enter, and restored by :meth:`stop`.
    """

    def __init__(self, channel: CommandChannel, stream: TextIO = sys.stdin) -> None:
        self.channel = channel
        self.stream = stream
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._saved_mode: Optional[list[Any]] = None

    def start(self) -> None:
        self._loop = asyncio.get_running_loop()
        fd = self.stream.fileno()
        if os.isatty(fd):
            self._saved_mode = termios.tcgetattr(fd)
            tty.setcbreak(fd)
        self._loop.add_reader(fd, self._on_readable)

    def stop(self) -> None:
        if self._loop is None:
            return
        fd = self.stream.fileno()
        self._loop.remove_reader(fd)
        if self._saved_mode is not None:
            termios.tcsetattr(fd, termios.TCSADRAIN, self._saved_mode)
            self._saved_mode = None
        self._loop = None

    def _on_readable(self) -> None:
        key = os.read(self.stream.fileno(), 1).decode("utf-8", errors="ignore")
        if not key:
            # EOF, nothing more will come from this stream
            self.stop()
            return
        self.feed(key)

    def feed(self, key: str) -> None:
        command = KEYMAP.get(key)
        if command is not None:
            self.channel.put(command)
