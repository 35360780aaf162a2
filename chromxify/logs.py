from __future__ import annotations

import logging
from typing import Any

TRACE = 5


class CustomLogger(logging.Logger):
    def trace(self, message: object, *args: Any, stacklevel: int = 1, **kwargs: Any) -> None:
        if self.isEnabledFor(TRACE):
            self._log(TRACE, message, args, **kwargs, stacklevel=stacklevel + 1)


logging.setLoggerClass(CustomLogger)
logging.addLevelName(TRACE, "TRACE")


class ColoredFormatter(logging.Formatter):
    RESET: str = "\033[0m"
    COLORS: dict[int, str] = {
        TRACE: "\033[0;37m",
        logging.DEBUG: "\033[0m",
        logging.INFO: "\033[32m",
        logging.WARNING: "\033[1;33m",
        logging.ERROR: "\033[1;31m",
        logging.CRITICAL: "\033[1;37;41m",
    }

    def format(self, record: logging.LogRecord) -> str:
        c = self.COLORS.get(record.levelno, self.RESET)
        record.elapsed = f"{record.relativeCreated / 1000.0:8.3f}"  # type: ignore[attr-defined]
        record.msg = f"{c}{record.msg}{self.RESET}"
        record.levelname = f"{c}{record.levelname:<8}{self.RESET}"
        return super().format(record)


def get_logger(name: str) -> CustomLogger:
    return logging.getLogger(name)  # type: ignore[return-value]


def setup_logging(level: str | int = logging.INFO) -> logging.Logger:
    """Attach the coloured console handler to the ``chromxify`` logger."""
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root = logging.getLogger("chromxify")
    root.setLevel(level)
    root.propagate = False
    for h in list(root.handlers):
        root.removeHandler(h)

    ch = logging.StreamHandler()
    ch.setLevel(level)
    ch.setFormatter(
        ColoredFormatter("%(elapsed)s | %(levelname)-8s | %(name)s | %(message)s")
    )
    root.addHandler(ch)
    return root
