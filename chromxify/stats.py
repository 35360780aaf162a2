from __future__ import annotations

from .logs import get_logger

logger = get_logger(__name__)


class Stats:
    def __init__(self) -> None:
        self.succeeded: int = 0
        self.redirected: int = 0
        self.failed_fetches: dict[str, str] = {}
        self.failed: int = 0

    def add_succeeded(self) -> None:
        self.succeeded += 1

    def add_redirected(self) -> None:
        self.redirected += 1

    def add_failed(self, url: str, reason: str) -> None:
        self.failed += 1
        self.failed_fetches[url] = reason

    def print_statistics(self) -> None:
        logger.info(
            "Requests: %d succeeded, %d redirected, %d failed",
            self.succeeded,
            self.redirected,
            self.failed,
        )
        if self.failed_fetches:
            logger.warning("Failed Fetches:")
            for url, reason in self.failed_fetches.items():
                logger.warning("%s : %s", url, reason)
