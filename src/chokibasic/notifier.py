"""Pluggable notification protocol for chokibasic.

Watch errors, callback failures and build reports go through a notifier so the
host decides where they end up (log, UI pane, test double).
"""

import logging
from typing import Protocol

logger = logging.getLogger("chokibasic")


class ChokibasicNotifier(Protocol):
    """Protocol for notifications - host can provide custom implementation."""

    def info(self, message: str) -> None:
        """Informational message."""
        ...

    def warning(self, message: str) -> None:
        """Warning message."""
        ...

    def error(self, message: str) -> None:
        """Error message."""
        ...


class NoOpNotifier:
    """Silent notifier, the default when embedded in another application.

    Errors are still written to the module loggers by their callers.
    """

    def info(self, msg: str) -> None:
        pass

    def warning(self, msg: str) -> None:
        pass

    def error(self, msg: str) -> None:
        pass


class LoggingNotifier:
    """Implementation using stdlib logging - used by the CLI."""

    def info(self, msg: str) -> None:
        logger.info(msg)

    def warning(self, msg: str) -> None:
        logger.warning(msg)

    def error(self, msg: str) -> None:
        logger.error(msg)
