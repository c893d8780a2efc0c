"""Abstract notification source protocol for file watching implementations."""

from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Protocol

from chokibasic.models import WatchOptions, WriteStability

RawEventCallback = Callable[[str, str], None]
"""Receives ``(event_type, absolute_path)`` on the event loop thread."""

ErrorCallback = Callable[[BaseException], None]


@dataclass(frozen=True)
class SourceOptions:
    """Options forwarded to a notification source.

    Ignore rules are deliberately absent: filtering is done by the rule engines.
    """

    ignore_initial: bool = True
    """Do not report files that already exist at subscribe time."""

    write_stability: WriteStability | None = None
    """Hold add/change events until the file is stable (None = report at once)."""

    use_polling: bool = False
    """Poll instead of relying on native change events."""

    interval: int = 200
    """Polling interval in milliseconds."""

    binary_interval: int = 300
    """Polling interval for binary files in milliseconds."""

    @classmethod
    def from_watch_options(cls, options: WatchOptions) -> "SourceOptions":
        return cls(
            ignore_initial=options.ignore_initial,
            write_stability=options.write_stability,
            use_polling=options.use_polling,
            interval=options.interval,
            binary_interval=options.binary_interval,
        )


class Subscription(Protocol):
    """A live subscription returned by :meth:`NotificationSource.subscribe`."""

    async def close(self) -> None:
        """Stop delivering events and release the underlying resources."""
        ...


class NotificationSource(Protocol):
    """Protocol for raw filesystem change sources."""

    def subscribe(
        self,
        base_dirs: list[Path],
        options: SourceOptions,
        on_event: RawEventCallback,
        on_error: ErrorCallback,
    ) -> Subscription:
        """Start watching ``base_dirs`` recursively.

        Args:
            base_dirs: Absolute directories (or files) to watch
            options: Source options
            on_event: Called with ``(type, absolute_path)`` for add/change/unlink
            on_error: Called with errors raised by the backend

        Returns:
            Subscription to close when done
        """
        ...
