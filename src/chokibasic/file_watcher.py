"""Notification source implementation using watchdog."""

import asyncio
import logging
import os
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from watchdog.observers.polling import PollingObserver

from chokibasic.watchers import ErrorCallback, RawEventCallback, SourceOptions

logger = logging.getLogger(__name__)

# An unlink followed by an add of the same path within this window is a save
ATOMIC_WINDOW_MS = 100


class _ChangeHandler(FileSystemEventHandler):
    """Translate watchdog events into ``(type, path)`` pairs.

    Runs on the observer thread; every event is handed over to the event loop.
    """

    def __init__(self, subscription: "WatchdogSubscription"):
        super().__init__()
        self.subscription = subscription

    def on_created(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.subscription.post("add", event.src_path)

    def on_modified(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.subscription.post("change", event.src_path)

    def on_deleted(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.subscription.post("unlink", event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        if not event.is_directory:
            self.subscription.post("unlink", event.src_path)
            # Renamed over an existing file: dispatched as "change"
            self.subscription.post("add", event.dest_path)


class WatchdogSubscription:
    """One observer watching a set of base directories."""

    def __init__(
        self,
        base_dirs: list[Path],
        options: SourceOptions,
        on_event: RawEventCallback,
        on_error: ErrorCallback,
        loop: asyncio.AbstractEventLoop,
    ):
        """Initialize subscription.

        Args:
            base_dirs: Absolute directories (or files) to watch
            options: Source options
            on_event: Receives ``(type, absolute_path)`` on the loop thread
            on_error: Receives backend errors on the loop thread
            loop: Event loop events are delivered on
        """
        self.base_dirs = base_dirs
        self.options = options
        self.on_event = on_event
        self.on_error = on_error
        self.loop = loop
        self.closed = False
        self.watched: list[Path] = []
        self._stabilizing: dict[str, asyncio.Task] = {}
        self._known: set[str] = set()
        self._unlinks: dict[str, asyncio.TimerHandle] = {}

        if options.use_polling:
            self.observer = PollingObserver(timeout=options.interval / 1000.0)
        else:
            self.observer = Observer()

    def start(self) -> None:
        """Schedule every existing base directory and start the observer thread."""
        handler = _ChangeHandler(self)
        for base in self.base_dirs:
            if base.is_dir():
                self.observer.schedule(handler, str(base), recursive=True)
            elif base.is_file():
                # Literal pattern: watch the parent, the engine filters siblings out
                self.observer.schedule(handler, str(base.parent), recursive=False)
            else:
                logger.warning(f"Watch directory does not exist: {base}")
                continue
            self.watched.append(base)

        if not self.watched:
            logger.debug("No existing directories to watch")
            return

        existing = self._existing_files()
        self._known.update(existing)

        try:
            self.observer.start()
        except OSError as e:
            logger.error(f"Failed to start file observer for {self.watched}: {e}")
            self.on_error(e)
            return

        if not self.options.ignore_initial:
            for path in existing:
                self.loop.call_soon(self._emit, "add", path)

        logger.debug(f"Watching {len(self.watched)} path(s): {[str(p) for p in self.watched]}")

    def _existing_files(self) -> list[str]:
        files = []
        for base in self.watched:
            if base.is_file():
                files.append(str(base))
                continue
            for root, _dirs, names in os.walk(base):
                files.extend(os.path.join(root, name) for name in names)
        return files

    def post(self, event_type: str, path: str | bytes) -> None:
        """Hand a raw event to the event loop (called from the observer thread)."""
        if self.closed:
            return
        path = os.fsdecode(path)
        try:
            self.loop.call_soon_threadsafe(self._dispatch, event_type, path)
        except RuntimeError:
            # Loop already closed
            logger.debug(f"Dropped {event_type} {path}: event loop is closed")

    def _dispatch(self, event_type: str, path: str) -> None:
        """Fold atomic saves into ``change`` before emitting.

        An ``add`` for a file that already exists (rename over it), or one
        arriving within ATOMIC_WINDOW_MS of an ``unlink`` of the same path, is
        a ``change``. Unlinks are held for the window unless polling.
        """
        if self.closed:
            return
        if event_type == "unlink":
            self._known.discard(path)
            if self.options.use_polling:
                self._emit("unlink", path)
            elif path not in self._unlinks:
                self._unlinks[path] = self.loop.call_later(
                    ATOMIC_WINDOW_MS / 1000.0, self._release_unlink, path
                )
            return

        if event_type == "add":
            held = self._unlinks.pop(path, None)
            if held is not None:
                held.cancel()
                event_type = "change"
            elif path in self._known:
                event_type = "change"
        self._known.add(path)
        self._emit(event_type, path)

    def _release_unlink(self, path: str) -> None:
        self._unlinks.pop(path, None)
        self._emit("unlink", path)

    def _emit(self, event_type: str, path: str) -> None:
        if self.closed:
            return
        stability = self.options.write_stability
        if stability is None or event_type == "unlink":
            self._deliver(event_type, path)
            return
        if path in self._stabilizing:
            return
        task = self.loop.create_task(self._await_write_finish(event_type, path))
        self._stabilizing[path] = task
        task.add_done_callback(lambda _t: self._stabilizing.pop(path, None))

    def _deliver(self, event_type: str, path: str) -> None:
        try:
            self.on_event(event_type, path)
        except Exception as e:
            logger.error(f"Error handling {event_type} {path}: {e}")
            self.on_error(e)

    async def _await_write_finish(self, event_type: str, path: str) -> None:
        """Deliver the event once size and mtime stop changing."""
        stability = self.options.write_stability
        threshold = stability.stability_threshold / 1000.0
        interval = stability.poll_interval / 1000.0

        try:
            last = _stat_key(path)
            stable_since = self.loop.time()
            while True:
                await asyncio.sleep(interval)
                current = _stat_key(path)
                now = self.loop.time()
                if current != last:
                    last = current
                    stable_since = now
                elif now - stable_since >= threshold:
                    break
        except FileNotFoundError:
            # Removed before it settled; the unlink event reports it
            return

        if not self.closed:
            self._deliver(event_type, path)

    async def close(self) -> None:
        """Stop the observer and cancel pending write-stability checks."""
        if self.closed:
            return
        self.closed = True
        for task in list(self._stabilizing.values()):
            task.cancel()
        self._stabilizing.clear()
        for handle in self._unlinks.values():
            handle.cancel()
        self._unlinks.clear()
        if self.observer.is_alive():
            self.observer.stop()
            await asyncio.to_thread(self.observer.join, 2.0)
        logger.debug(f"Stopped watching {[str(p) for p in self.watched]}")


def _stat_key(path: str) -> tuple[int, int]:
    st = os.stat(path)
    return st.st_size, st.st_mtime_ns


class WatchdogSource:
    """Notification source backed by watchdog observers, one per subscription."""

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None):
        """Initialize source.

        Args:
            loop: Event loop events are delivered on (defaults to the running loop)
        """
        self.loop = loop

    def subscribe(
        self,
        base_dirs: list[Path],
        options: SourceOptions,
        on_event: RawEventCallback,
        on_error: ErrorCallback,
    ) -> WatchdogSubscription:
        subscription = WatchdogSubscription(
            base_dirs,
            options,
            on_event,
            on_error,
            self.loop or asyncio.get_running_loop(),
        )
        subscription.start()
        return subscription
