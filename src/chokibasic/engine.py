"""Per-rule event queueing, debouncing and serialized callback dispatch."""

import asyncio
import inspect
import logging
import os
from pathlib import Path
from typing import Callable, Iterable

from chokibasic.globs import compile_pattern, to_posix
from chokibasic.ignore import IgnoreMatcher, compile_ignore_list, is_ignored
from chokibasic.models import WatchEvent, WatchRule, WatchRuleContext

logger = logging.getLogger(__name__)


class RuleEngine:
    """Turns raw ``(type, absolute_path)`` notifications into debounced batches for one rule.

    State (pending map, timer handle, ``running`` and ``rerun`` flags) belongs to
    this instance only and is touched exclusively from the event loop thread.

    Flushing is serialized: a flush requested while the callback is running only
    sets ``rerun``, and the running flush loops again once the callback
    returns, so events queued mid-callback are delivered without re-entrancy.
    """

    def __init__(
        self,
        rule: WatchRule,
        cwd: str | Path,
        global_ignored: Iterable[IgnoreMatcher] = (),
        loop: asyncio.AbstractEventLoop | None = None,
        on_error: Callable[[WatchRule, BaseException], None] | None = None,
        debug: bool = False,
    ):
        """Initialize engine.

        Args:
            rule: Rule whose callback receives the batches (referenced, not copied)
            cwd: Directory paths are made relative to
            global_ignored: Ignore matchers shared by all rules, checked before the rule's own
            loop: Event loop for timers and flush tasks (defaults to the running loop)
            on_error: Receives exceptions raised by the rule callback
            debug: Log every queued event
        """
        self.rule = rule
        self.cwd = Path(cwd).resolve()
        self.loop = loop
        self.on_error = on_error
        self.debug = debug

        compiled = [compile_pattern(p) for p in rule.pattern_list]
        self._include = [matcher for _, matcher in compiled]
        self.base_dirs: list[Path] = [
            Path(os.path.normpath(self.cwd / base)) for base in dict.fromkeys(base for base, _ in compiled)
        ]
        self.ignored: list[IgnoreMatcher] = [*global_ignored, *rule.ignored]
        self._ignore = compile_ignore_list(self.ignored)

        self._pending: dict[str, WatchEvent] = {}
        self._timer: asyncio.TimerHandle | None = None
        self._running = False
        self._rerun = False
        self._tasks: set[asyncio.Task] = set()

    @property
    def name(self) -> str:
        return self.rule.display_name

    @property
    def pending(self) -> list[WatchEvent]:
        """Snapshot of queued events, in delivery order."""
        return list(self._pending.values())

    @property
    def running(self) -> bool:
        """True while a flush is executing the callback."""
        return self._running

    @property
    def has_timer(self) -> bool:
        return self._timer is not None

    def relative_path(self, absolute_path: str | Path) -> str:
        """Express ``absolute_path`` relative to cwd, POSIX separators."""
        return to_posix(os.path.relpath(absolute_path, self.cwd))

    def matches(self, rel_path: str) -> bool:
        """Apply ignore matchers first, then include matchers."""
        if is_ignored(rel_path, self._ignore):
            return False
        return any(matcher(rel_path) for matcher in self._include)

    def submit(self, event_type: str, absolute_path: str | Path) -> bool:
        """Queue a raw notification if it passes the filters.

        Re-arms the debounce timer, so the batch fires ``debounce_ms`` after the
        last qualifying event.

        Args:
            event_type: add, change or unlink
            absolute_path: Path reported by the notification source

        Returns:
            True if the event was queued
        """
        rel = self.relative_path(absolute_path)
        if not self.matches(rel):
            return False

        if self.debug:
            logger.info(f"[{self.name}] queue {event_type} {rel}")

        event = WatchEvent(type=event_type, file=rel)
        self._pending[event.key] = event
        self._arm_timer()
        return True

    def _arm_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        loop = self.loop or asyncio.get_running_loop()
        self._timer = loop.call_later(self.rule.debounce_ms / 1000.0, self._on_timer)

    def _on_timer(self) -> None:
        """Debounce window expired: run a flush as a task."""
        self._timer = None
        loop = self.loop or asyncio.get_running_loop()
        task = loop.create_task(self.flush())
        self._tasks.add(task)
        task.add_done_callback(self._on_flush_done)

    def _on_flush_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is None:
            return
        if self.on_error is not None:
            self.on_error(self.rule, exc)
        else:
            logger.error(f"[{self.name}] callback failed: {exc!r}")

    async def flush(self) -> None:
        """Deliver pending events to the callback, looping while catch-ups are requested.

        Exceptions from the callback propagate; ``running`` is released either way.
        A failed callback ends the loop: events queued while it ran stay pending
        until the next qualifying event re-arms the timer.
        """
        if self._running:
            self._rerun = True
            return

        self._running = True
        try:
            while True:
                self._rerun = False
                batch = list(self._pending.values())
                self._pending.clear()
                if batch:
                    logger.debug(f"[{self.name}] flushing {len(batch)} event(s)")
                    result = self.rule.callback(batch, WatchRuleContext(rule=self.rule))
                    if inspect.isawaitable(result):
                        await result
                if not self._rerun:
                    break
        finally:
            self._running = False

    def cancel(self) -> None:
        """Cancel the debounce timer and drop pending events without delivering them."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._pending.clear()
