"""Watch controller: composes rule engines and owns their subscriptions. Primary embed point."""

import asyncio
import logging
from typing import Any, Iterable, Mapping

from chokibasic.engine import RuleEngine
from chokibasic.exceptions import RuleConfigError
from chokibasic.models import WatchOptions, WatchRule
from chokibasic.notifier import ChokibasicNotifier, NoOpNotifier
from chokibasic.watchers import NotificationSource, SourceOptions, Subscription

logger = logging.getLogger(__name__)


def _coerce_rule(rule: WatchRule | Mapping[str, Any], index: int) -> WatchRule:
    """Validate a rule, building it from a mapping if needed.

    Raises:
        RuleConfigError: If the rule has no callable callback or an invalid shape
    """
    if isinstance(rule, Mapping):
        try:
            rule = WatchRule(**rule)
        except TypeError as e:
            raise RuleConfigError(f"Invalid rule #{index}: {e}") from e
    if not isinstance(rule, WatchRule):
        raise RuleConfigError(f"Invalid rule #{index}: expected WatchRule or mapping, got {type(rule).__name__}")
    if not callable(rule.callback):
        raise RuleConfigError(f"Each rule must have a callback(events, ctx) (rule #{index} '{rule.display_name}').")
    debounce = rule.debounce_ms
    if isinstance(debounce, bool) or not isinstance(debounce, (int, float)) or debounce < 0:
        raise RuleConfigError(f"Invalid debounce_ms {rule.debounce_ms!r} for rule '{rule.display_name}'")
    if not rule.pattern_list:
        logger.warning(f"Rule '{rule.display_name}' has no patterns and will never fire")
    return rule


class WatchersController:
    """Runs one :class:`RuleEngine` per rule and tears them all down on :meth:`close`.

    Stable API: ``start()``, ``close()``, ``engines``, ``closed``. Can be used as
    an async context manager.
    """

    def __init__(
        self,
        rules: Iterable[WatchRule | Mapping[str, Any]],
        options: WatchOptions | Mapping[str, Any] | None = None,
        *,
        source: NotificationSource | None = None,
        notifier: ChokibasicNotifier | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        """Initialize controller.

        Rules are validated before anything is subscribed.

        Args:
            rules: Watch rules (instances or mappings of WatchRule fields)
            options: Global options, merged over the defaults
            source: Notification source (defaults to a watchdog-backed source)
            notifier: Optional notification handler (defaults to NoOpNotifier - silent)
            loop: Event loop for timers and callbacks (defaults to the running loop)

        Raises:
            RuleConfigError: If a rule is invalid
            RuntimeError: If no event loop is running
        """
        self.rules = [_coerce_rule(rule, i) for i, rule in enumerate(rules)]
        self.options = WatchOptions.merge(options)
        self.notifier = notifier or NoOpNotifier()

        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                raise RuntimeError(
                    "Event loop must be running before creating watchers. "
                    "Call create_watchers() from a coroutine or pass loop=."
                ) from None
        self.loop = loop

        if source is None:
            from chokibasic.file_watcher import WatchdogSource

            source = WatchdogSource(loop)
        self.source = source

        self.engines: list[RuleEngine] = [
            RuleEngine(
                rule,
                cwd=self.options.cwd,
                global_ignored=self.options.global_ignored,
                loop=loop,
                on_error=self._on_callback_error,
                debug=self.options.debug,
            )
            for rule in self.rules
        ]
        self._subscriptions: list[Subscription] = []
        self._started = False
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def start(self) -> None:
        """Subscribe every engine to its base directories. Idempotent."""
        if self._started or self._closed:
            return
        self._started = True

        source_options = SourceOptions.from_watch_options(self.options)
        for engine in self.engines:
            if self.options.debug:
                logger.info(f"[{engine.name}] starting watcher")
                logger.info(f"  cwd: {self.options.cwd}")
                logger.info(f"  patterns: {engine.rule.pattern_list}")
                logger.info(f"  base dirs: {[str(d) for d in engine.base_dirs]}")
                logger.info(f"  ignored (applied in queue): {engine.ignored}")

            subscription = self.source.subscribe(
                engine.base_dirs,
                source_options,
                self._router(engine),
                self._error_router(engine),
            )
            self._subscriptions.append(subscription)

        logger.info(f"Started {len(self.engines)} watcher(s)")

    def _router(self, engine: RuleEngine):
        wired = set(self.options.events)

        def on_event(event_type: str, path: str) -> None:
            if self._closed or event_type not in wired:
                return
            engine.submit(event_type, path)

        return on_event

    def _error_router(self, engine: RuleEngine):
        def on_error(exc: BaseException) -> None:
            logger.error(f"[{engine.name}] watch error: {exc}")
            self.notifier.error(f"[{engine.name}] watch error: {exc}")

        return on_error

    def _on_callback_error(self, rule: WatchRule, exc: BaseException) -> None:
        logger.error(f"[{rule.display_name}] callback failed: {exc!r}", exc_info=exc)
        self.notifier.error(f"[{rule.display_name}] callback failed: {exc}")

    async def close(self) -> None:
        """Cancel timers, drop undelivered events and close every subscription.

        A callback already running is not awaited.
        """
        if self._closed:
            return
        self._closed = True

        for engine in self.engines:
            engine.cancel()

        subscriptions, self._subscriptions = self._subscriptions, []
        await asyncio.gather(*(s.close() for s in subscriptions))
        logger.info("Stopped watchers")

    async def __aenter__(self) -> "WatchersController":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()


def create_watchers(
    rules: Iterable[WatchRule | Mapping[str, Any]],
    options: WatchOptions | Mapping[str, Any] | None = None,
    *,
    source: NotificationSource | None = None,
    notifier: ChokibasicNotifier | None = None,
    loop: asyncio.AbstractEventLoop | None = None,
) -> WatchersController:
    """Create and start one watcher per rule.

    Must be called while an event loop is running (or with ``loop=``).

    Args:
        rules: Watch rules
        options: Global options (WatchOptions or mapping of its fields)
        source: Notification source (defaults to watchdog)
        notifier: Receives watch and callback errors
        loop: Event loop to use

    Returns:
        Started controller; ``await controller.close()`` to stop everything.
    """
    controller = WatchersController(rules, options, source=source, notifier=notifier, loop=loop)
    controller.start()
    return controller
