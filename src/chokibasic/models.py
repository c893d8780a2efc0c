"""Shared data models for chokibasic."""

from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, Awaitable, Callable, Literal, Mapping

from chokibasic.exceptions import ConfigError
from chokibasic.globs import normalize_patterns
from chokibasic.ignore import DEFAULT_GLOBAL_IGNORED, IgnoreMatcher

WatchEventType = Literal["add", "change", "unlink"]
EVENT_TYPES: tuple[str, ...] = ("add", "change", "unlink")

DEFAULT_DEBOUNCE_MS = 150


@dataclass(frozen=True)
class WatchEvent:
    """A queued change, as delivered to a rule callback."""

    type: str
    """Event type: add, change or unlink."""

    file: str
    """Path relative to the working directory, POSIX separators."""

    @property
    def key(self) -> str:
        """Coalescing key: one entry per (type, file) within a debounce window."""
        return f"{self.type}:{self.file}"


@dataclass
class WatchRule:
    """A set of include globs bound to a callback.

    The callback receives ``(events, context)`` and may return an awaitable.
    """

    patterns: str | list[str]
    """Include globs, relative to the working directory."""

    callback: Callable[[list[WatchEvent], "WatchRuleContext"], None | Awaitable[None]] | None = None
    """Called with each batch."""

    name: str | None = None
    """Display name used in logs."""

    ignored: list[IgnoreMatcher] = field(default_factory=list)
    """Extra ignore matchers, evaluated after the global ones."""

    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    """Quiet period after the last qualifying event before a batch is delivered."""

    @property
    def display_name(self) -> str:
        return self.name or "rule"

    @property
    def pattern_list(self) -> list[str]:
        return normalize_patterns(self.patterns)


@dataclass(frozen=True)
class WatchRuleContext:
    """Context passed to a rule callback alongside the batch."""

    rule: WatchRule


@dataclass(frozen=True)
class WriteStability:
    """Hold add/change events until the file stops growing."""

    stability_threshold: int = 80
    """Milliseconds the size and mtime must stay unchanged."""

    poll_interval: int = 10
    """Milliseconds between two stat checks."""


@dataclass
class WatchOptions:
    """Global options for :func:`chokibasic.create_watchers`."""

    cwd: Path = field(default_factory=Path.cwd)
    """Root used to compute relative paths and resolve base directories."""

    global_ignored: list[IgnoreMatcher] = field(default_factory=lambda: list(DEFAULT_GLOBAL_IGNORED))
    """Ignore matchers applied to every rule."""

    ignore_initial: bool = True
    """Do not report files that already exist when watching starts."""

    await_write_finish: bool | WriteStability = field(default_factory=WriteStability)
    """Wait for writes to settle before reporting add/change (True = defaults)."""

    use_polling: bool = False
    """Poll the filesystem instead of using native notifications."""

    interval: int = 200
    """Polling interval in milliseconds."""

    binary_interval: int = 300
    """Polling interval for binary files in milliseconds."""

    debug: bool = False
    """Log rule setup and every queued event."""

    events: tuple[str, ...] = ("change",)
    """Raw event types routed to the rule engines."""

    def __post_init__(self):
        self.cwd = Path(self.cwd).resolve()
        if self.await_write_finish is True:
            self.await_write_finish = WriteStability()
        elif isinstance(self.await_write_finish, Mapping):
            self.await_write_finish = WriteStability(**self.await_write_finish)
        self.events = tuple(self.events)
        unknown = [e for e in self.events if e not in EVENT_TYPES]
        if unknown:
            raise ConfigError(f"Unknown event type(s) {unknown}; expected one of {list(EVENT_TYPES)}")

    @property
    def write_stability(self) -> WriteStability | None:
        """Effective write stability settings, or None when disabled."""
        return self.await_write_finish or None

    @classmethod
    def merge(cls, options: "WatchOptions | Mapping[str, Any] | None") -> "WatchOptions":
        """Build options from an instance, a mapping of field names, or None.

        Raises:
            ConfigError: If the mapping holds an unknown option
        """
        if options is None:
            return cls()
        if isinstance(options, cls):
            return options
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(options) - known)
        if unknown:
            raise ConfigError(f"Unknown watch option(s): {', '.join(unknown)}")
        return cls(**options)
