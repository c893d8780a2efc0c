"""Configuration file parsing for the chokibasic CLI."""

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Awaitable, Callable

try:
    import tomllib
except ImportError:
    import tomli as tomllib  # type: ignore

from chokibasic.builders import build_css, build_js, build_sitemap, build_template
from chokibasic.exceptions import ConfigError, ExportError
from chokibasic.export import export_dist
from chokibasic.models import DEFAULT_DEBOUNCE_MS, WatchEvent, WatchOptions, WatchRule, WatchRuleContext
from chokibasic.notifier import ChokibasicNotifier, LoggingNotifier

logger = logging.getLogger(__name__)

# action -> keys the rule entry must define
ACTIONS: dict[str, tuple[str, ...]] = {
    "css": ("input", "output"),
    "js": ("input", "output"),
    "template": (),
    "sitemap": ("input",),
    "export": ("input", "output"),
}

_WATCH_KEYS = {
    "cwd",
    "global_ignored",
    "ignore_initial",
    "await_write_finish",
    "use_polling",
    "interval",
    "binary_interval",
    "debug",
    "events",
}


@dataclass
class RuleConfig:
    """A ``[[rule]]`` entry: include globs bound to a build action."""

    name: str
    patterns: list[str]
    action: str
    ignored: list[str] = field(default_factory=list)
    debounce_ms: int = DEFAULT_DEBOUNCE_MS
    input: Path | None = None
    output: Path | None = None
    banner: Path | None = None
    options: dict[str, Any] = field(default_factory=dict)
    """Forwarded to the builder (sass / esbuild options)."""


@dataclass
class ProjectConfig:
    """Parsed configuration file."""

    path: Path
    options: WatchOptions
    rules: list[RuleConfig]

    def build_rules(self, notifier: ChokibasicNotifier | None = None) -> list[WatchRule]:
        """Turn rule entries into watch rules whose callbacks run their build action."""
        notifier = notifier or LoggingNotifier()
        return [
            WatchRule(
                name=rule.name,
                patterns=rule.patterns,
                ignored=list(rule.ignored),
                debounce_ms=rule.debounce_ms,
                callback=make_action(rule, self.options.cwd, notifier),
            )
            for rule in self.rules
        ]


def make_action(
    rule: RuleConfig,
    cwd: Path,
    notifier: ChokibasicNotifier,
) -> Callable[[list[WatchEvent], WatchRuleContext], Awaitable[None]]:
    """Build the callback running ``rule.action`` for a batch."""

    async def run(events: list[WatchEvent], ctx: WatchRuleContext) -> None:
        logger.debug(f"[{rule.name}] {len(events)} change(s): {[e.file for e in events]}")
        if rule.action == "css":
            await build_css(rule.input, rule.output, rule.options, notifier=notifier)
        elif rule.action == "js":
            await build_js(rule.input, rule.output, rule.options, notifier=notifier)
        elif rule.action == "template":
            for event in events:
                if event.type != "unlink":
                    await build_template(cwd / event.file, notifier=notifier)
        elif rule.action == "sitemap":
            await build_sitemap(rule.input, notifier=notifier)
        elif rule.action == "export":
            try:
                stats = await asyncio.to_thread(export_dist, rule.input, rule.output, rule.banner, cwd)
            except ExportError as e:
                notifier.error(f"Export failed: {e}")
                return
            notifier.info(f"Exported {stats.copied} file(s), skipped {stats.skipped}")

    return run


def _resolve(base: Path, value: str | None) -> Path | None:
    if value is None:
        return None
    return (base / value).resolve()


def _parse_rule(raw: dict[str, Any], index: int, base: Path) -> RuleConfig:
    action = raw.get("action")
    if action not in ACTIONS:
        raise ConfigError(f"Rule #{index}: unknown action {action!r} (expected one of {sorted(ACTIONS)})")
    missing = [key for key in ("patterns", *ACTIONS[action]) if key not in raw]
    if missing:
        raise ConfigError(f"Rule #{index} ({action}): missing {', '.join(missing)}")

    patterns = raw["patterns"]
    return RuleConfig(
        name=raw.get("name", f"{action}-{index}"),
        patterns=[patterns] if isinstance(patterns, str) else list(patterns),
        action=action,
        ignored=list(raw.get("ignored", [])),
        debounce_ms=raw.get("debounce_ms", DEFAULT_DEBOUNCE_MS),
        input=_resolve(base, raw.get("input")),
        output=_resolve(base, raw.get("output")),
        banner=_resolve(base, raw.get("banner")),
        options=dict(raw.get("options", {})),
    )


def load_config(path: str | Path) -> ProjectConfig:
    """Load a chokibasic TOML configuration.

    Args:
        path: Path to TOML config file

    Returns:
        Parsed configuration; relative paths are resolved against the file's directory

    Raises:
        FileNotFoundError: If the file does not exist
        ConfigError: If the file is not valid TOML or describes invalid rules
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(
            f"Config file not found: {path}\nRun 'chokibasic --init' to create a default config."
        )

    try:
        with open(path, "rb") as f:
            raw = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e

    base = path.resolve().parent

    watch_raw = dict(raw.get("watch", {}))
    unknown = sorted(set(watch_raw) - _WATCH_KEYS)
    if unknown:
        raise ConfigError(f"Unknown [watch] option(s): {', '.join(unknown)}")
    watch_raw["cwd"] = _resolve(base, watch_raw.get("cwd", "."))
    if "events" in watch_raw:
        watch_raw["events"] = tuple(watch_raw["events"])
    options = WatchOptions.merge(watch_raw)

    rules = [_parse_rule(r, i, base) for i, r in enumerate(raw.get("rule", []))]
    if not rules:
        logger.warning(f"No [[rule]] entries in {path}")

    return ProjectConfig(path=path, options=options, rules=rules)
