#!/usr/bin/env python3
"""
Example: Programmatic Watching
Shows how to use create_watchers() without the CLI or a config file.

This example demonstrates:
- Two rules with different debounce windows
- Sync and async callbacks
- Rule-specific and global ignores
- Clean shutdown with close()
"""

import asyncio
import logging

try:
    from chokibasic import LoggingNotifier, WatchRule, build_css, create_watchers
except ImportError:
    print("Error: Install chokibasic first: pip install chokibasic")
    exit(1)


def log_templates(events, ctx):
    """Sync callback: just print the batch."""
    for event in events:
        print(f"[{ctx.rule.name}] {event.type} {event.file}")


async def rebuild_styles(events, ctx):
    """Async callback: one rebuild per batch, however many files changed."""
    print(f"[{ctx.rule.name}] {len(events)} stylesheet(s) changed, rebuilding")
    await build_css("src/scss/main.scss", "src/css/main.min.css")


async def main():
    logging.basicConfig(level=logging.INFO)

    controller = create_watchers(
        [
            WatchRule(name="templates", patterns="src/**/*.html", callback=log_templates, debounce_ms=50),
            WatchRule(
                name="styles",
                patterns=["src/scss/**/*.scss"],
                ignored=["**/_drafts/**"],
                callback=rebuild_styles,
                debounce_ms=300,
            ),
        ],
        {"debug": True, "events": ("add", "change", "unlink")},
        notifier=LoggingNotifier(),
    )

    print("Watching ./src for 60 seconds...")
    try:
        await asyncio.sleep(60)
    finally:
        await controller.close()


if __name__ == "__main__":
    asyncio.run(main())
