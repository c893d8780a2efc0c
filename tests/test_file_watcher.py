"""Tests for the watchdog-backed notification source (real filesystem)."""

import asyncio
import os
from pathlib import Path

import pytest

from chokibasic.controller import create_watchers
from chokibasic.file_watcher import ATOMIC_WINDOW_MS, WatchdogSource, WatchdogSubscription
from chokibasic.models import WatchEvent, WatchRule, WriteStability
from chokibasic.watchers import SourceOptions


def _touch(path: Path, text: str = "x") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    # Ensure mtime bumps even on very fast writes
    os.utime(path, None)


async def _wait_for(predicate, timeout: float = 3.0) -> bool:
    deadline = asyncio.get_running_loop().time() + timeout
    while asyncio.get_running_loop().time() < deadline:
        if predicate():
            return True
        await asyncio.sleep(0.02)
    return predicate()


@pytest.mark.asyncio
async def test_change_is_delivered_on_loop(root):
    target = root / "src" / "a.txt"
    _touch(target, "first")
    received = []
    errors = []

    sub = WatchdogSource().subscribe([root / "src"], SourceOptions(), lambda t, p: received.append((t, p)), errors.append)
    try:
        await asyncio.sleep(0.2)
        _touch(target, "second")
        assert await _wait_for(lambda: ("change", str(target)) in received), received
    finally:
        await sub.close()
    assert errors == []


@pytest.mark.asyncio
async def test_initial_files_reported_when_not_ignored(root):
    _touch(root / "src" / "a.txt")
    _touch(root / "src" / "nested" / "b.txt")
    received = []

    sub = WatchdogSource().subscribe(
        [root / "src"],
        SourceOptions(ignore_initial=False),
        lambda t, p: received.append((t, p)),
        lambda e: None,
    )
    try:
        assert await _wait_for(lambda: len(received) >= 2)
        assert ("add", str(root / "src" / "a.txt")) in received
        assert ("add", str(root / "src" / "nested" / "b.txt")) in received
    finally:
        await sub.close()


@pytest.mark.asyncio
async def test_missing_base_dir_is_skipped(root):
    sub = WatchdogSource().subscribe([root / "missing"], SourceOptions(), lambda t, p: None, lambda e: None)
    assert sub.watched == []
    await sub.close()


@pytest.mark.asyncio
async def test_write_stability_holds_event_until_settled(root):
    target = root / "src" / "big.txt"
    _touch(target, "0")
    received = []

    sub = WatchdogSource().subscribe(
        [root / "src"],
        SourceOptions(write_stability=WriteStability(stability_threshold=150, poll_interval=10)),
        lambda t, p: received.append((t, p)),
        lambda e: None,
    )
    try:
        await asyncio.sleep(0.2)
        for i in range(3):
            _touch(target, "x" * (i + 2))
            await asyncio.sleep(0.05)
        # Still being written to: nothing delivered yet
        assert received == []
        assert await _wait_for(lambda: received)
        assert received.count(("change", str(target))) == 1
    finally:
        await sub.close()


@pytest.mark.asyncio
async def test_polling_observer(root):
    target = root / "src" / "p.txt"
    _touch(target, "0")
    received = []

    sub = WatchdogSource().subscribe(
        [root / "src"],
        SourceOptions(use_polling=True, interval=50),
        lambda t, p: received.append((t, p)),
        lambda e: None,
    )
    try:
        await asyncio.sleep(0.2)
        _touch(target, "changed content")
        assert await _wait_for(lambda: ("change", str(target)) in received)
    finally:
        await sub.close()


@pytest.mark.asyncio
async def test_end_to_end_debounced_batch(root):
    """Writes to two stylesheets arrive as a single batch."""
    _touch(root / "src" / "styles" / "a.scss")
    _touch(root / "src" / "styles" / "b.scss")
    _touch(root / "src" / "node_modules" / "c.scss")
    batches = []

    controller = create_watchers(
        [WatchRule(patterns="src/**/*.scss", callback=lambda events, ctx: batches.append(events), debounce_ms=200)],
        {"cwd": root, "await_write_finish": False},
    )
    try:
        await asyncio.sleep(0.3)
        _touch(root / "src" / "styles" / "a.scss", "a {}")
        _touch(root / "src" / "styles" / "b.scss", "b {}")
        _touch(root / "src" / "node_modules" / "c.scss", "c {}")

        assert await _wait_for(lambda: batches)
        await asyncio.sleep(0.3)
        assert len(batches) == 1
        files = {e.file for e in batches[0]}
        assert files == {"src/styles/a.scss", "src/styles/b.scss"}
    finally:
        await controller.close()


@pytest.mark.asyncio
async def test_close_stops_delivery(root):
    target = root / "src" / "c.txt"
    _touch(target)
    batches = []

    controller = create_watchers(
        [WatchRule(patterns="src/*.txt", callback=lambda events, ctx: batches.append(events), debounce_ms=50)],
        {"cwd": root, "await_write_finish": False},
    )
    await asyncio.sleep(0.2)
    await controller.close()

    _touch(target, "after close")
    await asyncio.sleep(0.3)
    assert batches == []


@pytest.mark.asyncio
async def test_rename_over_existing_file_is_a_change(root):
    """Editors that save through a temp file and a rename still trigger a rebuild."""
    target = root / "src" / "a.scss"
    _touch(target, "a {}")
    batches = []

    controller = create_watchers(
        [WatchRule(patterns="src/**/*.scss", callback=lambda events, ctx: batches.append(events), debounce_ms=50)],
        {"cwd": root, "await_write_finish": False},
    )
    try:
        await asyncio.sleep(0.3)
        tmp = root / "src" / ".a.scss.tmp"
        tmp.write_text("a { color: red }", encoding="utf-8")
        os.replace(tmp, target)

        assert await _wait_for(lambda: batches)
        await asyncio.sleep(0.3)
        assert batches == [[WatchEvent("change", "src/a.scss")]]
    finally:
        await controller.close()


def _subscription(root, received, **options):
    return WatchdogSubscription(
        [root],
        SourceOptions(**options),
        lambda t, p: received.append((t, p)),
        lambda e: None,
        asyncio.get_running_loop(),
    )


@pytest.mark.asyncio
async def test_unlink_then_add_within_window_is_a_change(root):
    received = []
    sub = _subscription(root, received)
    path = str(root / "a.txt")

    sub._dispatch("unlink", path)
    sub._dispatch("add", path)
    await asyncio.sleep(ATOMIC_WINDOW_MS / 1000.0 + 0.05)

    assert received == [("change", path)]
    await sub.close()


@pytest.mark.asyncio
async def test_unlink_alone_is_delivered_after_window(root):
    received = []
    sub = _subscription(root, received)
    path = str(root / "a.txt")

    sub._dispatch("unlink", path)
    assert received == []
    await asyncio.sleep(ATOMIC_WINDOW_MS / 1000.0 + 0.05)

    assert received == [("unlink", path)]
    await sub.close()


@pytest.mark.asyncio
async def test_add_for_new_file_stays_add(root):
    received = []
    sub = _subscription(root, received)
    path = str(root / "new.txt")

    sub._dispatch("add", path)
    sub._dispatch("add", path)

    assert received == [("add", path), ("change", path)]
    await sub.close()


@pytest.mark.asyncio
async def test_unlink_is_immediate_when_polling(root):
    received = []
    sub = _subscription(root, received, use_polling=True)
    path = str(root / "a.txt")

    sub._dispatch("unlink", path)

    assert received == [("unlink", path)]
    await sub.close()
