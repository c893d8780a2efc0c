"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add src directory to Python path for imports
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))


class FakeSubscription:
    """Subscription double recording its lifecycle."""

    def __init__(self, base_dirs, options, on_event, on_error):
        self.base_dirs = base_dirs
        self.options = options
        self.on_event = on_event
        self.on_error = on_error
        self.closed = False

    async def close(self):
        self.closed = True


class FakeSource:
    """In-memory notification source: tests push raw events with emit()."""

    def __init__(self):
        self.subscriptions: list[FakeSubscription] = []

    def subscribe(self, base_dirs, options, on_event, on_error):
        sub = FakeSubscription(base_dirs, options, on_event, on_error)
        self.subscriptions.append(sub)
        return sub

    def emit(self, event_type, path):
        """Deliver a raw event to every open subscription."""
        for sub in self.subscriptions:
            if not sub.closed:
                sub.on_event(event_type, str(path))

    def fail(self, exc):
        for sub in self.subscriptions:
            sub.on_error(exc)


class RecordingNotifier:
    """Notifier double keeping every message."""

    def __init__(self):
        self.infos: list[str] = []
        self.warnings: list[str] = []
        self.errors: list[str] = []

    def info(self, msg):
        self.infos.append(msg)

    def warning(self, msg):
        self.warnings.append(msg)

    def error(self, msg):
        self.errors.append(msg)


@pytest.fixture
def fake_source():
    return FakeSource()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def root(tmp_path):
    """Resolved temporary directory, so relative paths are stable across symlinked tmp dirs."""
    return tmp_path.resolve()
