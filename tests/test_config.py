"""Tests for chokibasic.config."""

from unittest.mock import AsyncMock, patch

import pytest

from chokibasic.config import load_config
from chokibasic.exceptions import ConfigError
from chokibasic.export import ExportStats
from chokibasic.models import WatchEvent, WatchRuleContext, WriteStability

CONFIG = """
[watch]
global_ignored = ["**/node_modules/**"]
ignore_initial = false
use_polling = true
interval = 100
events = ["add", "change"]
await_write_finish = { stability_threshold = 50, poll_interval = 5 }

[[rule]]
name = "styles"
patterns = "src/scss/**/*.scss"
ignored = ["**/_drafts/**"]
debounce_ms = 200
action = "css"
input = "src/scss/main.scss"
output = "public/main.min.css"
options = { style = "expanded" }

[[rule]]
patterns = ["templates/**/*.html"]
action = "template"

[[rule]]
name = "dist"
patterns = ["src/**"]
action = "export"
input = "src"
output = "dist"
"""


@pytest.fixture
def config_file(root):
    path = root / "chokibasic.toml"
    path.write_text(CONFIG)
    return path


def test_load_config_options(config_file, root):
    config = load_config(config_file)

    assert config.options.cwd == root
    assert config.options.global_ignored == ["**/node_modules/**"]
    assert config.options.ignore_initial is False
    assert config.options.use_polling is True
    assert config.options.interval == 100
    assert config.options.binary_interval == 300
    assert config.options.events == ("add", "change")
    assert config.options.write_stability == WriteStability(50, 5)


def test_load_config_rules(config_file, root):
    config = load_config(config_file)
    styles, templates, dist = config.rules

    assert styles.name == "styles"
    assert styles.patterns == ["src/scss/**/*.scss"]
    assert styles.ignored == ["**/_drafts/**"]
    assert styles.debounce_ms == 200
    assert styles.input == root / "src" / "scss" / "main.scss"
    assert styles.output == root / "public" / "main.min.css"
    assert styles.options == {"style": "expanded"}

    assert templates.name == "template-1"
    assert templates.debounce_ms == 150
    assert dist.input == root / "src"


def test_build_rules(config_file):
    config = load_config(config_file)
    rules = config.build_rules()

    assert [r.name for r in rules] == ["styles", "template-1", "dist"]
    assert rules[0].ignored == ["**/_drafts/**"]
    assert all(callable(r.callback) for r in rules)


@pytest.mark.asyncio
async def test_css_action_runs_builder(config_file, root):
    config = load_config(config_file)
    rule = config.build_rules()[0]

    with patch("chokibasic.config.build_css", new=AsyncMock()) as build:
        await rule.callback([WatchEvent("change", "src/scss/a.scss")], WatchRuleContext(rule))

    build.assert_awaited_once()
    args = build.await_args
    assert args.args[0] == root / "src" / "scss" / "main.scss"
    assert args.args[1] == root / "public" / "main.min.css"
    assert args.args[2] == {"style": "expanded"}


@pytest.mark.asyncio
async def test_template_action_renders_each_changed_file(config_file, root):
    config = load_config(config_file)
    rule = config.build_rules()[1]
    events = [
        WatchEvent("change", "templates/a.html"),
        WatchEvent("unlink", "templates/b.html"),
        WatchEvent("add", "templates/c.html"),
    ]

    with patch("chokibasic.config.build_template", new=AsyncMock()) as build:
        await rule.callback(events, WatchRuleContext(rule))

    rendered = [call.args[0] for call in build.await_args_list]
    assert rendered == [root / "templates" / "a.html", root / "templates" / "c.html"]


@pytest.mark.asyncio
async def test_export_action_reports_stats(config_file, notifier):
    config = load_config(config_file)
    rule = config.build_rules(notifier)[2]

    with patch("chokibasic.config.export_dist", return_value=ExportStats(copied=3, skipped=1)):
        await rule.callback([WatchEvent("change", "src/index.html")], WatchRuleContext(rule))

    assert notifier.infos == ["Exported 3 file(s), skipped 1"]


@pytest.mark.asyncio
async def test_export_action_failure_is_reported(config_file, notifier):
    """The export source does not exist: reported, not raised."""
    config = load_config(config_file)
    rule = config.build_rules(notifier)[2]

    await rule.callback([WatchEvent("change", "src/index.html")], WatchRuleContext(rule))

    assert len(notifier.errors) == 1
    assert notifier.errors[0].startswith("Export failed")


def test_missing_file(root):
    with pytest.raises(FileNotFoundError, match="chokibasic --init"):
        load_config(root / "nope.toml")


def test_invalid_toml(root):
    path = root / "bad.toml"
    path.write_text("[watch\n")
    with pytest.raises(ConfigError, match="Failed to parse"):
        load_config(path)


@pytest.mark.parametrize(
    "body, message",
    [
        ('[[rule]]\npatterns = ["x"]\naction = "zip"\n', "unknown action"),
        ('[[rule]]\npatterns = ["x"]\naction = "css"\ninput = "a.scss"\n', "missing output"),
        ('[[rule]]\naction = "template"\n', "missing patterns"),
        ('[watch]\nfoo = 1\n', "Unknown \\[watch\\] option"),
        ('[watch]\nevents = ["rename"]\n', "Unknown event type"),
    ],
)
def test_invalid_rules(root, body, message):
    path = root / "c.toml"
    path.write_text(body)
    with pytest.raises(ConfigError, match=message):
        load_config(path)
