"""chokibasic: debounced, rule-based file watching for asset pipelines."""

__version__ = "0.1.0"

# Models
from chokibasic.models import (
    EVENT_TYPES,
    WatchEvent,
    WatchOptions,
    WatchRule,
    WatchRuleContext,
    WriteStability,
)

# Matching
from chokibasic.globs import compile_pattern, glob_base_dir, glob_to_regex
from chokibasic.ignore import DEFAULT_GLOBAL_IGNORED, compile_ignore_list, is_ignored

# Engine and controller
from chokibasic.engine import RuleEngine
from chokibasic.controller import WatchersController, create_watchers

# Errors and notifications
from chokibasic.exceptions import ChokibasicError, ConfigError, ExportError, RuleConfigError
from chokibasic.notifier import ChokibasicNotifier, LoggingNotifier, NoOpNotifier

# Collaborators
from chokibasic.builders import BuildResult, build_css, build_js, build_sitemap, build_template
from chokibasic.export import ExportStats, export_dist

__all__ = [
    "__version__",
    # Models
    "EVENT_TYPES",
    "WatchEvent",
    "WatchOptions",
    "WatchRule",
    "WatchRuleContext",
    "WriteStability",
    # Matching
    "compile_pattern",
    "glob_base_dir",
    "glob_to_regex",
    "DEFAULT_GLOBAL_IGNORED",
    "compile_ignore_list",
    "is_ignored",
    # Engine
    "RuleEngine",
    "WatchersController",
    "create_watchers",
    # Errors
    "ChokibasicError",
    "ConfigError",
    "ExportError",
    "RuleConfigError",
    # Notifier
    "ChokibasicNotifier",
    "LoggingNotifier",
    "NoOpNotifier",
    # Collaborators
    "BuildResult",
    "build_css",
    "build_js",
    "build_sitemap",
    "build_template",
    "ExportStats",
    "export_dist",
]
