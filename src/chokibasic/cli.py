"""CLI entry point for chokibasic: watch a project and rebuild assets on change."""

import argparse
import asyncio
import logging
import signal
import sys
from pathlib import Path

from chokibasic import __version__
from chokibasic.config import load_config
from chokibasic.controller import create_watchers
from chokibasic.exceptions import ChokibasicError
from chokibasic.export import export_dist
from chokibasic.notifier import LoggingNotifier

logger = logging.getLogger(__name__)

# Default config template for a static site project
DEFAULT_CONFIG_TEMPLATE = """\
# Auto-generated chokibasic.toml

[watch]
cwd = "."
global_ignored = ["**/node_modules/**", "**/.git/**", "**/dist/**"]
ignore_initial = true
use_polling = false
debug = false
events = ["change"]

[[rule]]
name = "styles"
patterns = ["src/scss/**/*.scss"]
action = "css"
input = "src/scss/main.scss"
output = "src/css/main.min.css"

[[rule]]
name = "scripts"
patterns = ["src/js/**/*.js"]
ignored = ["**/*.min.js"]
action = "js"
input = "src/js/main.js"
output = "src/js/main.min.js"

[[rule]]
name = "export"
patterns = ["src/**/*.html", "src/**/*.min.css", "src/**/*.min.js"]
debounce_ms = 500
action = "export"
input = "src"
output = "dist"
"""


def create_default_config(config_path: Path) -> bool:
    """
    Create a default chokibasic.toml if it doesn't exist.

    Args:
        config_path: Path where config should be created

    Returns:
        True if config was created, False if it already exists

    Raises:
        PermissionError: If unable to write to the directory
        OSError: If other file system errors occur
    """
    if config_path.exists():
        return False

    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_text(DEFAULT_CONFIG_TEMPLATE)
    return True


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """
    Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="chokibasic",
        description="Watch a project tree and run build actions on debounced, batched changes.",
        epilog="Examples:\n"
        "  chokibasic --init                # Create chokibasic.toml\n"
        "  chokibasic                       # Watch using chokibasic.toml\n"
        "  chokibasic -c site.toml -v       # Custom config, debug logging\n"
        "  chokibasic --export src dist     # One-shot export",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "-c",
        "--config",
        default="chokibasic.toml",
        help="Path to config file (default: chokibasic.toml)",
    )
    parser.add_argument(
        "--init",
        action="store_true",
        help="Create a default config file and exit",
    )
    parser.add_argument(
        "--export",
        nargs=2,
        metavar=("SRC", "DIST"),
        help="Export SRC into DIST and exit",
    )
    parser.add_argument(
        "--banner",
        help="Banner file used by --export",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    return parser.parse_args(argv)


async def watch(config_path: Path) -> None:
    """Run the watchers described by ``config_path`` until interrupted."""
    config = load_config(config_path)
    notifier = LoggingNotifier()

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except (NotImplementedError, RuntimeError):
            # Windows: KeyboardInterrupt ends asyncio.run instead
            pass

    controller = create_watchers(config.build_rules(notifier), config.options, notifier=notifier)
    logger.info(f"Watching {config.options.cwd} ({len(config.rules)} rule(s)), press Ctrl+C to stop")
    try:
        await stop.wait()
    finally:
        await controller.close()


def main(argv: list[str] | None = None) -> None:
    """
    Main entry point for chokibasic CLI.

    Handles:
    - Argument parsing and logging setup
    - --init and --export one-shot commands
    - Running the watchers until Ctrl+C
    - Error handling and exit codes
    """
    args = parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )

    config_path = Path(args.config).resolve()

    try:
        if args.init:
            if create_default_config(config_path):
                print(f"Created default config at: {config_path}")
            else:
                print(f"Config already exists: {config_path}")
            return

        if args.export:
            src, dist = args.export
            stats = export_dist(src, dist, args.banner)
            print(f"Exported {stats.copied} file(s), skipped {stats.skipped}")
            return

        if not config_path.exists():
            print(
                f"Error: Config file not found: {config_path}\nRun 'chokibasic --init' to create one.",
                file=sys.stderr,
            )
            sys.exit(1)

        asyncio.run(watch(config_path))

    except KeyboardInterrupt:
        sys.exit(130)
    except ChokibasicError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
