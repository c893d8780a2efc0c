"""Asset build helpers invoked from rule callbacks.

Each helper runs an external compiler, reports the outcome through a notifier
and returns a :class:`BuildResult`. They never raise on a failed build, so one
broken asset does not abort a batch with several build steps.

CSS is minified by Dart Sass alone (``--style=compressed``); no separate csso pass is run.
"""

import asyncio
import logging
import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Sequence

from chokibasic.notifier import ChokibasicNotifier, LoggingNotifier

logger = logging.getLogger(__name__)

SASS_DEFAULTS: dict[str, Any] = {
    "style": "compressed",
    "source_map": False,
    "embed_sources": False,
}

ESBUILD_DEFAULTS: dict[str, Any] = {
    "bundle": True,
    "platform": "browser",
    "log_level": "error",
    "tree_shaking": True,
    "minify": True,
    "supported": {"template-literal": False},
    "target": ["es2020"],
    "legal_comments": "none",
}

# esbuild flags that take an explicit true/false value
_ESBUILD_VALUE_BOOLS = {"tree_shaking"}

# Invoked as ``<command> render|sitemap FILE``. The command must exit 0 on
# success and print each file it wrote on its own stdout line; a non-zero exit
# is a failure with the reason on stderr. Point ``command`` at a wrapper around
# the pxpros ``render()``/``sitemap()`` API if the installed package has no CLI.
PXPROS_COMMAND: tuple[str, ...] = ("npx", "pxpros")


@dataclass
class BuildResult:
    """Outcome of a build step."""

    success: bool
    """Whether the build produced its output."""

    files: list[str] = field(default_factory=list)
    """Files written by the step."""

    error: str | None = None
    """Compiler diagnostics when the step failed."""


def _flag(name: str) -> str:
    return "--" + name.replace("_", "-")


def sass_args(options: Mapping[str, Any]) -> list[str]:
    """Translate sass options into Dart Sass CLI flags."""
    args = []
    for name, value in options.items():
        if name == "load_paths":
            args.extend(f"--load-path={p}" for p in value)
        elif value is True:
            args.append(_flag(name))
        elif value is False:
            args.append("--no-" + name.replace("_", "-"))
        elif value is not None:
            args.append(f"{_flag(name)}={value}")
    return args


def esbuild_args(options: Mapping[str, Any]) -> list[str]:
    """Translate esbuild options into esbuild CLI flags.

    ``{"supported": {"template-literal": False}}`` becomes
    ``--supported:template-literal=false``; lists are comma-joined.
    """
    args = []
    for name, value in options.items():
        if name in _ESBUILD_VALUE_BOOLS and isinstance(value, bool):
            args.append(f"{_flag(name)}={str(value).lower()}")
        elif isinstance(value, Mapping):
            for key, item in value.items():
                item = str(item).lower() if isinstance(item, bool) else item
                args.append(f"{_flag(name)}:{key}={item}")
        elif value is True:
            args.append(_flag(name))
        elif value is False or value is None:
            continue
        elif isinstance(value, (list, tuple)):
            args.append(f"{_flag(name)}={','.join(str(v) for v in value)}")
        else:
            args.append(f"{_flag(name)}={value}")
    return args


async def run_tool(argv: Sequence[str], cwd: str | Path | None = None) -> tuple[int, str, str]:
    """Run an external tool and capture its output.

    Returns:
        (returncode, stdout, stderr)

    Raises:
        FileNotFoundError: If the executable cannot be found
    """
    logger.debug(f"Running: {' '.join(str(a) for a in argv)}")
    proc = await asyncio.create_subprocess_exec(
        *[str(a) for a in argv],
        cwd=str(cwd) if cwd else None,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await proc.communicate()
    return proc.returncode, stdout.decode(errors="replace"), stderr.decode(errors="replace")


def _resolve_executable(name: str) -> str:
    return shutil.which(name) or name


async def build_css(
    input_scss: str | Path,
    out_css: str | Path,
    options: Mapping[str, Any] | None = None,
    notifier: ChokibasicNotifier | None = None,
) -> BuildResult:
    """Compile SCSS to (by default compressed) CSS with the Dart Sass CLI.

    Args:
        input_scss: Entry stylesheet
        out_css: Output file, parent directories are created
        options: Sass options (``style``, ``load_paths``, ``source_map``...,
            plus ``executable``) merged over SASS_DEFAULTS
        notifier: Receives the report (defaults to LoggingNotifier)
    """
    notifier = notifier or LoggingNotifier()
    opts = {**SASS_DEFAULTS, "load_paths": [Path.cwd() / "node_modules"], **(options or {})}
    executable = _resolve_executable(opts.pop("executable", "sass"))

    out_css = Path(out_css)
    argv = [executable, *sass_args(opts), str(input_scss), str(out_css)]

    try:
        out_css.parent.mkdir(parents=True, exist_ok=True)
        code, _stdout, stderr = await run_tool(argv)
    except OSError as e:
        code, stderr = None, str(e)

    if code != 0:
        notifier.error(f"Sass compile error ({input_scss}):\n{stderr.strip()}")
        return BuildResult(success=False, error=stderr.strip())

    notifier.info(f"CSS generated: {out_css}")
    return BuildResult(success=True, files=[str(out_css)])


async def build_js(
    entry: str | Path,
    outfile: str | Path,
    options: Mapping[str, Any] | None = None,
    notifier: ChokibasicNotifier | None = None,
) -> BuildResult:
    """Bundle and minify a script with the esbuild CLI.

    Args:
        entry: Entry point
        outfile: Bundle to write
        options: esbuild options (snake_case names, plus ``executable``) merged over ESBUILD_DEFAULTS
        notifier: Receives the report (defaults to LoggingNotifier)
    """
    notifier = notifier or LoggingNotifier()
    opts = {**ESBUILD_DEFAULTS, **(options or {})}
    executable = _resolve_executable(opts.pop("executable", "esbuild"))

    argv = [executable, str(entry), f"--outfile={outfile}", *esbuild_args(opts)]

    try:
        code, _stdout, stderr = await run_tool(argv)
    except OSError as e:
        code, stderr = None, str(e)

    if code != 0:
        notifier.error(f"esbuild build failed ({entry}):\n{stderr.strip()}")
        return BuildResult(success=False, error=stderr.strip())

    notifier.info(f"JS generated: {outfile}")
    return BuildResult(success=True, files=[str(outfile)])


async def _run_pxpros(
    action: str,
    file: str | Path,
    label: str,
    command: Sequence[str],
    notifier: ChokibasicNotifier | None,
) -> BuildResult:
    notifier = notifier or LoggingNotifier()
    argv = [_resolve_executable(command[0]), *command[1:], action, str(file)]

    try:
        code, stdout, stderr = await run_tool(argv)
    except OSError as e:
        code, stdout, stderr = None, "", str(e)

    if code != 0:
        reason = stderr.strip() or stdout.strip() or f"exit code {code}"
        notifier.error(f"pxpros {action} failed ({file}):\n{reason}")
        return BuildResult(success=False, error=reason)

    files = [line.strip() for line in stdout.splitlines() if line.strip()]
    for produced in files:
        notifier.info(f"{label} generated: {produced}")
    return BuildResult(success=True, files=files)


async def build_template(
    file: str | Path,
    command: Sequence[str] = PXPROS_COMMAND,
    notifier: ChokibasicNotifier | None = None,
) -> BuildResult:
    """Render a template to HTML: runs ``<command> render FILE`` (see PXPROS_COMMAND)."""
    return await _run_pxpros("render", file, "HTML", command, notifier)


async def build_sitemap(
    file: str | Path,
    command: Sequence[str] = PXPROS_COMMAND,
    notifier: ChokibasicNotifier | None = None,
) -> BuildResult:
    """Generate an XML sitemap: runs ``<command> sitemap FILE`` (see PXPROS_COMMAND)."""
    return await _run_pxpros("sitemap", file, "XML Sitemap", command, notifier)

