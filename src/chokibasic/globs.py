"""Glob compilation: base directory extraction and glob -> regex translation.

Supported grammar:

* ``*``   any run of characters except ``/``
* ``?``   exactly one character except ``/``
* ``**/`` zero or more complete path segments
* ``**``  (not followed by ``/``) any remaining suffix, separators included

Everything else is literal. Paths are matched in POSIX form regardless of
the host separator.
"""

import re
from typing import Callable

# Characters that end the literal prefix of a glob.
_WILDCARDS = re.compile(r"[*?\[]")


def to_posix(path: str) -> str:
    """Normalize a path to forward-slash form."""
    return str(path).replace("\\", "/")


def normalize_patterns(patterns: str | list[str] | tuple[str, ...]) -> list[str]:
    """Return ``patterns`` as a list, wrapping a single pattern."""
    if isinstance(patterns, str):
        return [patterns]
    return list(patterns)


def glob_base_dir(glob: str) -> str:
    """Return the literal directory prefix of a glob.

    Args:
        glob: Glob pattern (any separator style)

    Returns:
        The part before the first wildcard with trailing slashes removed,
        ``"."`` if that is empty, or the whole pattern if it has no wildcard.
    """
    g = to_posix(glob)
    match = _WILDCARDS.search(g)
    if match is None:
        return g
    return g[: match.start()].rstrip("/") or "."


def glob_to_regex(glob: str) -> re.Pattern:
    """Translate a glob into an anchored regular expression.

    Args:
        glob: Glob pattern (any separator style)

    Returns:
        Compiled pattern matching whole POSIX relative paths.
    """
    g = to_posix(glob)
    out = ["^"]
    i = 0
    n = len(g)
    while i < n:
        c = g[i]
        if c == "*" and i + 1 < n and g[i + 1] == "*":
            if i + 2 < n and g[i + 2] == "/":
                out.append("(?:.*/)?")
                i += 3
            else:
                out.append(".*")
                i += 2
            continue
        if c == "*":
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        else:
            out.append(re.escape(c))
        i += 1
    out.append("$")
    return re.compile("".join(out))


def compile_pattern(glob: str) -> tuple[str, Callable[[str], bool]]:
    """Compile a glob into its base directory and a path matcher.

    Example:
        >>> base, match = compile_pattern("src/styles/**/*.scss")
        >>> base
        'src/styles'
        >>> match("src/styles/a/b.scss"), match("src/styles.scss")
        (True, False)
    """
    regex = glob_to_regex(glob)

    def matcher(path: str) -> bool:
        return regex.match(to_posix(path)) is not None

    return glob_base_dir(glob), matcher
