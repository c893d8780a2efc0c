"""Ignore list compilation.

An ignore item is either a glob string, a precompiled ``re.Pattern`` or a
predicate taking a POSIX relative path. Each item is classified once and
turned into a plain ``Callable[[str], bool]``.
"""

import re
from dataclasses import dataclass
from typing import Callable, Iterable, Literal, Union

from chokibasic.exceptions import RuleConfigError
from chokibasic.globs import glob_to_regex

IgnoreMatcher = Union[str, re.Pattern, Callable[[str], bool]]
PathPredicate = Callable[[str], bool]

DEFAULT_GLOBAL_IGNORED: tuple[str, ...] = (
    "**/node_modules/**",
    "**/.git/**",
    "**/dist/**",
)


@dataclass(frozen=True)
class IgnoreItem:
    """An ignore matcher tagged with its kind."""

    kind: Literal["glob", "pattern", "predicate"]
    """How the source value is matched."""

    source: IgnoreMatcher
    """The value supplied by the caller."""

    @classmethod
    def classify(cls, item: IgnoreMatcher) -> "IgnoreItem":
        """Tag a raw ignore value.

        Raises:
            RuleConfigError: If the value is none of the supported kinds
        """
        if isinstance(item, str):
            return cls("glob", item)
        if isinstance(item, re.Pattern):
            return cls("pattern", item)
        if callable(item):
            return cls("predicate", item)
        raise RuleConfigError(
            f"Unsupported ignore matcher {item!r}: expected a glob string, a compiled pattern or a callable"
        )

    def to_predicate(self) -> PathPredicate:
        """Build the canonical predicate for this item."""
        if self.kind == "predicate":
            return self.source
        regex = glob_to_regex(self.source) if self.kind == "glob" else self.source
        return lambda path: regex.search(path) is not None


def compile_ignore_list(items: Iterable[IgnoreMatcher] | None) -> list[PathPredicate]:
    """Compile ignore items into predicates.

    Args:
        items: Glob strings, compiled patterns and/or predicates (None = empty)

    Returns:
        One predicate per input item, in input order.
    """
    return [IgnoreItem.classify(item).to_predicate() for item in items or ()]


def is_ignored(path: str, matchers: Iterable[PathPredicate]) -> bool:
    """Return True as soon as one matcher accepts ``path``."""
    return any(matcher(path) for matcher in matchers)
