"""Exceptions raised by chokibasic."""


class ChokibasicError(Exception):
    """Base exception for all chokibasic errors."""


class ConfigError(ChokibasicError):
    """Invalid configuration (options, config file or rule shape)."""


class RuleConfigError(ConfigError):
    """A watch rule is malformed, e.g. it has no callable callback."""


class ExportError(ChokibasicError):
    """Exporting a source tree to a distribution tree failed."""
