"""Exception hierarchy for tintscope."""

from __future__ import annotations


class TintscopeError(RuntimeError):
    """Base class for errors that abort a tintscope run."""


class ConfigError(TintscopeError):
    """The run configuration is missing, unparseable or invalid."""


class ThemeLoadError(TintscopeError):
    """A theme file (or one of the themes it includes) could not be loaded."""

    def __init__(self, message: str, *, path: str | None = None):
        super().__init__(message)
        self.path = path


class GrammarLoadError(TintscopeError):
    """A TextMate grammar could not be read or compiled."""

    def __init__(self, message: str, *, scope_name: str | None = None):
        super().__init__(message)
        self.scope_name = scope_name
