"""tintscope package root."""

from tintscope.exceptions import (
    ConfigError,
    GrammarLoadError,
    ThemeLoadError,
    TintscopeError,
)

__all__ = [
    "__version__",
    "ConfigError",
    "GrammarLoadError",
    "ThemeLoadError",
    "TintscopeError",
]

__version__ = "0.1.0"
