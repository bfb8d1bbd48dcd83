"""Merge lexical and semantic tokens into styled ranges."""

from tintscope.overlay.brackets import apply_bracket_colors, is_bracket_safe
from tintscope.overlay.merge import TokenMerger, split_lines
from tintscope.overlay.model import LexicalToken, StyledRange
from tintscope.overlay.resolve import (
    ResolvedStyle,
    SemanticClassification,
    StyleResolver,
)

__all__ = [
    "LexicalToken",
    "ResolvedStyle",
    "SemanticClassification",
    "StyleResolver",
    "StyledRange",
    "TokenMerger",
    "apply_bracket_colors",
    "is_bracket_safe",
    "split_lines",
]
