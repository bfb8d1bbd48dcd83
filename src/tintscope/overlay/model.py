from __future__ import annotations

from dataclasses import dataclass

from tintscope.overlay.resolve import ResolvedStyle


@dataclass(frozen=True)
class LexicalToken:
    """One tokenizer region: `[start, end)` on `line` with its scope stack."""

    line: int
    start: int
    end: int
    scopes: tuple[str, ...]


@dataclass(frozen=True)
class StyledRange:
    start_line: int
    start_char: int
    end_line: int
    end_char: int
    text: str
    style: ResolvedStyle
