"""Explanation trace entries.

A resolved style carries the ordered list of things that were considered when
its color was chosen, plus the index of the entry that actually produced it.
Entries are small frozen dataclasses; `label()` is their serialized form.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TypeAlias, Union

SEPARATOR_LABEL = "__TM_SCOPES__"
BRACKET_LABEL = "bracket-pair-colorization"
LEXICAL_FALLBACK_LABEL = "(fallback to TextMate color)"


@dataclass(frozen=True)
class ScopeEntry:
    name: str

    def label(self) -> str:
        return self.name


@dataclass(frozen=True)
class SemanticTypeEntry:
    token_type: str

    def label(self) -> str:
        return self.token_type


@dataclass(frozen=True)
class ModifiersEntry:
    modifiers: tuple[str, ...]

    def label(self) -> str:
        return f"modifiers: {','.join(self.modifiers)}"


@dataclass(frozen=True)
class FallbackHint:
    # Empty means the lexical scope stack decided.
    scopes: tuple[str, ...] = ()

    def label(self) -> str:
        if not self.scopes:
            return LEXICAL_FALLBACK_LABEL
        return f"(fallback to standard scope: {', '.join(self.scopes)})"


@dataclass(frozen=True)
class Separator:
    def label(self) -> str:
        return SEPARATOR_LABEL


@dataclass(frozen=True)
class BracketEntry:
    def label(self) -> str:
        return BRACKET_LABEL


TraceEntry: TypeAlias = Union[
    ScopeEntry,
    SemanticTypeEntry,
    ModifiersEntry,
    FallbackHint,
    Separator,
    BracketEntry,
]


def trace_labels(trace: tuple[TraceEntry, ...]) -> list[str]:
    return [entry.label() for entry in trace]
