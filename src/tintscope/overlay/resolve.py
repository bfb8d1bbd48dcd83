from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Sequence

from tintscope.overlay.trace import (
    FallbackHint,
    ModifiersEntry,
    ScopeEntry,
    SemanticTypeEntry,
    Separator,
    TraceEntry,
)
from tintscope.semantic import standard_fallback_scopes
from tintscope.theme import DEFAULT_FOREGROUND, Theme, ThemeStyle

Source = Literal["textmate", "semantic"]


@dataclass(frozen=True)
class SemanticClassification:
    token_type: str
    modifiers: tuple[str, ...] = ()


@dataclass(frozen=True)
class ResolvedStyle:
    foreground: str
    font_style: str | None
    source: Source
    trace: tuple[TraceEntry, ...]
    active_index: int
    # Informational per-entry colors; derived from the trace, never compared.
    scope_colors: tuple[str, ...] = field(default=(), compare=False)


def correct_classification(
    semantic: SemanticClassification, scopes: Sequence[str]
) -> SemanticClassification:
    # Some servers report attributes such as `@Test` as macros; editors show
    # them as modifiers.
    if semantic.token_type == "macro" and any("attribute" in scope for scope in scopes):
        return SemanticClassification("modifier", semantic.modifiers)
    return semantic


class StyleResolver:
    """Resolve one character's scope stack and semantic token to a style."""

    def __init__(self, theme: Theme) -> None:
        self.theme = theme

    def resolve(
        self,
        scopes: Sequence[str],
        semantic: SemanticClassification | None = None,
    ) -> ResolvedStyle:
        scopes = tuple(scopes)
        lexical = self.theme.match(scopes)
        if semantic is None:
            return ResolvedStyle(
                foreground=lexical.style.foreground or DEFAULT_FOREGROUND,
                font_style=lexical.style.font_style,
                source="textmate",
                trace=tuple(ScopeEntry(scope) for scope in scopes),
                active_index=lexical.matched_index,
                scope_colors=tuple(self.theme.scope_color(scope) for scope in scopes),
            )

        semantic = correct_classification(semantic, scopes)
        trace: list[TraceEntry] = [SemanticTypeEntry(semantic.token_type)]
        if semantic.modifiers:
            trace.append(ModifiersEntry(semantic.modifiers))

        style: ThemeStyle
        explicit = self.theme.resolve_semantic(semantic.token_type, semantic.modifiers)
        fallback_scopes = (
            None
            if explicit is not None
            else standard_fallback_scopes(semantic.token_type, semantic.modifiers)
        )
        if explicit is not None:
            style = explicit
            active_index = 0
        elif fallback_scopes is not None:
            style = self.theme.match(fallback_scopes).style
            trace.append(FallbackHint(fallback_scopes))
            active_index = len(trace) - 1
        else:
            style = lexical.style
            trace.append(FallbackHint())
            active_index = -1

        trace.append(Separator())
        scope_start = len(trace)
        trace.extend(ScopeEntry(scope) for scope in scopes)
        if explicit is None and fallback_scopes is None and lexical.matched_index != -1:
            active_index = scope_start + lexical.matched_index

        return ResolvedStyle(
            foreground=style.foreground or DEFAULT_FOREGROUND,
            font_style=style.font_style,
            source="semantic",
            trace=tuple(trace),
            active_index=active_index,
            scope_colors=tuple(self._entry_color(entry) for entry in trace),
        )

    def _entry_color(self, entry: TraceEntry) -> str:
        if isinstance(entry, (ScopeEntry, SemanticTypeEntry)):
            return self.theme.scope_color(entry.label())
        if isinstance(entry, FallbackHint) and entry.scopes:
            return self.theme.match(entry.scopes).style.foreground or DEFAULT_FOREGROUND
        return ""
