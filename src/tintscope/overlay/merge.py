from __future__ import annotations

import re
from collections import defaultdict
from typing import Iterable, Mapping, Sequence

from lsprotocol.types import SemanticTokens, SemanticTokensLegend

from tintscope.overlay.brackets import apply_bracket_colors
from tintscope.overlay.model import LexicalToken, StyledRange
from tintscope.overlay.resolve import (
    ResolvedStyle,
    SemanticClassification,
    StyleResolver,
)
from tintscope.semantic import SemanticSpan, decode_semantic_tokens
from tintscope.theme import Theme

LINE_BREAK = re.compile(r"\r\n|\r|\n")

EMPTY_LINE_STYLE = ResolvedStyle(
    foreground="",
    font_style=None,
    source="textmate",
    trace=(),
    active_index=-1,
)


def split_lines(content: str) -> list[str]:
    return LINE_BREAK.split(content)


def _group_by_line(tokens: Iterable[LexicalToken]) -> dict[int, list[LexicalToken]]:
    grouped: dict[int, list[LexicalToken]] = defaultdict(list)
    for token in tokens:
        grouped[token.line].append(token)
    return grouped


class TokenMerger:
    """Overlay semantic tokens on lexical tokens and emit styled ranges."""

    def __init__(self, theme: Theme) -> None:
        self.theme = theme
        self.resolver = StyleResolver(theme)
        self._cache: dict[
            tuple[tuple[str, ...], SemanticClassification | None], ResolvedStyle
        ] = {}

    def resolve(
        self,
        scopes: tuple[str, ...],
        semantic: SemanticClassification | None,
    ) -> ResolvedStyle:
        key = (scopes, semantic)
        style = self._cache.get(key)
        if style is None:
            style = self._cache[key] = self.resolver.resolve(scopes, semantic)
        return style

    def merge(
        self,
        content: str,
        lexical_tokens: Sequence[LexicalToken],
        semantic_tokens: SemanticTokens | None = None,
        legend: SemanticTokensLegend | None = None,
        *,
        utf16_offsets: bool = False,
    ) -> list[StyledRange]:
        # Resolved styles are kept for one document at a time.
        self._cache.clear()
        lines = split_lines(content)
        semantic_spans = decode_semantic_tokens(
            semantic_tokens, legend, lines=lines if utf16_offsets else None
        )
        return apply_bracket_colors(
            self.emit(lines, lexical_tokens, semantic_spans),
            self.theme.bracket_colors(),
        )

    def emit(
        self,
        lines: Sequence[str],
        lexical_tokens: Iterable[LexicalToken],
        semantic_spans: Mapping[int, Sequence[SemanticSpan]],
    ) -> list[StyledRange]:
        lexical_by_line = _group_by_line(lexical_tokens)
        output: list[StyledRange] = []
        for line_no, text in enumerate(lines):
            output.extend(
                self.emit_line(
                    line_no,
                    text,
                    lexical_by_line.get(line_no, ()),
                    semantic_spans.get(line_no, ()),
                )
            )
        return output

    def emit_line(
        self,
        line_no: int,
        text: str,
        lexical_tokens: Sequence[LexicalToken],
        semantic_spans: Sequence[SemanticSpan],
    ) -> list[StyledRange]:
        length = len(text)
        if length == 0:
            return [StyledRange(line_no, 0, line_no, 0, "", EMPTY_LINE_STYLE)]

        scope_buf: list[tuple[str, ...]] = [()] * length
        semantic_buf: list[SemanticClassification | None] = [None] * length
        for token in lexical_tokens:
            for index in range(max(token.start, 0), min(token.end, length)):
                scope_buf[index] = token.scopes
        for span in semantic_spans:
            classification = SemanticClassification(span.token_type, span.modifiers)
            for index in range(max(span.start, 0), min(span.end, length)):
                semantic_buf[index] = classification

        ranges: list[StyledRange] = []
        run_start = 0
        run_style = self.resolve(scope_buf[0], semantic_buf[0])
        for index in range(1, length):
            style = self.resolve(scope_buf[index], semantic_buf[index])
            if style == run_style:
                continue
            ranges.append(
                StyledRange(line_no, run_start, line_no, index, text[run_start:index], run_style)
            )
            run_start = index
            run_style = style
        ranges.append(
            StyledRange(line_no, run_start, line_no, length, text[run_start:], run_style)
        )
        return ranges
