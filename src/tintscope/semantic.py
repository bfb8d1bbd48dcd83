from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Sequence

from lsprotocol.types import SemanticTokens, SemanticTokensLegend

# Standard LSP token types in protocol order; used when the server did not
# provide a legend entry for an index.
DEFAULT_TOKEN_TYPES: tuple[str, ...] = (
    "namespace",
    "type",
    "class",
    "enum",
    "interface",
    "struct",
    "typeParameter",
    "parameter",
    "variable",
    "property",
    "enumMember",
    "event",
    "function",
    "method",
    "macro",
    "keyword",
    "modifier",
    "comment",
    "string",
    "number",
    "regexp",
    "operator",
    "decorator",
)

# Default mapping from semantic token types to TextMate scopes, applied when a
# theme has no explicit semanticTokenColors rule. Mirrors the editor's token
# classification registry.
STANDARD_TOKEN_MAP: dict[str, tuple[str, ...]] = {
    "comment": ("comment",),
    "string": ("string",),
    "keyword": ("keyword.control",),
    "number": ("constant.numeric",),
    "regexp": ("constant.regexp",),
    "operator": ("keyword.operator",),
    "namespace": ("entity.name.namespace",),
    "type": ("entity.name.type", "support.type"),
    "type.defaultLibrary": ("support.type",),
    "struct": ("entity.name.type.struct",),
    "class": ("entity.name.type.class", "support.class"),
    "class.defaultLibrary": ("support.class",),
    "interface": ("entity.name.type.interface",),
    "enum": ("entity.name.type.enum",),
    "typeParameter": ("entity.name.type.parameter",),
    "function": ("entity.name.function", "support.function"),
    "function.defaultLibrary": ("support.function",),
    "member.defaultLibrary": ("support.function",),
    "method": ("entity.name.function.member", "support.function"),
    "macro": ("entity.name.function.preprocessor",),
    "variable": ("variable.other.readwrite", "entity.name.variable"),
    "variable.readonly": ("variable.other.constant",),
    "variable.defaultLibrary.readonly": ("support.constant",),
    "parameter": ("variable.parameter",),
    "property": ("variable.other.property",),
    "property.readonly": ("variable.other.constant.property",),
    "property.defaultLibrary.readonly": ("support.constant.property",),
    "enumMember": ("variable.other.enummember",),
    "event": ("variable.other.event",),
    "decorator": ("entity.name.decorator", "entity.name.function"),
    # Not in the registry; attribute-like modifiers (e.g. `@Lazy`) render
    # with the keyword.control color in practice.
    "modifier": ("keyword.control",),
}


@dataclass(frozen=True)
class SemanticSpan:
    line: int
    start: int
    end: int
    token_type: str
    modifiers: tuple[str, ...]


def lookup_token_type(index: int, legend: SemanticTokensLegend | None) -> str:
    if legend is not None and 0 <= index < len(legend.token_types):
        name = legend.token_types[index]
        if name:
            return name
    if 0 <= index < len(DEFAULT_TOKEN_TYPES):
        return DEFAULT_TOKEN_TYPES[index]
    return "unknown"


def lookup_token_modifiers(
    bitmask: int, legend: SemanticTokensLegend | None
) -> tuple[str, ...]:
    if legend is None:
        return ()
    return tuple(
        name
        for bit, name in enumerate(legend.token_modifiers)
        if bitmask & (1 << bit)
    )


def utf16_to_codepoint(text: str, offset: int) -> int:
    """Convert a UTF-16 code unit offset within `text` to a str index."""
    units = 0
    for index, char in enumerate(text):
        if units >= offset:
            return index
        units += 2 if ord(char) > 0xFFFF else 1
    return len(text) + max(0, offset - units)


def decode_semantic_tokens(
    tokens: SemanticTokens | None,
    legend: SemanticTokensLegend | None,
    *,
    lines: Sequence[str] | None = None,
) -> dict[int, list[SemanticSpan]]:
    """Decode the relative 5-tuple encoding into spans grouped by line.

    When `lines` is given, offsets are treated as UTF-16 code units and mapped
    to string indices for lines that contain astral characters.
    """
    spans: dict[int, list[SemanticSpan]] = defaultdict(list)
    if tokens is None or not tokens.data:
        return dict(spans)
    data = tokens.data
    line = 0
    char = 0
    for offset in range(0, len(data) - len(data) % 5, 5):
        delta_line, delta_start, length, type_index, modifier_bits = data[offset : offset + 5]
        if delta_line > 0:
            line += delta_line
            char = delta_start
        else:
            char += delta_start
        start, end = char, char + length
        if lines is not None and line < len(lines) and not lines[line].isascii():
            text = lines[line]
            start, end = utf16_to_codepoint(text, start), utf16_to_codepoint(text, end)
        spans[line].append(
            SemanticSpan(
                line=line,
                start=start,
                end=end,
                token_type=lookup_token_type(type_index, legend),
                modifiers=lookup_token_modifiers(modifier_bits, legend),
            )
        )
    return dict(spans)


def standard_fallback_scopes(
    token_type: str, modifiers: Sequence[str]
) -> tuple[str, ...] | None:
    default_library = ".defaultLibrary" if "defaultLibrary" in modifiers else ""
    readonly = ".readonly" if "readonly" in modifiers else ""
    for key in (
        token_type + default_library + readonly,
        token_type + readonly,
        token_type + default_library,
        token_type,
    ):
        scopes = STANDARD_TOKEN_MAP.get(key)
        if scopes:
            return scopes
    return None
