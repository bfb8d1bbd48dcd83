from __future__ import annotations

from lsprotocol.types import SemanticTokens, SemanticTokensLegend

from tintscope.semantic import (
    SemanticSpan,
    decode_semantic_tokens,
    lookup_token_modifiers,
    lookup_token_type,
    standard_fallback_scopes,
    utf16_to_codepoint,
)


def _legend() -> SemanticTokensLegend:
    return SemanticTokensLegend(
        token_types=["variable", "function"],
        token_modifiers=["declaration", "readonly"],
    )


def test_decode_relative_encoding() -> None:
    spans = decode_semantic_tokens(
        SemanticTokens(data=[0, 9, 5, 1, 0, 1, 4, 4, 0, 1]), _legend()
    )
    assert spans == {
        0: [SemanticSpan(line=0, start=9, end=14, token_type="function", modifiers=())],
        1: [
            SemanticSpan(
                line=1, start=4, end=8, token_type="variable", modifiers=("declaration",)
            )
        ],
    }


def test_decode_same_line_starts_are_cumulative() -> None:
    spans = decode_semantic_tokens(
        SemanticTokens(data=[2, 3, 2, 0, 0, 0, 5, 1, 1, 3, 0, 2, 1, 0, 0]), _legend()
    )
    assert [(span.start, span.end) for span in spans[2]] == [(3, 5), (8, 9), (10, 11)]
    assert spans[2][1].modifiers == ("declaration", "readonly")


def test_decode_empty_and_missing_tokens() -> None:
    assert decode_semantic_tokens(None, _legend()) == {}
    assert decode_semantic_tokens(SemanticTokens(data=[]), _legend()) == {}
    # A trailing partial tuple is ignored.
    spans = decode_semantic_tokens(SemanticTokens(data=[0, 1, 1, 0, 0, 0, 2]), _legend())
    assert list(spans) == [0]
    assert len(spans[0]) == 1


def test_lookup_type_falls_back_to_standard_order() -> None:
    assert lookup_token_type(1, _legend()) == "function"
    assert lookup_token_type(7, _legend()) == "parameter"
    assert lookup_token_type(3, None) == "enum"
    assert lookup_token_type(500, None) == "unknown"


def test_lookup_modifiers_bitmask() -> None:
    assert lookup_token_modifiers(0b11, _legend()) == ("declaration", "readonly")
    assert lookup_token_modifiers(0b10, _legend()) == ("readonly",)
    assert lookup_token_modifiers(0b1, None) == ()


def test_utf16_offsets_map_to_codepoints() -> None:
    text = "a\U0001F600b"
    assert utf16_to_codepoint(text, 0) == 0
    assert utf16_to_codepoint(text, 1) == 1
    assert utf16_to_codepoint(text, 3) == 2
    assert utf16_to_codepoint(text, 4) == 3


def test_decode_converts_utf16_columns_when_lines_given() -> None:
    lines = ["x = '\U0001F600' + value"]
    # `value` starts at UTF-16 column 11, string index 10.
    spans = decode_semantic_tokens(
        SemanticTokens(data=[0, 11, 5, 0, 0]), _legend(), lines=lines
    )
    assert (spans[0][0].start, spans[0][0].end) == (10, 15)
    assert lines[0][10:15] == "value"


def test_standard_fallback_suffix_order() -> None:
    assert standard_fallback_scopes("variable", ("defaultLibrary", "readonly")) == (
        "support.constant",
    )
    assert standard_fallback_scopes("variable", ("readonly",)) == ("variable.other.constant",)
    assert standard_fallback_scopes("function", ("defaultLibrary",)) == ("support.function",)
    assert standard_fallback_scopes("function", ("async",)) == (
        "entity.name.function",
        "support.function",
    )
    assert standard_fallback_scopes("class", ("readonly", "defaultLibrary")) == ("support.class",)
    assert standard_fallback_scopes("label", ()) is None
