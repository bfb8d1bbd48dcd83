from __future__ import annotations

from tintscope.overlay.brackets import apply_bracket_colors, is_bracket_safe
from tintscope.overlay.merge import TokenMerger
from tintscope.overlay.model import LexicalToken, StyledRange
from tintscope.overlay.resolve import ResolvedStyle
from tintscope.overlay.trace import BracketEntry, ScopeEntry, trace_labels
from tintscope.theme import BRACKET_COLORS

PALETTE = ("g", "o", "b")


def _style(*scopes: str, foreground: str = "#FFFFFF") -> ResolvedStyle:
    return ResolvedStyle(
        foreground=foreground,
        font_style=None,
        source="textmate",
        trace=tuple(ScopeEntry(scope) for scope in scopes),
        active_index=len(scopes) - 1,
        scope_colors=tuple(foreground for _ in scopes),
    )


def _range(line: int, start: int, text: str, style: ResolvedStyle) -> StyledRange:
    return StyledRange(line, start, line, start + len(text), text, style)


def test_depth_colors_for_nested_openers() -> None:
    ranges = apply_bracket_colors([_range(0, 0, "(()", _style("source.x"))], PALETTE)
    assert [(rng.text, rng.style.foreground) for rng in ranges] == [
        ("(", "g"),
        ("(", "o"),
        (")", "o"),
    ]


def test_bracket_entry_is_active() -> None:
    base = _style("source.x", "meta.block.x")
    ranges = apply_bracket_colors([_range(0, 0, "a{b", base)], PALETTE)
    assert [rng.text for rng in ranges] == ["a", "{", "b"]
    bracket = ranges[1].style
    assert bracket.trace == (*base.trace, BracketEntry())
    assert trace_labels(bracket.trace)[-1] == "bracket-pair-colorization"
    assert bracket.active_index == len(base.trace)
    assert bracket.scope_colors[-1] == "g"
    assert ranges[0].style == base
    assert ranges[2].style == base
    assert (ranges[1].start_char, ranges[1].end_char) == (1, 2)
    assert (ranges[2].start_char, ranges[2].end_char) == (2, 3)


def test_comment_and_regex_ranges_untouched() -> None:
    comment = _range(0, 0, "// (x)", _style("source.x", "comment.line.x"))
    regex = _range(1, 0, "/[a]/", _style("source.x", "string.regexp.x"))
    assert apply_bracket_colors([comment, regex], PALETTE) == [comment, regex]


def test_strings_only_colored_when_embedded() -> None:
    plain = _range(0, 0, '"(a)"', _style("source.x", "string.quoted.x"))
    embedded = _range(
        1, 0, "${f(x)}", _style("source.x", "string.template.x", "meta.embedded.line.x")
    )
    ranges = apply_bracket_colors([plain, embedded], PALETTE)
    assert ranges[0] == plain
    assert [rng.text for rng in ranges[1:]] == ["$", "{", "f", "(", "x", ")", "}"]
    assert [rng.style.foreground for rng in ranges[1:] if rng.text in "{()}"] == [
        "g",
        "o",
        "o",
        "g",
    ]


def test_is_bracket_safe_rules() -> None:
    assert is_bracket_safe(["source.x"])
    assert not is_bracket_safe(["source.x", "comment.block"])
    assert not is_bracket_safe(["string.regexp"])
    assert not is_bracket_safe(["string.quoted"])
    assert is_bracket_safe(["string.interpolated", "meta.interpolation"])
    assert is_bracket_safe(["string.quoted", "punctuation.section.embedded.begin"])


def test_mismatched_closer_keeps_color_and_stack() -> None:
    style = _style("source.x", foreground="#ABCDEF")
    ranges = apply_bracket_colors([_range(0, 0, "(]", style), _range(0, 2, ")", style)], PALETTE)
    assert [(rng.text, rng.style.foreground) for rng in ranges] == [
        ("(", "g"),
        ("]", "#ABCDEF"),
        (")", "g"),
    ]
    assert trace_labels(ranges[1].style.trace)[-1] == "bracket-pair-colorization"


def test_closer_on_empty_stack_keeps_color() -> None:
    stack: list[str] = []
    ranges = apply_bracket_colors([_range(0, 0, "}", _style("source.x"))], PALETTE, stack)
    assert ranges[0].style.foreground == "#FFFFFF"
    assert stack == []


def test_stack_is_shared_across_lines() -> None:
    style = _style("source.x")
    ranges = apply_bracket_colors(
        [
            _range(0, 0, "{", style),
            _range(1, 0, "[", style),
            _range(2, 0, "]", style),
            _range(3, 0, "}", style),
        ],
        PALETTE,
    )
    assert [rng.style.foreground for rng in ranges] == ["g", "o", "o", "g"]


def test_depth_wraps_around_palette() -> None:
    ranges = apply_bracket_colors([_range(0, 0, "((((", _style("source.x"))], PALETTE)
    assert [rng.style.foreground for rng in ranges] == ["g", "o", "b", "g"]


def test_merge_applies_default_palette(merger: TokenMerger) -> None:
    content = "f(a,\n  b)"
    tokens = [
        LexicalToken(0, 0, 4, ("source.x",)),
        LexicalToken(1, 0, 4, ("source.x",)),
    ]
    ranges = merger.merge(content, tokens)
    brackets = [rng for rng in ranges if rng.text in "()"]
    assert [rng.style.foreground for rng in brackets] == [BRACKET_COLORS[0], BRACKET_COLORS[0]]
    assert [rng.start_line for rng in brackets] == [0, 1]
