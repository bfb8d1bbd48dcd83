from __future__ import annotations

import re
from dataclasses import replace
from typing import Sequence

from tintscope.overlay.model import StyledRange
from tintscope.overlay.trace import BracketEntry

_BRACKET = re.compile(r"[()\[\]{}]")
_OPENERS = {")": "(", "]": "[", "}": "{"}


def is_bracket_safe(labels: Sequence[str]) -> bool:
    """Whether brackets in a range with these trace labels get depth colors.

    Comments and regular expressions never do. Strings only do inside an
    embedded or interpolated section.
    """
    if any("comment" in label or "regex" in label for label in labels):
        return False
    if not any("string" in label for label in labels):
        return True
    return any(
        "embedded" in label
        or "interpolation" in label
        or "punctuation.section.embedded" in label
        for label in labels
    )


def _slice(rng: StyledRange, start: int, end: int) -> StyledRange:
    return replace(
        rng,
        start_char=rng.start_char + start,
        end_char=rng.start_char + end,
        text=rng.text[start:end],
    )


def apply_bracket_colors(
    ranges: Sequence[StyledRange],
    palette: Sequence[str],
    stack: list[str] | None = None,
) -> list[StyledRange]:
    """Split ranges on brackets and color each bracket by nesting depth.

    `stack` holds the pending opening brackets and is shared across every line
    of the document, so multi-line constructs nest correctly.
    """
    stack = [] if stack is None else stack
    output: list[StyledRange] = []
    for rng in ranges:
        if not rng.text or not is_bracket_safe([entry.label() for entry in rng.style.trace]):
            output.append(rng)
            continue
        matches = list(_BRACKET.finditer(rng.text))
        if not matches:
            output.append(rng)
            continue

        last = 0
        for match in matches:
            index = match.start()
            char = match.group()
            if index > last:
                output.append(_slice(rng, last, index))

            color = rng.style.foreground
            if char in "([{":
                color = palette[len(stack) % len(palette)]
                stack.append(char)
            elif stack and stack[-1] == _OPENERS[char]:
                stack.pop()
                color = palette[len(stack) % len(palette)]

            style = rng.style
            bracket_style = replace(
                style,
                foreground=color,
                trace=(*style.trace, BracketEntry()),
                active_index=len(style.trace),
                scope_colors=(*style.scope_colors, color),
            )
            output.append(replace(_slice(rng, index, index + 1), style=bracket_style))
            last = index + 1

        if last < len(rng.text):
            output.append(_slice(rng, last, len(rng.text)))
    return output
