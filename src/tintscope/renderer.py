from __future__ import annotations

from collections import defaultdict
from html import escape
from pathlib import Path
from typing import Sequence

from tintscope.runtime.json_io import write_json_pretty
from tintscope.schema import StyledRangeDTO

_PAGE_STYLE = """
body { background: #1e1e1e; color: #d4d4d4; font-family: sans-serif; margin: 0; }
h1 { font-size: 14px; font-weight: normal; padding: 8px 12px; margin: 0; background: #252526; }
pre { font-family: Menlo, Consolas, monospace; font-size: 13px; line-height: 1.4; margin: 0; padding: 12px; }
pre span:hover { outline: 1px solid #555; }
.columns { display: flex; }
.columns > div { flex: 1; min-width: 0; overflow-x: auto; border-right: 1px solid #333; }
.diff-line { background: rgba(255, 80, 80, 0.12); display: inline-block; min-width: 100%; }
.diff-changed { outline: 1px solid #f14c4c; }
"""


def _css_style(dto: StyledRangeDTO) -> str:
    parts = [f"color: {dto.foreground or 'inherit'};"]
    font_style = dto.font_style or ""
    if "italic" in font_style:
        parts.append("font-style: italic;")
    if "bold" in font_style:
        parts.append("font-weight: bold;")
    if "underline" in font_style:
        parts.append("text-decoration: underline;")
    return " ".join(parts)


def _tooltip(dto: StyledRangeDTO) -> str:
    lines = [f"{dto.source} {dto.foreground}"]
    for index, scope in enumerate(dto.scopes):
        marker = "*" if index == dto.active_scope_index else " "
        color = dto.scope_colors[index] if index < len(dto.scope_colors) else ""
        lines.append(f"{marker} {scope} {color}".rstrip())
    return "\n".join(lines)


def _attr(value: str) -> str:
    # Keep multi-line tooltips on one line of markup.
    return escape(value, quote=True).replace("\n", "&#10;")


def _span(dto: StyledRangeDTO, extra_class: str = "") -> str:
    attrs = {
        "class": extra_class,
        "style": _css_style(dto),
        "title": _tooltip(dto),
        "data-line": str(dto.start_line),
        "data-start": str(dto.start_char),
        "data-end": str(dto.end_char),
        "data-source": dto.source,
        "data-scopes": ", ".join(dto.scopes),
        "data-foreground": dto.foreground,
        "data-scope-colors": ",".join(dto.scope_colors),
        "data-active-index": str(dto.active_scope_index),
    }
    rendered = " ".join(
        f'{name}="{_attr(value)}"' for name, value in attrs.items() if value
    )
    return f"<span {rendered}>{escape(dto.text)}</span>"


def _by_line(ranges: Sequence[StyledRangeDTO]) -> dict[int, list[StyledRangeDTO]]:
    grouped: dict[int, list[StyledRangeDTO]] = defaultdict(list)
    for dto in ranges:
        grouped[dto.start_line].append(dto)
    return grouped


def _line_count(ranges: Sequence[StyledRangeDTO]) -> int:
    return ranges[-1].end_line + 1 if ranges else 0


def _page(title: str, body: str) -> str:
    return (
        "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"utf-8\">\n"
        f"<title>{escape(title)}</title>\n<style>{_PAGE_STYLE}</style>\n</head>\n"
        f"<body>\n{body}\n</body>\n</html>\n"
    )


def save_json(ranges: Sequence[StyledRangeDTO], path: Path) -> None:
    write_json_pretty(path, [dto.to_json() for dto in ranges])


def render_html_text(ranges: Sequence[StyledRangeDTO], theme_name: str = "Visualized") -> str:
    by_line = _by_line(ranges)
    lines = []
    for line_no in range(_line_count(ranges)):
        lines.append("".join(_span(dto) for dto in by_line.get(line_no, ())))
    body = f"<h1>{escape(theme_name)}</h1>\n<pre>{chr(10).join(lines)}</pre>"
    return _page(theme_name, body)


def render_html(ranges: Sequence[StyledRangeDTO], path: Path, theme_name: str = "Visualized") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_html_text(ranges, theme_name), encoding="utf-8")


def _visually_equal(left: StyledRangeDTO | None, right: StyledRangeDTO | None) -> bool:
    if left is None or right is None:
        return left is right
    return left.foreground == right.foreground and left.font_style == right.font_style


def _range_at(ranges: Sequence[StyledRangeDTO], char: int) -> StyledRangeDTO | None:
    for dto in ranges:
        if dto.start_char <= char < dto.end_char:
            return dto
    return None


def _render_side(
    ranges: Sequence[StyledRangeDTO], others: Sequence[StyledRangeDTO], line_count: int
) -> str:
    by_line = _by_line(ranges)
    other_by_line = _by_line(others)
    out = []
    for line_no in range(line_count):
        other_line = other_by_line.get(line_no, [])
        spans = []
        line_differs = False
        last_char = 0
        for dto in by_line.get(line_no, ()):
            if dto.start_char > last_char:
                spans.append(" " * (dto.start_char - last_char))
            changed = any(
                not _visually_equal(dto, _range_at(other_line, char))
                for char in range(dto.start_char, dto.end_char)
            )
            line_differs = line_differs or changed
            spans.append(_span(dto, "diff-changed" if changed else ""))
            last_char = dto.end_char
        rendered = "".join(spans)
        out.append(f'<span class="diff-line">{rendered}</span>' if line_differs else rendered)
    return "\n".join(out)


def render_diff_html_text(
    left: Sequence[StyledRangeDTO],
    right: Sequence[StyledRangeDTO],
    left_name: str = "Snapshot",
    right_name: str = "Generated",
) -> str:
    """Side-by-side view; ranges whose color or font style differ are outlined."""
    line_count = max(_line_count(left), _line_count(right))
    body = (
        '<div class="columns">\n'
        f"<div><h1>{escape(left_name)}</h1><pre>{_render_side(left, right, line_count)}</pre></div>\n"
        f"<div><h1>{escape(right_name)}</h1><pre>{_render_side(right, left, line_count)}</pre></div>\n"
        "</div>"
    )
    return _page(f"{left_name} vs {right_name}", body)


def render_diff_html(
    left: Sequence[StyledRangeDTO],
    right: Sequence[StyledRangeDTO],
    path: Path,
    left_name: str = "Snapshot",
    right_name: str = "Generated",
) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(render_diff_html_text(left, right, left_name, right_name), encoding="utf-8")
