from __future__ import annotations

import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))


import pytest

from tintscope.overlay.merge import TokenMerger
from tintscope.theme import Theme


@pytest.fixture
def write_theme(tmp_path: Path):
    def _write(name: str, payload: dict[str, object], *, text: str | None = None) -> Path:
        path = tmp_path / name
        path.write_text(text if text is not None else json.dumps(payload), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def dark_theme() -> Theme:
    return Theme.from_documents(
        [
            {
                "tokenColors": [
                    {"scope": "comment", "settings": {"foreground": "#6A9955"}},
                    {"scope": "string", "settings": {"foreground": "#CE9178"}},
                    {"scope": "keyword.control", "settings": {"foreground": "#C586C0"}},
                    {"scope": "variable", "settings": {"foreground": "#9CDCFE"}},
                    {
                        "scope": ["entity.name.function", "support.function"],
                        "settings": {"foreground": "#DCDCAA"},
                    },
                    {"scope": "variable.other.constant", "settings": {"foreground": "#4FC1FF"}},
                    {"scope": "punctuation.section.embedded", "settings": {"foreground": "#569CD6"}},
                ],
                "semanticTokenColors": {
                    "parameter": "#ABCDEF",
                    "property.readonly": {"foreground": "#112233", "italic": True},
                    "*.deprecated": {"foreground": "#FF0000", "fontStyle": "strikethrough"},
                },
            }
        ]
    )


@pytest.fixture
def merger(dark_theme: Theme) -> TokenMerger:
    return TokenMerger(dark_theme)
