from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from tintscope.overlay.model import StyledRange
from tintscope.overlay.trace import trace_labels


class StyledRangeDTO(BaseModel):
    """Snapshot/JSON shape of one styled range."""

    model_config = ConfigDict(populate_by_name=True)

    start_line: int = Field(alias="startLine")
    start_char: int = Field(alias="startChar")
    end_line: int = Field(alias="endLine")
    end_char: int = Field(alias="endChar")
    text: str
    foreground: str
    font_style: Optional[str] = Field(default=None, alias="fontStyle")
    source: str
    scopes: List[str] = []
    scope_colors: List[str] = Field(default=[], alias="scopeColors")
    active_scope_index: int = Field(default=-1, alias="activeScopeIndex")

    @classmethod
    def from_range(cls, rng: StyledRange) -> StyledRangeDTO:
        style = rng.style
        return cls(
            start_line=rng.start_line,
            start_char=rng.start_char,
            end_line=rng.end_line,
            end_char=rng.end_char,
            text=rng.text,
            foreground=style.foreground,
            font_style=style.font_style,
            source=style.source,
            scopes=trace_labels(style.trace),
            scope_colors=list(style.scope_colors),
            active_scope_index=style.active_index,
        )

    def to_json(self) -> dict[str, object]:
        return self.model_dump(by_alias=True, exclude_none=True)


class LspSettings(BaseModel):
    model_config = ConfigDict(extra="forbid")

    command: List[str] = Field(min_length=1)
    root_uri: Optional[str] = None
    timeout_seconds: float = Field(default=30.0, gt=0)
    token_types: List[str] = []
    token_modifiers: List[str] = []


class RunConfigModel(BaseModel):
    """Raw run configuration as written in `tintscope.toml`."""

    model_config = ConfigDict(extra="forbid")

    grammar: str
    scope_name: str
    theme: str
    files: List[str]
    lsp: LspSettings
    extra_grammars: Dict[str, str] = {}
    out_dir: Optional[str] = None
    snapshot_dir: Optional[str] = None
    language_id: Optional[str] = None
