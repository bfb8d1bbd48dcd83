from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable

from pydantic import TypeAdapter, ValidationError

from tintscope import renderer
from tintscope.config import RunConfig
from tintscope.lsp_client import LspClient
from tintscope.overlay.merge import TokenMerger
from tintscope.overlay.model import StyledRange
from tintscope.runtime.json_io import load_json_path, normalize_json
from tintscope.schema import StyledRangeDTO
from tintscope.textmate import TextMateTokenizer
from tintscope.theme import Theme, resolve_theme_path

logger = logging.getLogger(__name__)

_RANGES = TypeAdapter(list[StyledRangeDTO])

Echo = Callable[[str], None]


class SnapshotStatus(str, Enum):
    UPDATED = "updated"
    VERIFIED = "verified"
    MISMATCH = "mismatch"
    MISSING = "missing"


@dataclass
class FileResult:
    path: Path
    ranges: list[StyledRange]
    json_path: Path
    html_path: Path
    semantic_available: bool
    snapshot_path: Path | None = None
    snapshot_status: SnapshotStatus | None = None
    diff_path: Path | None = None
    notes: list[str] = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.snapshot_status in {SnapshotStatus.MISMATCH, SnapshotStatus.MISSING}


def to_dtos(ranges: list[StyledRange]) -> list[StyledRangeDTO]:
    return [StyledRangeDTO.from_range(rng) for rng in ranges]


def load_snapshot(path: Path) -> list[StyledRangeDTO]:
    return _RANGES.validate_python(load_json_path(path))


def snapshot_matches(expected: object, actual: list[StyledRangeDTO]) -> bool:
    return normalize_json(expected) == normalize_json([dto.to_json() for dto in actual])


class HighlightSession:
    """Engines for one run: tokenizer, theme, merger and language server.

    Construction and `start()` raise on configuration errors; nothing is
    processed until every engine is ready.
    """

    def __init__(self, config: RunConfig, *, lsp: LspClient | None = None) -> None:
        self.config = config
        self.tokenizer = TextMateTokenizer(
            config.grammar, config.scope_name, config.extra_grammars
        )
        self.theme = Theme.load(resolve_theme_path(config.theme, base_dir=config.base_dir))
        self.merger = TokenMerger(self.theme)
        self.lsp = lsp or LspClient(
            config.lsp_command,
            timeout=config.lsp_timeout,
            token_types=config.token_types,
            token_modifiers=config.token_modifiers,
        )

    def start(self) -> None:
        self.lsp.start(self.config.lsp_root_uri)

    def close(self) -> None:
        self.lsp.shutdown()

    def highlight(self, path: Path) -> tuple[list[StyledRange], bool]:
        content = path.read_text(encoding="utf-8", errors="replace")
        lexical = self.tokenizer.tokenize(content)
        semantic = self.lsp.get_semantic_tokens(path.as_uri(), content, self.config.language_id)
        ranges = self.merger.merge(
            content,
            lexical,
            semantic,
            self.lsp.legend,
            utf16_offsets=self.lsp.position_encoding == "utf-16",
        )
        return ranges, semantic is not None

    def process_file(self, path: Path, *, verify: bool = False, update: bool = False) -> FileResult:
        config = self.config
        ranges, semantic_available = self.highlight(path)
        dtos = to_dtos(ranges)
        name = path.name
        result = FileResult(
            path=path,
            ranges=ranges,
            json_path=config.out_dir / f"{name}.tokens.json",
            html_path=config.out_dir / f"{name}.html",
            semantic_available=semantic_available,
        )
        renderer.save_json(dtos, result.json_path)
        renderer.render_html(dtos, result.html_path, self.theme.name or config.theme)

        snapshot_path = config.snapshot_dir / f"{name}.tokens.json"
        if update:
            renderer.save_json(dtos, snapshot_path)
            result.snapshot_path = snapshot_path
            result.snapshot_status = SnapshotStatus.UPDATED
        elif verify:
            result.snapshot_path = snapshot_path
            result.snapshot_status = self._verify(result, dtos, snapshot_path)
        return result

    def _verify(
        self, result: FileResult, dtos: list[StyledRangeDTO], snapshot_path: Path
    ) -> SnapshotStatus:
        if not snapshot_path.exists():
            return SnapshotStatus.MISSING
        try:
            expected = load_json_path(snapshot_path)
        except (OSError, ValueError) as exc:
            result.notes.append(f"Unreadable snapshot: {exc}")
            return SnapshotStatus.MISMATCH
        if snapshot_matches(expected, dtos):
            return SnapshotStatus.VERIFIED
        diff_path = self.config.out_dir / f"{result.path.name}.diff.html"
        try:
            renderer.render_diff_html(
                _RANGES.validate_python(expected), dtos, diff_path, "Snapshot", "Generated"
            )
            result.diff_path = diff_path
        except (ValidationError, OSError) as exc:
            result.notes.append(f"Failed to generate diff report: {exc}")
        return SnapshotStatus.MISMATCH
