from __future__ import annotations

import json
import os
import platform
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Mapping, Sequence

from tintscope.exceptions import ThemeLoadError
from tintscope.json_types import JSONObject, ThemeDocument

DEFAULT_FOREGROUND = "#D4D4D4"

# Default Dark+ bracket pair colors (editorBracketHighlight.foreground1..3).
BRACKET_COLORS: tuple[str, ...] = ("#FFD700", "#DA70D6", "#179FFF")

# Theme files are JSON with `//` line comments and the odd trailing comma.
_LINE_COMMENT = re.compile(r"^\s*//.*$", re.MULTILINE)
_TRAILING_COMMA = re.compile(r",(\s*[}\]])")

_THEME_DIR_SUFFIXES = (
    Path("resources/app/extensions/theme-defaults/themes"),
    Path("Contents/Resources/app/extensions/theme-defaults/themes"),
)


@dataclass(frozen=True)
class ThemeStyle:
    foreground: str | None = None
    font_style: str | None = None

    @classmethod
    def from_settings(cls, settings: ThemeDocument) -> ThemeStyle:
        foreground = settings.get("foreground")
        font_style = settings.get("fontStyle")
        if font_style is None:
            flags = [
                name
                for name in ("italic", "bold", "underline")
                if settings.get(name) is True
            ]
            font_style = " ".join(flags) or None
        return cls(
            foreground=foreground if isinstance(foreground, str) else None,
            font_style=font_style if isinstance(font_style, str) else None,
        )


@dataclass(frozen=True)
class ThemeRule:
    selectors: tuple[str, ...]
    style: ThemeStyle

    @classmethod
    def from_token_color(cls, entry: ThemeDocument) -> ThemeRule:
        raw_scope = entry.get("scope")
        if isinstance(raw_scope, str):
            selectors = tuple(
                part.strip() for part in raw_scope.split(",") if part.strip()
            )
        elif isinstance(raw_scope, list):
            selectors = tuple(
                item.strip() for item in raw_scope if isinstance(item, str) and item.strip()
            )
        else:
            selectors = ()
        settings = entry.get("settings")
        if not isinstance(settings, dict):
            settings = {}
        return cls(selectors=selectors, style=ThemeStyle.from_settings(settings))


@dataclass(frozen=True)
class ThemeMatch:
    style: ThemeStyle
    matched_index: int


def selector_matches(selector: str, scope: str) -> bool:
    if not scope.startswith(selector):
        return False
    return len(scope) == len(selector) or scope[len(selector)] == "."


def match_scopes(scopes: Sequence[str], rules: Sequence[ThemeRule]) -> ThemeMatch:
    """Match a scope stack against ordered theme rules.

    The stack is walked from the innermost scope outwards and the first scope
    with any matching selector decides. Within one scope the longest selector
    wins; on equal length the rule loaded last wins, so a derived theme
    overrides its base.
    """
    for index in range(len(scopes) - 1, -1, -1):
        scope = scopes[index]
        best: ThemeStyle | None = None
        best_score = -1
        for rule in rules:
            for selector in rule.selectors:
                if selector_matches(selector, scope):
                    score = len(selector)
                    if score >= best_score:
                        best_score = score
                        best = rule.style
        if best is not None:
            return ThemeMatch(style=best, matched_index=index)
    return ThemeMatch(style=ThemeStyle(foreground=DEFAULT_FOREGROUND), matched_index=-1)


def _read_theme_document(path: Path) -> JSONObject:
    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ThemeLoadError(f"Failed to read theme {path}: {exc}", path=str(path)) from exc
    text = _TRAILING_COMMA.sub(r"\1", _LINE_COMMENT.sub("", raw))
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise ThemeLoadError(f"Failed to parse theme {path}: {exc}", path=str(path)) from exc
    if not isinstance(data, dict):
        raise ThemeLoadError(f"Theme {path} is not a JSON object", path=str(path))
    return data


@dataclass
class Theme:
    name: str = ""
    rules: list[ThemeRule] = field(default_factory=list)
    semantic_rules: dict[str, ThemeStyle] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> Theme:
        theme = cls(name=path.stem)
        theme._load_into(path.resolve(), ())
        return theme

    @classmethod
    def from_documents(cls, documents: Iterable[ThemeDocument]) -> Theme:
        """Build a theme from already-parsed documents, base themes first."""
        theme = cls()
        for document in documents:
            theme._apply_document(document)
        return theme

    def _load_into(self, path: Path, chain: tuple[Path, ...]) -> None:
        if path in chain:
            raise ThemeLoadError(f"Theme include cycle at {path}", path=str(path))
        document = _read_theme_document(path)
        include = document.get("include")
        if isinstance(include, str) and include:
            self._load_into((path.parent / include).resolve(), (*chain, path))
        name = document.get("name")
        if isinstance(name, str) and not chain:
            self.name = name
        self._apply_document(document)

    def _apply_document(self, document: ThemeDocument) -> None:
        token_colors = document.get("tokenColors")
        if isinstance(token_colors, list):
            for entry in token_colors:
                if isinstance(entry, dict):
                    self.rules.append(ThemeRule.from_token_color(entry))
        semantic = document.get("semanticTokenColors")
        if isinstance(semantic, dict):
            for key, value in semantic.items():
                if isinstance(value, str):
                    self.semantic_rules[key] = ThemeStyle(foreground=value)
                elif isinstance(value, dict):
                    self.semantic_rules[key] = ThemeStyle.from_settings(value)

    def match(self, scopes: Sequence[str]) -> ThemeMatch:
        return match_scopes(scopes, self.rules)

    def scope_color(self, scope: str) -> str:
        return self.match((scope,)).style.foreground or DEFAULT_FOREGROUND

    def resolve_semantic(
        self, token_type: str, modifiers: Sequence[str]
    ) -> ThemeStyle | None:
        """Resolve explicit `semanticTokenColors`.

        Precedence: `type.modifier` (first modifier with a rule wins), then
        `type`, then `*.modifier`.
        """
        for modifier in modifiers:
            style = self.semantic_rules.get(f"{token_type}.{modifier}")
            if style is not None:
                return style
        style = self.semantic_rules.get(token_type)
        if style is not None:
            return style
        for modifier in modifiers:
            style = self.semantic_rules.get(f"*.{modifier}")
            if style is not None:
                return style
        return None

    def bracket_colors(self) -> tuple[str, ...]:
        return BRACKET_COLORS


def vscode_theme_dir_candidates(
    *,
    env: Mapping[str, str] | None = None,
    system: str | None = None,
    home: Path | None = None,
) -> list[Path]:
    env = os.environ if env is None else env
    system = platform.system() if system is None else system
    home = Path.home() if home is None else home
    candidates: list[Path] = []
    override = env.get("VSCODE_PATH")
    if override:
        base = Path(override)
        candidates.extend(base / suffix for suffix in _THEME_DIR_SUFFIXES)
        candidates.append(base)
    if system == "Darwin":
        candidates.extend(
            [
                Path("/Applications/Visual Studio Code.app") / _THEME_DIR_SUFFIXES[1],
                Path("/Applications/Visual Studio Code - Insiders.app")
                / _THEME_DIR_SUFFIXES[1],
                home / "Applications/Visual Studio Code.app" / _THEME_DIR_SUFFIXES[1],
            ]
        )
    elif system == "Windows":
        local_app_data = env.get("LOCALAPPDATA")
        if local_app_data:
            for product in ("Microsoft VS Code", "Microsoft VS Code Insiders"):
                candidates.append(
                    Path(local_app_data) / "Programs" / product / _THEME_DIR_SUFFIXES[0]
                )
        program_files = env.get("ProgramFiles")
        if program_files:
            candidates.append(
                Path(program_files) / "Microsoft VS Code" / _THEME_DIR_SUFFIXES[0]
            )
    elif system == "Linux":
        for root in (
            "/usr/share/code",
            "/usr/share/code-insiders",
            "/opt/visual-studio-code",
        ):
            candidates.append(Path(root) / _THEME_DIR_SUFFIXES[0])
    return candidates


def find_vscode_theme_dir(**kwargs) -> Path | None:
    for candidate in vscode_theme_dir_candidates(**kwargs):
        if candidate.is_dir():
            return candidate
    return None


def looks_like_theme_path(value: str) -> bool:
    return value.endswith(".json") or "/" in value or "\\" in value


def resolve_theme_path(value: str, *, base_dir: Path, theme_dir: Path | None = None) -> Path:
    """Turn a configured theme (path or VS Code theme name) into a file path."""
    if looks_like_theme_path(value):
        return (base_dir / value).resolve()
    search_dir = theme_dir if theme_dir is not None else find_vscode_theme_dir()
    if search_dir is None:
        raise ThemeLoadError(
            f"Theme '{value}' is not a path and no VS Code theme directory was found "
            "(set VSCODE_PATH)",
        )
    candidate = search_dir / f"{value}.json"
    if not candidate.is_file():
        raise ThemeLoadError(f"Theme '{value}' not found in {search_dir}", path=str(candidate))
    return candidate
