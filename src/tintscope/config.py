from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from pathlib import Path
from typing import TypeAlias
import tomllib

from pydantic import ValidationError

from tintscope.exceptions import ConfigError
from tintscope.schema import RunConfigModel

DEFAULT_CONFIG_NAME = "tintscope.toml"

TomlScalar: TypeAlias = str | int | float | bool | None | date | datetime | time
TomlValue: TypeAlias = TomlScalar | list["TomlValue"] | dict[str, "TomlValue"]
TomlTable: TypeAlias = dict[str, TomlValue]


@dataclass(frozen=True)
class RunConfig:
    """Run configuration with every path resolved against the config file."""

    config_path: Path
    grammar: Path
    scope_name: str
    extra_grammars: dict[str, Path]
    theme: str
    files: list[Path]
    out_dir: Path
    snapshot_dir: Path
    language_id: str
    lsp_command: list[str]
    lsp_root_uri: str
    lsp_timeout: float
    token_types: list[str]
    token_modifiers: list[str]

    @property
    def base_dir(self) -> Path:
        return self.config_path.parent


def _load_toml(path: Path) -> TomlTable:
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except OSError as exc:
        raise ConfigError(f"Failed to read config file {path}: {exc}") from exc
    try:
        return tomllib.loads(raw)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc


def language_id_for_scope(scope_name: str) -> str:
    return scope_name.rsplit(".", 1)[-1] or "plaintext"


def load_config(root: Path | None = None, config_path: Path | None = None) -> RunConfig:
    if config_path is None:
        base = root if root is not None else Path.cwd()
        config_path = base / DEFAULT_CONFIG_NAME
    config_path = config_path.resolve()
    data = _load_toml(config_path)
    try:
        model = RunConfigModel.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config file {config_path}:\n{exc}") from exc

    base_dir = config_path.parent

    def _resolve(value: str) -> Path:
        return (base_dir / value).resolve()

    return RunConfig(
        config_path=config_path,
        grammar=_resolve(model.grammar),
        scope_name=model.scope_name,
        extra_grammars={
            scope: _resolve(path) for scope, path in model.extra_grammars.items()
        },
        theme=model.theme,
        files=[_resolve(path) for path in model.files],
        out_dir=_resolve(model.out_dir) if model.out_dir else base_dir / "out",
        snapshot_dir=(
            _resolve(model.snapshot_dir) if model.snapshot_dir else base_dir / "snapshots"
        ),
        language_id=model.language_id or language_id_for_scope(model.scope_name),
        lsp_command=list(model.lsp.command),
        lsp_root_uri=model.lsp.root_uri or base_dir.as_uri(),
        lsp_timeout=model.lsp.timeout_seconds,
        token_types=list(model.lsp.token_types),
        token_modifiers=list(model.lsp.token_modifiers),
    )
