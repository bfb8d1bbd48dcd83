from __future__ import annotations

from pathlib import Path

import pytest

from tintscope.config import DEFAULT_CONFIG_NAME, language_id_for_scope, load_config
from tintscope.exceptions import ConfigError

MINIMAL = """
grammar = "grammars/demo.json"
scope_name = "source.demo"
theme = "themes/dark.json"
files = ["samples/a.demo", "/abs/b.demo"]

[lsp]
command = ["demo-lsp", "--stdio"]
"""


def _write(tmp_path: Path, text: str, name: str = DEFAULT_CONFIG_NAME) -> Path:
    path = tmp_path / name
    path.write_text(text, encoding="utf-8")
    return path


def test_load_config_resolves_paths_and_defaults(tmp_path: Path) -> None:
    _write(tmp_path, MINIMAL)
    config = load_config(tmp_path)
    base = tmp_path.resolve()
    assert config.config_path == base / DEFAULT_CONFIG_NAME
    assert config.base_dir == base
    assert config.grammar == base / "grammars/demo.json"
    assert config.files == [base / "samples/a.demo", Path("/abs/b.demo")]
    assert config.theme == "themes/dark.json"
    assert config.out_dir == base / "out"
    assert config.snapshot_dir == base / "snapshots"
    assert config.language_id == "demo"
    assert config.lsp_command == ["demo-lsp", "--stdio"]
    assert config.lsp_root_uri == base.as_uri()
    assert config.lsp_timeout == 30.0
    assert config.token_types == []
    assert config.extra_grammars == {}


FULL = """
grammar = "grammars/demo.json"
scope_name = "source.demo"
theme = "Dark+"
files = ["samples/a.demo"]
out_dir = "build/out"
snapshot_dir = "snaps"
language_id = "demolang"

[extra_grammars]
"source.embedded" = "grammars/embedded.json"

[lsp]
command = ["demo-lsp"]
root_uri = "file:///project"
timeout_seconds = 5
token_types = ["variable"]
token_modifiers = ["readonly"]
"""


def test_load_config_explicit_values(tmp_path: Path) -> None:
    path = _write(tmp_path, FULL, name="custom.toml")
    config = load_config(config_path=path)
    base = tmp_path.resolve()
    assert config.theme == "Dark+"
    assert config.out_dir == base / "build/out"
    assert config.snapshot_dir == base / "snaps"
    assert config.language_id == "demolang"
    assert config.extra_grammars == {"source.embedded": base / "grammars/embedded.json"}
    assert config.lsp_root_uri == "file:///project"
    assert config.lsp_timeout == 5.0
    assert config.token_types == ["variable"]
    assert config.token_modifiers == ["readonly"]


def test_missing_config_raises(tmp_path: Path) -> None:
    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path)
    assert "not found" in str(excinfo.value)


def test_invalid_toml_raises(tmp_path: Path) -> None:
    _write(tmp_path, "grammar = [")
    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path)
    assert "parse" in str(excinfo.value)


def test_unknown_keys_raise(tmp_path: Path) -> None:
    _write(tmp_path, 'unknown_key = "x"\n' + MINIMAL)
    with pytest.raises(ConfigError):
        load_config(tmp_path)
    _write(tmp_path, MINIMAL + "timeout = 5\n")
    with pytest.raises(ConfigError) as excinfo:
        load_config(tmp_path)
    assert "timeout" in str(excinfo.value)


def test_schema_errors_raise(tmp_path: Path) -> None:
    _write(tmp_path, MINIMAL.replace('command = ["demo-lsp", "--stdio"]', "command = []"))
    with pytest.raises(ConfigError):
        load_config(tmp_path)
    _write(tmp_path, MINIMAL.replace('scope_name = "source.demo"\n', ""))
    with pytest.raises(ConfigError):
        load_config(tmp_path)


def test_language_id_for_scope() -> None:
    assert language_id_for_scope("source.python") == "python"
    assert language_id_for_scope("text.html.markdown") == "markdown"
    assert language_id_for_scope("plain") == "plain"
