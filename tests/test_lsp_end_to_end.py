from __future__ import annotations

import importlib.util
import sys
from pathlib import Path

import pytest

from tintscope.lsp_client import LspClient
from tintscope.overlay.merge import TokenMerger
from tintscope.overlay.model import LexicalToken
from tintscope.theme import Theme

SERVER = Path(__file__).resolve().parent / "fixtures" / "semantic_server.py"


def _has_pygls() -> bool:
    return importlib.util.find_spec("pygls") is not None


@pytest.mark.skipif(not _has_pygls(), reason="pygls not installed")
def test_semantic_tokens_from_real_server(tmp_path: Path, dark_theme: Theme) -> None:
    source = tmp_path / "sample.x"
    content = "LIMIT = compute(1)\n"
    source.write_text(content, encoding="utf-8")

    client = LspClient([sys.executable, str(SERVER)], timeout=20.0)
    client.start(tmp_path.as_uri())
    try:
        assert client.legend is not None
        assert client.legend.token_types == ["variable", "function"]
        tokens = client.get_semantic_tokens(source.as_uri(), content, "x")
    finally:
        client.shutdown()

    assert tokens is not None
    assert tokens.data == [0, 0, 5, 0, 1, 0, 8, 7, 1, 0]

    lexical = [LexicalToken(0, 0, 18, ("source.x",))]
    ranges = TokenMerger(dark_theme).merge(content, lexical, tokens, client.legend)
    assert [(rng.text, rng.style.foreground) for rng in ranges[:4]] == [
        ("LIMIT", "#4FC1FF"),
        (" = ", "#D4D4D4"),
        ("compute", "#DCDCAA"),
        ("(", "#FFD700"),
    ]
