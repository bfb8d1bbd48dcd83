"""Minimal pygls server used by the end-to-end transport tests.

Every `name(` is reported as a function and every ALL_CAPS identifier as a
readonly variable.
"""

from __future__ import annotations

import re

from lsprotocol import types
from pygls.lsp.server import LanguageServer

LEGEND = types.SemanticTokensLegend(
    token_types=["variable", "function"],
    token_modifiers=["readonly"],
)

_CALL = re.compile(r"([A-Za-z_]\w*)\s*\(")
_CONSTANT = re.compile(r"\b[A-Z][A-Z0-9_]+\b")

server = LanguageServer("tintscope-fixture", "0.1.0")


def encode(text: str) -> list[int]:
    found: list[tuple[int, int, int, int, int]] = []
    for line_no, line in enumerate(text.splitlines()):
        for match in _CONSTANT.finditer(line):
            found.append((line_no, match.start(), len(match.group()), 0, 1))
        for match in _CALL.finditer(line):
            found.append((line_no, match.start(1), len(match.group(1)), 1, 0))
    data: list[int] = []
    prev_line = 0
    prev_char = 0
    for line_no, start, length, token_type, modifiers in sorted(found):
        delta_line = line_no - prev_line
        delta_start = start - prev_char if delta_line == 0 else start
        data.extend([delta_line, delta_start, length, token_type, modifiers])
        prev_line, prev_char = line_no, start
    return data


@server.feature(types.TEXT_DOCUMENT_SEMANTIC_TOKENS_FULL, LEGEND)
def semantic_tokens(ls: LanguageServer, params: types.SemanticTokensParams) -> types.SemanticTokens:
    document = ls.workspace.get_text_document(params.text_document.uri)
    return types.SemanticTokens(data=encode(document.source))


if __name__ == "__main__":
    server.start_io()
