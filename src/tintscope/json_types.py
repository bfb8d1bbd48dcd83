"""JSON value types for LSP messages, theme documents and snapshots."""

from __future__ import annotations

from typing import Mapping, TypeAlias

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
JSONObject: TypeAlias = dict[str, JSONValue]

# A framed JSON-RPC message (request, response or notification).
RpcMessage: TypeAlias = JSONObject
# A parsed theme file, or one `tokenColors` / `settings` entry inside it.
ThemeDocument: TypeAlias = Mapping[str, JSONValue]
