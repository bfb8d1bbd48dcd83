from __future__ import annotations

import json
from pathlib import Path

from tintscope.json_types import JSONValue


def load_json_path(path: Path, *, encoding: str = "utf-8") -> JSONValue:
    """Parse a JSON document; read and decode errors propagate."""
    return json.loads(path.read_text(encoding=encoding))


def dump_json_pretty(payload: object) -> str:
    return json.dumps(payload, indent=2, ensure_ascii=False)


def write_json_pretty(path: Path, payload: object, *, encoding: str = "utf-8") -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(dump_json_pretty(payload) + "\n", encoding=encoding)


def normalize_json(payload: object) -> JSONValue:
    """Round-trip through JSON text so in-memory values compare like files."""
    return json.loads(json.dumps(payload))
