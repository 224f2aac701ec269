"""JSON file persistence shared by the in-process stores."""

from __future__ import annotations

import json
from pathlib import Path
from typing import List, Sequence, TypeVar

from pydantic import TypeAdapter, ValidationError

from datastore.errors import StoreError

T = TypeVar("T")


def load_items(path: Path, adapter: TypeAdapter[List[T]]) -> List[T]:
    if not path.exists():
        return []

    try:
        raw = path.read_text() or "[]"
        return adapter.validate_python(json.loads(raw))
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        raise StoreError(f"Could not load {path}: {exc}") from exc


def write_items(path: Path, adapter: TypeAdapter[List[T]], items: Sequence[T]) -> None:
    payload = adapter.dump_python(list(items), mode="json")
    try:
        path.write_text(json.dumps(payload, indent=2, sort_keys=True))
    except OSError as exc:
        raise StoreError(f"Could not write {path}: {exc}") from exc
