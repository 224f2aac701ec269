from __future__ import annotations

from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import List, Optional

from pydantic import TypeAdapter

from datastore.persistence import load_items, write_items
from models.records import Reading
from services.bucketing import to_utc
from settings import get_settings

_READINGS = TypeAdapter(List[Reading])


class ReadingStore:
    """Append-only reading collection kept in memory and mirrored to a JSON file."""

    def __init__(self, name: str = "readings", persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._items: List[Reading] = []
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            self._items.extend(load_items(persistence_path, _READINGS))

    def put_reading(self, reading: Reading) -> None:
        with self._lock:
            updated = [*self._items, reading]
            self._persist(updated)
            self._items = updated

    def query(self, user_id: str, since: Optional[datetime] = None) -> list[Reading]:
        """Return the owner's readings created at or after ``since``, in insertion order."""

        lower = to_utc(since) if since is not None else None
        with self._lock:
            return [
                reading
                for reading in self._items
                if reading.owner_user_id == user_id
                and (lower is None or to_utc(reading.created_at) >= lower)
            ]

    def recent(self, user_id: str, limit: int = 25) -> list[Reading]:
        owned = self.query(user_id)
        owned.sort(key=lambda reading: to_utc(reading.created_at), reverse=True)
        return owned[:limit]

    def _persist(self, items: List[Reading]) -> None:
        if not self.persistence_path:
            return
        write_items(self.persistence_path, _READINGS, items)


@lru_cache
def build_default_reading_store(path: Optional[str] = None) -> ReadingStore:
    settings = get_settings()
    store_path = settings.readings_path if path is None else path
    persistence = Path(store_path) if store_path else None
    return ReadingStore(persistence_path=persistence)
