from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, List, Optional

from pydantic import TypeAdapter

from datastore.persistence import load_items, write_items
from models.records import Device
from settings import get_settings

_DEVICES = TypeAdapter(List[Device])


class DeviceDirectory:
    """Device id to display name lookup, optionally persisted as JSON."""

    def __init__(self, name: str = "devices", persistence_path: Optional[Path] = None) -> None:
        self.name = name
        self._items: Dict[str, Device] = {}
        self.persistence_path = persistence_path
        self._lock = Lock()
        if persistence_path:
            persistence_path.parent.mkdir(parents=True, exist_ok=True)
            for device in load_items(persistence_path, _DEVICES):
                self._items[device.id] = device

    def put_device(self, device: Device) -> None:
        with self._lock:
            updated = {**self._items, device.id: device}
            self._persist(updated)
            self._items = updated

    def get_device(self, device_id: str) -> Optional[Device]:
        with self._lock:
            return self._items.get(device_id)

    def lookup(self, device_ids: Iterable[str]) -> Dict[str, Device]:
        """Bulk join: map each known id to its device, skipping unknown ids."""

        with self._lock:
            return {
                device_id: self._items[device_id]
                for device_id in set(device_ids)
                if device_id in self._items
            }

    def _persist(self, items: Dict[str, Device]) -> None:
        if not self.persistence_path:
            return
        write_items(self.persistence_path, _DEVICES, list(items.values()))


@lru_cache
def build_default_device_directory(path: Optional[str] = None) -> DeviceDirectory:
    settings = get_settings()
    directory_path = settings.devices_path if path is None else path
    persistence = Path(directory_path) if directory_path else None
    return DeviceDirectory(persistence_path=persistence)
