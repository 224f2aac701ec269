"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional

METRIC_FIELDS: Dict[str, str] = {
    "humidity": "humidity",
    "pressure": "pressure",
    "temperature": "temperature",
    "gasResistance": "gas_resistance",
}


@dataclass(frozen=True, slots=True)
class Reading:
    """A single immutable sensor sample reported by a device."""

    id: str
    owner_user_id: str
    owner_device_id: str
    created_at: datetime
    humidity: Optional[float] = None
    pressure: Optional[float] = None
    temperature: Optional[float] = None
    gas_resistance: Optional[float] = None

    def metric(self, name: str) -> Optional[float]:
        """Return the value stored for a public metric name, ``None`` when absent."""
        return getattr(self, METRIC_FIELDS[name])

    def metric_values(self) -> Dict[str, float]:
        values: Dict[str, float] = {}
        for name in METRIC_FIELDS:
            value = self.metric(name)
            if value is not None:
                values[name] = value
        return values


@dataclass(frozen=True, slots=True)
class Device:
    """Directory entry for a physical sensor unit."""

    id: str
    owner_user_id: str
    created_at: datetime
    name: Optional[str] = None
