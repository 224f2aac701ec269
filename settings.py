from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional


_READINGS_PATH_ENV = "TELEMETRY_READINGS_PATH"
_DEVICES_PATH_ENV = "TELEMETRY_DEVICES_PATH"
_AUTH_SECRET_ENV = "TELEMETRY_AUTH_SECRET"
_WINDOW_HOURS_ENV = "TELEMETRY_WINDOW_HOURS"
_STORE_TIMEOUT_ENV = "TELEMETRY_STORE_TIMEOUT"
_WORKER_COUNT_ENV = "TELEMETRY_WORKER_COUNT"
_LOG_LEVEL_ENV = "LOG_LEVEL"


@dataclass(frozen=True)
class Settings:
    readings_path: Optional[str]
    devices_path: Optional[str]
    auth_secret: str
    window_hours: int
    store_timeout: float
    service_workers: int
    log_level: str


def _read_str_env(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or default


def _read_optional_env(name: str, default: Optional[str]) -> Optional[str]:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    return candidate or None


def _read_positive_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = int(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_positive_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    try:
        parsed = float(candidate)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _read_log_level(default: str) -> str:
    value = os.getenv(_LOG_LEVEL_ENV)
    if value is None:
        return default
    candidate = value.strip()
    if not candidate:
        return default
    return candidate.upper()


@lru_cache
def get_settings() -> Settings:
    return Settings(
        readings_path=_read_optional_env(_READINGS_PATH_ENV, "./tmp/readings.json"),
        devices_path=_read_optional_env(_DEVICES_PATH_ENV, "./tmp/devices.json"),
        auth_secret=_read_str_env(_AUTH_SECRET_ENV, "dev-secret"),
        window_hours=_read_positive_int(_WINDOW_HOURS_ENV, 24),
        store_timeout=_read_positive_float(_STORE_TIMEOUT_ENV, 5.0),
        service_workers=_read_positive_int(_WORKER_COUNT_ENV, 4),
        log_level=_read_log_level("INFO"),
    )
