"""Query orchestration over the reading store and device directory."""

from __future__ import annotations

import logging
import math
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from datetime import datetime, timedelta, timezone
from functools import lru_cache
from typing import Callable, Iterable, List, Mapping, Optional, TypeVar
from uuid import uuid4

from datastore.devices import DeviceDirectory, build_default_device_directory
from datastore.errors import StoreError
from datastore.readings import ReadingStore, build_default_reading_store
from models.records import METRIC_FIELDS, Reading
from services.aggregator import Aggregator, DeviceSummary, HourlyRollup
from services.bucketing import to_utc
from services.metrics import select_metrics
from settings import get_settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TelemetryService:
    """Coordinates store access and the aggregation pipelines."""

    def __init__(
        self,
        readings: ReadingStore,
        devices: DeviceDirectory,
        aggregator: Aggregator,
        workers: int = 4,
        timeout: float = 5.0,
        window: timedelta = timedelta(hours=24),
    ) -> None:
        self.readings = readings
        self.devices = devices
        self.aggregator = aggregator
        self.timeout = timeout
        self.window = window
        self.executor = ThreadPoolExecutor(max_workers=workers)

    def run_single_metric(
        self,
        user_id: str,
        metric_filter: Optional[Iterable[str]] = None,
        now: Optional[datetime] = None,
    ) -> List[HourlyRollup]:
        """Hourly averages of the selected metrics over the trailing window."""
        start_time = time.perf_counter()
        metrics = select_metrics(metric_filter)
        reference = to_utc(now) if now is not None else datetime.now(timezone.utc)
        since = reference - self.window

        readings = self._call_store(self.readings.query, user_id, since)
        rows = self.aggregator.hourly_rollup(readings, metrics, since=since, user_id=user_id)

        logger.info(
            "Computed hourly rollup",
            extra={
                "user_id": user_id,
                "metrics": metrics,
                "reading_count": len(readings),
                "row_count": len(rows),
                "elapsed_ms": _elapsed_ms(start_time),
            },
        )
        return rows

    def run_cross_device_summary(self, user_id: str) -> List[DeviceSummary]:
        """Latest reading plus hourly history for every named device of the user."""
        start_time = time.perf_counter()
        readings = self._call_store(self.readings.query, user_id)
        device_ids = {reading.owner_device_id for reading in readings}
        devices = self._call_store(self.devices.lookup, device_ids) if device_ids else {}
        rows = self.aggregator.device_summary(readings, devices, user_id=user_id)

        logger.info(
            "Computed device summary",
            extra={
                "user_id": user_id,
                "reading_count": len(readings),
                "row_count": len(rows),
                "elapsed_ms": _elapsed_ms(start_time),
            },
        )
        return rows

    def recent_readings(self, user_id: str, limit: int = 25) -> List[Reading]:
        return self._call_store(self.readings.recent, user_id, limit)

    def ingest_reading(
        self,
        user_id: str,
        device_id: str,
        values: Mapping[str, Optional[float]],
        now: Optional[datetime] = None,
    ) -> Reading:
        """Append a reading keyed by the public metric names in ``values``."""
        unknown = sorted(set(values) - set(METRIC_FIELDS))
        if unknown:
            raise ValueError(f"Unknown metrics: {', '.join(unknown)}")
        non_finite = sorted(
            name
            for name, value in values.items()
            if value is not None and not math.isfinite(value)
        )
        if non_finite:
            raise ValueError(f"Non-finite metric values: {', '.join(non_finite)}")

        reading = Reading(
            id=str(uuid4()),
            owner_user_id=user_id,
            owner_device_id=device_id,
            created_at=to_utc(now) if now is not None else datetime.now(timezone.utc),
            **{METRIC_FIELDS[name]: value for name, value in values.items()},
        )
        # Not timed out: a write either lands before returning or raises.
        try:
            self.readings.put_reading(reading)
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError(f"Store call put_reading failed: {exc}") from exc
        logger.info(
            "Stored reading",
            extra={"user_id": user_id, "device_id": device_id},
        )
        return reading

    def shutdown(self) -> None:
        """Clean up executor resources during application shutdown."""
        self.executor.shutdown(wait=False, cancel_futures=True)

    def _call_store(self, func: Callable[..., T], *args) -> T:
        future = self.executor.submit(func, *args)
        try:
            return future.result(timeout=self.timeout)
        except FutureTimeoutError as exc:
            future.cancel()
            raise StoreError(
                f"Store call {func.__name__} timed out after {self.timeout}s."
            ) from exc
        except StoreError:
            raise
        except Exception as exc:
            raise StoreError(f"Store call {func.__name__} failed: {exc}") from exc


def _elapsed_ms(start_time: float) -> int:
    return int((time.perf_counter() - start_time) * 1000)


@lru_cache
def build_default_service(
    workers: Optional[int] = None,
) -> TelemetryService:
    """Factory that wires the service with the default stores."""
    settings = get_settings()
    return TelemetryService(
        readings=build_default_reading_store(),
        devices=build_default_device_directory(),
        aggregator=Aggregator(),
        workers=workers or settings.service_workers,
        timeout=settings.store_timeout,
        window=timedelta(hours=settings.window_hours),
    )
