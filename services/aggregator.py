"""Aggregation logic for sensor readings.

Both queries are built from small pure stages (filter, group, average, pivot,
sort) so each stage can be exercised on its own.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from models.records import Device, Reading
from services.bucketing import Bucket, bucket_of, hour_label, to_utc
from services.metrics import METRIC_NAMES


@dataclass(frozen=True)
class HourlyRollup:
    """Averages for one calendar hour of a single user's readings."""

    bucket: Bucket
    averages: Dict[str, float] = field(default_factory=dict)

    @property
    def hour(self) -> int:
        return self.bucket.hour


@dataclass(frozen=True)
class DeviceHourGroup:
    """First grouping stage of the device summary: one device, one calendar hour."""

    device_id: str
    bucket: Bucket
    averages: Dict[str, float]
    latest: Reading


@dataclass
class DeviceHistory:
    """Second grouping stage: everything known about one device."""

    device_id: str
    latest: Reading
    history: Dict[str, Dict[str, float]] = field(
        default_factory=lambda: {name: {} for name in METRIC_NAMES}
    )


@dataclass(frozen=True)
class DeviceSummary:
    device_id: str
    device: Optional[str]
    latest: Dict[str, float]
    history: Dict[str, Dict[str, float]]


def filter_owner(readings: Iterable[Reading], user_id: Optional[str]) -> List[Reading]:
    if user_id is None:
        return list(readings)
    return [reading for reading in readings if reading.owner_user_id == user_id]


def filter_window(readings: Iterable[Reading], since: Optional[datetime]) -> List[Reading]:
    """Keep readings created at or after ``since``; ``None`` keeps everything."""
    if since is None:
        return list(readings)
    lower = to_utc(since)
    return [reading for reading in readings if to_utc(reading.created_at) >= lower]


def group_by_bucket(readings: Iterable[Reading]) -> Dict[Bucket, List[Reading]]:
    groups: Dict[Bucket, List[Reading]] = defaultdict(list)
    for reading in readings:
        groups[bucket_of(reading.created_at)].append(reading)
    return dict(groups)


def group_by_device_bucket(
    readings: Iterable[Reading],
) -> Dict[Tuple[str, Bucket], List[Reading]]:
    groups: Dict[Tuple[str, Bucket], List[Reading]] = defaultdict(list)
    for reading in readings:
        groups[(reading.owner_device_id, bucket_of(reading.created_at))].append(reading)
    return dict(groups)


def average(readings: Sequence[Reading], metric: str) -> Optional[float]:
    """Mean of the values present for ``metric``; ``None`` when no reading has one."""
    total = 0.0
    count = 0
    for reading in readings:
        value = reading.metric(metric)
        if value is None:
            continue
        total += value
        count += 1
    if not count:
        return None
    return total / count


def averages_for(readings: Sequence[Reading], metrics: Iterable[str]) -> Dict[str, float]:
    result: Dict[str, float] = {}
    for metric in metrics:
        value = average(readings, metric)
        if value is not None:
            result[metric] = value
    return result


def latest_of(readings: Iterable[Reading]) -> Optional[Reading]:
    """Most recently created reading; on equal timestamps the later one in order wins."""
    latest: Optional[Reading] = None
    for reading in readings:
        if latest is None or to_utc(reading.created_at) >= to_utc(latest.created_at):
            latest = reading
    return latest


def rollup_hours(
    groups: Mapping[Bucket, Sequence[Reading]], metrics: Sequence[str]
) -> List[HourlyRollup]:
    rows = [
        HourlyRollup(bucket=bucket, averages=averages_for(readings, metrics))
        for bucket, readings in groups.items()
    ]
    # Same hour-of-day on two days keeps chronological order.
    rows.sort(key=lambda row: (row.hour, row.bucket))
    return rows


def summarize_device_hours(
    groups: Mapping[Tuple[str, Bucket], Sequence[Reading]],
) -> List[DeviceHourGroup]:
    summaries: List[DeviceHourGroup] = []
    for (device_id, bucket), readings in groups.items():
        latest = latest_of(readings)
        if latest is None:
            continue
        summaries.append(
            DeviceHourGroup(
                device_id=device_id,
                bucket=bucket,
                averages=averages_for(readings, METRIC_NAMES),
                latest=latest,
            )
        )
    summaries.sort(key=lambda group: (group.device_id, group.bucket))
    return summaries


def fold_by_device(hour_groups: Iterable[DeviceHourGroup]) -> Dict[str, DeviceHistory]:
    """Collapse device-hour groups into per-device hour-label histories.

    Groups must arrive in ascending bucket order per device: a later group
    overwrites an earlier one carrying the same hour label.
    """
    folded: Dict[str, DeviceHistory] = {}
    for group in hour_groups:
        entry = folded.get(group.device_id)
        if entry is None:
            entry = DeviceHistory(device_id=group.device_id, latest=group.latest)
            folded[group.device_id] = entry
        elif to_utc(group.latest.created_at) >= to_utc(entry.latest.created_at):
            entry.latest = group.latest

        label = hour_label(group.bucket)
        for metric, value in group.averages.items():
            entry.history[metric][label] = value
    return folded


def join_devices(
    histories: Mapping[str, DeviceHistory], devices: Mapping[str, Device]
) -> List[DeviceSummary]:
    """Attach display names; devices missing from the directory are dropped."""
    rows: List[DeviceSummary] = []
    for device_id, entry in histories.items():
        device = devices.get(device_id)
        if device is None:
            continue
        rows.append(
            DeviceSummary(
                device_id=device_id,
                device=device.name,
                latest=entry.latest.metric_values(),
                history={
                    metric: dict(values)
                    for metric, values in entry.history.items()
                    if values
                },
            )
        )
    rows.sort(key=lambda row: (row.device is not None, row.device or "", row.device_id))
    return rows


class Aggregator:
    """Pure aggregation component that can be unit tested in isolation."""

    def hourly_rollup(
        self,
        readings: Iterable[Reading],
        metrics: Sequence[str],
        since: Optional[datetime] = None,
        user_id: Optional[str] = None,
    ) -> List[HourlyRollup]:
        windowed = filter_window(filter_owner(readings, user_id), since)
        return rollup_hours(group_by_bucket(windowed), metrics)

    def device_summary(
        self,
        readings: Iterable[Reading],
        devices: Mapping[str, Device],
        user_id: Optional[str] = None,
    ) -> List[DeviceSummary]:
        owned = filter_owner(readings, user_id)
        hour_groups = summarize_device_hours(group_by_device_bucket(owned))
        return join_devices(fold_by_device(hour_groups), devices)
