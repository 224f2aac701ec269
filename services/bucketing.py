"""Hourly time bucketing in UTC."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import NamedTuple


class Bucket(NamedTuple):
    """Calendar hour a reading falls into; ordering follows time."""

    year: int
    month: int
    day: int
    hour: int


def to_utc(timestamp: datetime) -> datetime:
    """Normalise a timestamp to aware UTC; naive values are taken as UTC."""
    if timestamp.tzinfo is None:
        return timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc)


def bucket_of(timestamp: datetime) -> Bucket:
    moment = to_utc(timestamp)
    return Bucket(moment.year, moment.month, moment.day, moment.hour)


def hour_label(bucket: Bucket) -> str:
    # Not unique across days; callers pivoting on it accept collisions.
    return str(bucket.hour)
