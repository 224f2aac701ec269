"""Resolution of client supplied metric filters."""

from __future__ import annotations

from typing import Iterable, Optional, Tuple

from models.records import METRIC_FIELDS

METRIC_NAMES: Tuple[str, ...] = tuple(METRIC_FIELDS)


def select_metrics(requested: Optional[Iterable[str]] = None) -> Tuple[str, ...]:
    """Return the metrics to compute, in canonical order.

    ``None`` selects every metric. Any other iterable is intersected with the
    known metric names, so unknown names are dropped and an empty iterable
    selects nothing.
    """
    if requested is None:
        return METRIC_NAMES
    wanted = {name.strip() for name in requested}
    return tuple(name for name in METRIC_NAMES if name in wanted)
