"""Time bucketing: partition a period into buckets and assign items to them.

Daily, weekly (Monday start), biweekly and monthly buckets follow the calendar,
with the first and last bucket clipped to the period. Quarterly, semiannual
and annual buckets are fixed 90/180/365-day windows counted from the period
start; they are deliberately not calendar quarters because periods are often
arbitrary custom ranges.

Every bucket is inclusive on both ends and the next bucket starts one
microsecond after the previous one ends, so a bucketing call always forms a
total partition of the period.
"""

from __future__ import annotations

import logging
import math
from bisect import bisect_right
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

import numpy as np
import pandas as pd

from flow_app.analytics.periods import ONE_MICROSECOND, Period
from flow_app.core.config import DEFAULT_GRANULARITY
from flow_app.core.dates import normalize_timestamp, to_series

logger = logging.getLogger(__name__)

CALENDAR_STEPS: dict[str, pd.DateOffset | pd.Timedelta] = {
    "daily": pd.Timedelta(days=1),
    "weekly": pd.Timedelta(weeks=1),
    "biweekly": pd.Timedelta(weeks=2),
    "monthly": pd.DateOffset(months=1),
}
FIXED_WINDOW_DAYS: dict[str, int] = {
    "quarterly": 90,
    "semiannual": 180,
    "annual": 365,
}
GRANULARITIES: tuple[str, ...] = (*CALENDAR_STEPS, *FIXED_WINDOW_DAYS)

# Reference date shorthands: delivered views bucket by completion, arrival views by creation
REFERENCE_ALIASES: dict[str, str] = {
    "closed": "closed_date",
    "completion": "closed_date",
    "delivered": "closed_date",
    "created": "created_date",
    "creation": "created_date",
    "arrival": "created_date",
    "changed": "changed_date",
}
FRAME_COLUMNS: dict[str, str] = {
    "closed_date": "closed_dt",
    "created_date": "created_dt",
    "changed_date": "changed_dt",
    "activated_date": "activated_dt",
}


@dataclass(slots=True)
class Bucket:
    label: str
    start: pd.Timestamp
    end: pd.Timestamp
    items: list[Any] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.items)

    def contains(self, ts) -> bool:
        return ts is not None and self.start <= ts <= self.end

    def to_dict(self, include_items: bool = False) -> dict[str, Any]:
        out: dict[str, Any] = {
            "label": self.label,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "count": self.count,
        }
        if include_items:
            out["items"] = [_item_id(item) for item in self.items]
        return out


def _item_id(item: Any) -> Any:
    if isinstance(item, Mapping):
        return item.get("work_item_id", item.get("workItemId"))
    return getattr(item, "work_item_id", item)


def normalize_granularity(granularity: str | None) -> str:
    value = str(granularity or "").strip().lower()
    if value in GRANULARITIES:
        return value
    logger.warning("Unknown granularity %r; falling back to %s", granularity, DEFAULT_GRANULARITY)
    return DEFAULT_GRANULARITY


def _aligned_start(naive: pd.Timestamp, granularity: str) -> pd.Timestamp:
    day = naive.normalize()
    if granularity in ("weekly", "biweekly"):
        return day - pd.Timedelta(days=day.weekday())
    if granularity == "monthly":
        return day.replace(day=1)
    return day


def _label(boundary: pd.Timestamp, granularity: str) -> str:
    if granularity == "monthly":
        return boundary.strftime("%Y-%m")
    return boundary.strftime("%Y-%m-%d")


def _calendar_buckets(period: Period, granularity: str) -> list[Bucket]:
    tz = period.start.tz
    step = CALENDAR_STEPS[granularity]
    naive_end = period.end.tz_localize(None)
    cursor = _aligned_start(period.start.tz_localize(None), granularity)
    buckets: list[Bucket] = []
    while cursor <= naive_end:
        nxt = cursor + step
        start = max(cursor.tz_localize(tz, nonexistent="shift_forward", ambiguous=False), period.start)
        end = min(
            nxt.tz_localize(tz, nonexistent="shift_forward", ambiguous=False) - ONE_MICROSECOND,
            period.end,
        )
        buckets.append(Bucket(_label(cursor, granularity), start, end))
        cursor = nxt
    return buckets


def _fixed_buckets(period: Period, days: int) -> list[Bucket]:
    step = pd.Timedelta(days=days)
    buckets: list[Bucket] = []
    cursor = period.start
    while cursor <= period.end:
        nxt = cursor + step
        buckets.append(Bucket(cursor.strftime("%Y-%m-%d"), cursor, min(nxt - ONE_MICROSECOND, period.end)))
        cursor = nxt
    return buckets


def bucketize(period: Period, granularity: str | None) -> list[Bucket]:
    """Partition ``period`` into chronologically ordered, contiguous buckets.

    Empty buckets are part of the result; callers keep them so chart axes stay
    contiguous. Unknown granularities fall back to monthly.
    """
    granularity = normalize_granularity(granularity)
    if granularity in FIXED_WINDOW_DAYS:
        return _fixed_buckets(period, FIXED_WINDOW_DAYS[granularity])
    return _calendar_buckets(period, granularity)


def _reference_getter(reference: str | Callable[[Any], Any]) -> Callable[[Any], Any]:
    if callable(reference):
        return reference
    name = REFERENCE_ALIASES.get(reference, reference)

    def getter(item: Any) -> Any:
        if isinstance(item, Mapping):
            return item.get(name)
        return getattr(item, name, None)

    return getter


def assign(
    items: Iterable[Any],
    buckets: list[Bucket],
    reference: str | Callable[[Any], Any] = "closed_date",
) -> list[Bucket]:
    """Append each item to the single bucket containing its reference date.

    Items whose reference date is missing or outside every bucket are left out
    of all buckets; they still count in whatever total the caller keeps, so the
    sum of bucket counts may legitimately be smaller than the item total.
    """
    if not buckets:
        return buckets
    getter = _reference_getter(reference)
    tz = buckets[0].start.tz
    starts = [b.start for b in buckets]
    skipped = 0
    for item in items:
        ts = normalize_timestamp(getter(item), tz)
        if ts is None:
            skipped += 1
            continue
        idx = bisect_right(starts, ts) - 1
        if idx >= 0 and ts <= buckets[idx].end:
            buckets[idx].items.append(item)
        else:
            skipped += 1
    if skipped:
        logger.debug("%s item(s) fell outside every bucket", skipped)
    return buckets


def frame_reference_column(reference: str) -> str:
    """Map a reference shorthand to the enriched frame's timestamp column."""
    name = REFERENCE_ALIASES.get(reference, reference)
    return FRAME_COLUMNS.get(name, name)


def assign_labels(dates, buckets: list[Bucket]) -> pd.Series:
    """Vectorized bucket lookup: the label of the bucket holding each date, else None."""
    series = to_series(dates)
    if series.empty or not buckets:
        return pd.Series([None] * len(series), index=series.index, dtype=object)
    starts = pd.DatetimeIndex([b.start for b in buckets]).tz_convert("UTC")
    ends = pd.DatetimeIndex([b.end for b in buckets]).tz_convert("UTC")
    values = pd.DatetimeIndex(series.dt.tz_convert("UTC"))
    raw_pos = starts.searchsorted(values, side="right") - 1
    pos = np.clip(raw_pos, 0, len(buckets) - 1)
    inside = (raw_pos >= 0) & ~values.isna() & np.asarray(values <= ends.take(pos))
    labels = np.array([b.label for b in buckets], dtype=object)[pos]
    return pd.Series(np.where(inside, labels, None), index=series.index, dtype=object)


def determine_time_bin_step(values: pd.Series, *, target_bins: int = 12, min_step: float = 1.0) -> float | None:
    """Step (in days) that splits the value range into roughly ``target_bins`` bins."""
    if values is None:
        return None
    numeric = pd.to_numeric(values, errors="coerce").dropna()
    if numeric.empty:
        return None
    value_range = float(numeric.max() - numeric.min())
    if math.isnan(value_range) or value_range <= 0:
        return float(min_step)
    raw_step = value_range / max(target_bins, 1)
    return float(max(math.ceil(raw_step), min_step))


def build_duration_bin_spec(values: pd.Series, *, target_bins: int = 12, min_step: float = 1.0) -> dict | None:
    """Bin edges and labels ("0–<7d", "≥28d") for a duration histogram.

    Returns a dict with ``bins``, ``labels`` and ``step``, or None when there
    is nothing positive to bin.
    """
    step = determine_time_bin_step(values, target_bins=target_bins, min_step=min_step)
    if step is None:
        return None
    numeric = pd.to_numeric(values, errors="coerce").dropna()
    max_value = float(numeric.max())
    if math.isnan(max_value) or max_value <= 0:
        return None
    max_edge = math.ceil(max_value / step) * step
    edges: list[float] = [0.0]
    current = step
    while current <= max_edge + 1e-9:
        edges.append(round(current, 6))
        current += step
    edges.append(float("inf"))
    labels = [f"{int(edges[i])}–<{int(edges[i + 1])}d" for i in range(len(edges) - 2)]
    labels.append(f"≥{int(edges[-2])}d")
    return {"bins": edges, "labels": labels, "step": step}


def duration_histogram(values: pd.Series, **kwargs) -> pd.DataFrame:
    """Counts per duration bin (all bins kept, in order)."""
    spec = build_duration_bin_spec(values, **kwargs)
    if spec is None:
        return pd.DataFrame(columns=["bin", "count"])
    numeric = pd.to_numeric(values, errors="coerce").dropna()
    binned = pd.cut(numeric, bins=spec["bins"], labels=spec["labels"], right=False, include_lowest=True)
    counts = binned.value_counts(sort=False).reindex(spec["labels"], fill_value=0)
    return pd.DataFrame({"bin": spec["labels"], "count": counts.to_numpy(dtype=int)})
