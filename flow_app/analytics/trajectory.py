"""Burndown and cumulative flow series.

Both are derived from the current snapshot only. The burndown uses each
completed item's real ``closed_date``; the cumulative flow diagram uses real
close dates for the done band but places every open item in the column of its
*current* state for each day it existed. That CFD is therefore an
approximation and is always returned flagged as such.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import asdict, dataclass, field

import numpy as np
import pandas as pd

from flow_app.analytics.periods import ONE_MICROSECOND, Period
from flow_app.core.config import CFD_COLUMNS, CFD_MAX_DAYS, CFD_OTHER_COLUMN, PHASE_COMPLETED, PHASE_REMOVED
from flow_app.core.dates import get_tz, localize
from flow_app.core.status import add_lifecycle_metrics
from flow_app.core.taxonomy import StateTaxonomy

CFD_CAVEAT = (
    "Approximation: open items are counted in their current state for every day since "
    "creation; only the done band uses real close dates."
)


def _enriched(df: pd.DataFrame, taxonomy: StateTaxonomy | None) -> pd.DataFrame:
    if taxonomy is None and "phase" in df.columns and "closed_dt" in df.columns:
        return df
    return add_lifecycle_metrics(df, taxonomy=taxonomy)


def _anchor(now, tz) -> pd.Timestamp:
    return localize(now, tz) if now is not None else pd.Timestamp.now(tz=tz)


def _day_ends(days: pd.DatetimeIndex) -> np.ndarray:
    return (days + pd.Timedelta(days=1) - ONE_MICROSECOND).tz_convert("UTC").asi8


def _sorted_ns(values: pd.Series) -> np.ndarray:
    clean = values.dropna()
    if clean.empty:
        return np.array([], dtype=np.int64)
    return np.sort(pd.DatetimeIndex(clean).tz_convert("UTC").asi8)


# =============================================================================
# Burndown
# =============================================================================
@dataclass(slots=True)
class BurndownPoint:
    date: str
    remaining: int
    remaining_points: float
    ideal: float
    ideal_points: float


@dataclass(slots=True)
class BurndownSeries:
    start: pd.Timestamp
    end: pd.Timestamp
    total_items: int
    total_points: float
    total_days: int
    points: list[BurndownPoint] = field(default_factory=list)

    def to_frame(self) -> pd.DataFrame:
        columns = ["date", "remaining", "remaining_points", "ideal", "ideal_points"]
        return pd.DataFrame([asdict(p) for p in self.points], columns=columns)

    def to_dict(self) -> dict:
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "total_items": self.total_items,
            "total_points": self.total_points,
            "total_days": self.total_days,
            "points": [asdict(p) for p in self.points],
        }


def _ideal(total: float, idx: int, total_days: int) -> float:
    if total_days <= 1:
        return 0.0
    return round(max(0.0, total - total / (total_days - 1) * idx), 1)


def burndown(
    df: pd.DataFrame,
    start,
    end,
    now=None,
    taxonomy: StateTaxonomy | None = None,
) -> BurndownSeries:
    """Remaining items and story points per day of ``[start, end]``.

    Every row of ``df`` is part of the scope. One point per calendar day is
    produced from ``start`` up to ``min(end, today)``; an item counts as done
    on a day when it is completed and closed by the end of that day. The
    ideal line falls linearly from the total to zero across the whole span.
    """
    tz = get_tz()
    period = Period(localize(start, tz), localize(end, tz), "sprint")
    first_day = period.start.normalize()
    last_day = period.end.normalize()
    total_days = int((last_day - first_day).days) + 1
    effective_last = min(last_day, _anchor(now, tz).normalize())

    if df.empty:
        total_items, total_points = 0, 0.0
        closed_ns = np.array([], dtype=np.int64)
        closed_points = np.array([], dtype=float)
    else:
        enriched = _enriched(df, taxonomy)
        points = (
            pd.to_numeric(enriched["story_points"], errors="coerce").fillna(0.0)
            if "story_points" in enriched.columns
            else pd.Series(0.0, index=enriched.index)
        )
        total_items = int(len(enriched))
        total_points = float(points.sum())
        done = enriched[(enriched["phase"] == PHASE_COMPLETED) & enriched["closed_dt"].notna()]
        order = pd.DatetimeIndex(done["closed_dt"]).tz_convert("UTC").asi8.argsort(kind="mergesort")
        closed_ns = pd.DatetimeIndex(done["closed_dt"]).tz_convert("UTC").asi8[order]
        closed_points = points.loc[done.index].to_numpy(dtype=float)[order]

    series = BurndownSeries(period.start, period.end, total_items, total_points, total_days)
    if effective_last < first_day:
        return series
    days = pd.date_range(first_day, effective_last, freq="D")
    completed_counts = np.searchsorted(closed_ns, _day_ends(days), side="right")
    cumulative_points = np.concatenate([[0.0], np.cumsum(closed_points)])
    for idx, (day, done_count) in enumerate(zip(days, completed_counts)):
        series.points.append(
            BurndownPoint(
                date=day.strftime("%Y-%m-%d"),
                remaining=int(total_items - done_count),
                remaining_points=round(total_points - float(cumulative_points[done_count]), 1),
                ideal=_ideal(total_items, idx, total_days),
                ideal_points=_ideal(total_points, idx, total_days),
            )
        )
    return series


# =============================================================================
# Cumulative flow
# =============================================================================
@dataclass(slots=True)
class CumulativeFlow:
    columns: list[str]
    points: list[dict]
    approximate: bool = True
    caveat: str = CFD_CAVEAT

    def to_frame(self, long: bool = False) -> pd.DataFrame:
        frame = pd.DataFrame(self.points, columns=["date", *self.columns])
        if long:
            return frame.melt(id_vars="date", var_name="column", value_name="count")
        return frame

    def to_dict(self) -> dict:
        return asdict(self)


def cumulative_flow(
    df: pd.DataFrame,
    period: Period,
    columns: Sequence[tuple[str, Sequence[str]]] | None = None,
    max_days: int = CFD_MAX_DAYS,
    now=None,
    taxonomy: StateTaxonomy | None = None,
) -> CumulativeFlow:
    """Daily counts per workflow column over ``period`` (last ``max_days`` days at most).

    The first entry of ``columns`` is the done band: items in one of its
    states, closed by the end of the day. With the default columns the band
    follows the taxonomy's Completed phase instead. Every other open,
    non-removed item created by the end of the day is counted in the column
    listing its current state, or in ``Other`` when no column lists it.
    """
    custom_columns = bool(columns)
    columns = list(columns or CFD_COLUMNS)
    done_label = columns[0][0]
    labels = [label for label, _ in columns]
    if CFD_OTHER_COLUMN not in labels:
        labels.append(CFD_OTHER_COLUMN)
    state_column = {state: label for label, states in columns[1:] for state in states}

    tz = period.start.tz
    last_day = min(period.end, _anchor(now, tz)).normalize()
    first_day = max(period.start.normalize(), last_day - pd.Timedelta(days=max(max_days, 1) - 1))
    if last_day < first_day:
        return CumulativeFlow(labels, [])
    days = pd.date_range(first_day, last_day, freq="D")
    day_ends = _day_ends(days)

    counts: dict[str, np.ndarray] = {label: np.zeros(len(days), dtype=int) for label in labels}
    if not df.empty:
        enriched = _enriched(df, taxonomy)
        if custom_columns:
            in_done = enriched["state"].isin(set(columns[0][1]))
        else:
            in_done = enriched["phase"] == PHASE_COMPLETED
        done = enriched[in_done]
        counts[done_label] = np.searchsorted(_sorted_ns(done["closed_dt"]), day_ends, side="right")

        open_items = enriched[~in_done & ~enriched["phase"].isin([PHASE_COMPLETED, PHASE_REMOVED])]
        if not open_items.empty:
            column_of = open_items["state"].map(lambda s: state_column.get(s, CFD_OTHER_COLUMN))
            for label, part in open_items.groupby(column_of, sort=False):
                created = _sorted_ns(part["created_dt"])
                counts[label] = counts[label] + np.searchsorted(created, day_ends, side="right")

    points: list[dict] = []
    for i, day in enumerate(days):
        point = {"date": day.strftime("%Y-%m-%d")}
        point.update({label: int(counts[label][i]) for label in labels})
        points.append(point)
    return CumulativeFlow(labels, points)
