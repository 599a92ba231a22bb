"""Group-key selectors and the Stats aggregator (flat and per-bucket)."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator, Mapping, Sequence
from dataclasses import asdict, dataclass
from typing import Any

import pandas as pd

from flow_app.analytics.metrics.binning import Bucket, assign_labels, frame_reference_column
from flow_app.analytics.metrics.stats import Stats, mean_or_none, summarize
from flow_app.core.config import (
    DEFECT_TYPES,
    NO_PRIORITY,
    NO_TAG,
    PHASE_COMPLETED,
    PHASE_IN_PROGRESS,
    UNASSIGNED_PERSON,
    UNASSIGNED_TEAM,
    UNKNOWN_LABEL,
)
from flow_app.core.mappers import extract_team
from flow_app.core.status import add_lifecycle_metrics
from flow_app.core.taxonomy import load_taxonomy

logger = logging.getLogger(__name__)

GroupKey = Callable[[Mapping[str, Any]], Any]

_GROUP_COLUMN = "_group"
_BUCKET_COLUMN = "_bucket"


class UnknownSelectorError(KeyError):
    """Raised for a group-key selector name that is not registered."""


class UnknownMetricError(KeyError):
    """Raised when a requested metric column does not exist on the frame."""


def _text(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None
    text = str(value).strip()
    return text or None


def _team(row: Mapping[str, Any]) -> str:
    team = _text(row.get("team"))
    if team:
        return team
    area = _text(row.get("area_path"))
    return extract_team(area) if area else UNASSIGNED_TEAM


def _priority(row: Mapping[str, Any]) -> str:
    value = row.get("priority")
    if isinstance(value, float) and not pd.isna(value) and value.is_integer():
        return str(int(value))
    return _text(value) or NO_PRIORITY


def _tags(row: Mapping[str, Any]) -> list[str]:
    value = row.get("tags")
    if isinstance(value, str):
        value = value.replace(";", ",").split(",")
    if not isinstance(value, Iterable):
        return [NO_TAG]
    tags = [t for t in (_text(v) for v in value) if t]
    return list(dict.fromkeys(tags)) or [NO_TAG]


def _phase(row: Mapping[str, Any]) -> str:
    phase = _text(row.get("phase"))
    if phase:
        return phase
    return load_taxonomy().phase_of(_text(row.get("state")))


def _field_or(name: str, fallback: str) -> GroupKey:
    def selector(row: Mapping[str, Any]) -> str:
        return _text(row.get(name)) or fallback

    selector.__name__ = f"select_{name}"
    return selector


GROUP_SELECTORS: dict[str, GroupKey] = {
    "team": _team,
    "type": _field_or("type", UNKNOWN_LABEL),
    "assignee": _field_or("assigned_to", UNASSIGNED_PERSON),
    "priority": _priority,
    "tag": _tags,
    "creator": _field_or("created_by", UNKNOWN_LABEL),
    "state": _field_or("state", UNKNOWN_LABEL),
    "phase": _phase,
    "client": _field_or("client_type", UNKNOWN_LABEL),
}


def resolve_selector(key: str | GroupKey) -> GroupKey:
    if callable(key):
        return key
    try:
        return GROUP_SELECTORS[key]
    except KeyError:
        raise UnknownSelectorError(key) from None


def _normalize_key(value: Any) -> Any:
    # Null keys go to the fallback group; lists keep one entry per distinct value
    if isinstance(value, (list, tuple, set, frozenset)):
        labels = [_normalize_key(v) for v in value]
        return list(dict.fromkeys(labels)) or [UNKNOWN_LABEL]
    if value is None or (pd.api.types.is_scalar(value) and pd.isna(value)):
        return UNKNOWN_LABEL
    if isinstance(value, str) and not value.strip():
        return UNKNOWN_LABEL
    return value


def group_keys(df: pd.DataFrame, key: str | GroupKey) -> pd.Series:
    """Group label per row; multi-valued selectors yield a list per row.

    Missing keys (None, NaN, blank text, empty lists) map to ``UNKNOWN_LABEL``.
    """
    selector = resolve_selector(key)
    if df.empty:
        return pd.Series([], index=df.index, dtype=object)
    labels = [_normalize_key(selector(row)) for row in df.to_dict("records")]
    return pd.Series(labels, index=df.index, dtype=object)


def _ensure_enriched(df: pd.DataFrame) -> pd.DataFrame:
    if "phase" in df.columns and "closed_dt" in df.columns:
        return df
    return add_lifecycle_metrics(df)


def _check_metrics(df: pd.DataFrame, metrics: Sequence[str]) -> None:
    if df.empty and not len(df.columns):
        return
    for metric in metrics:
        if metric not in df.columns:
            raise UnknownMetricError(metric)


def _keyed(df: pd.DataFrame, key: str | GroupKey) -> pd.DataFrame:
    out = df.copy()
    out[_GROUP_COLUMN] = group_keys(out, key)
    # Items with several tags appear once per tag
    return out.explode(_GROUP_COLUMN)


def split_by_group(df: pd.DataFrame, key: str | GroupKey) -> Iterator[tuple[str, pd.DataFrame]]:
    """Yield (group label, rows) pairs in sorted label order; tagged rows repeat per tag."""
    if df.empty:
        return
    keyed = _keyed(df, key)
    for group, frame in keyed.groupby(_GROUP_COLUMN, sort=True):
        yield str(group), frame.drop(columns=_GROUP_COLUMN)


def _stats_for(frame: pd.DataFrame, metrics: Sequence[str]) -> dict[str, Stats]:
    return {metric: summarize(frame[metric]) for metric in metrics}


def aggregate(
    df: pd.DataFrame,
    key: str | GroupKey = "team",
    metrics: Sequence[str] = ("cycle_time",),
) -> dict[str, dict[str, Stats]]:
    """Per-group :class:`Stats` for each metric, groups in sorted order.

    Every row lands in a group (missing keys use the selector's fallback
    label), so group ``count`` values add up to the number of rows for
    single-valued selectors.
    """
    metrics = tuple(metrics)
    selector = resolve_selector(key)
    if df.empty:
        _check_metrics(df, metrics)
        return {}
    enriched = _ensure_enriched(df)
    _check_metrics(enriched, metrics)
    return {group: _stats_for(frame, metrics) for group, frame in split_by_group(enriched, selector)}


def _reference_series(df: pd.DataFrame, reference: str) -> pd.Series:
    column = frame_reference_column(reference)
    if column in df.columns:
        return df[column]
    if reference in df.columns:
        return df[reference]
    logger.warning("Reference column %r missing; no item will be bucketed", reference)
    return pd.Series(pd.NaT, index=df.index)


def aggregate_by_bucket(
    df: pd.DataFrame,
    buckets: list[Bucket],
    reference: str = "closed",
    key: str | GroupKey = "team",
    metrics: Sequence[str] = ("cycle_time",),
) -> dict[str, dict[str, dict[str, Stats]]]:
    """Two-level ``{bucket label: {group: {metric: Stats}}}`` in a single pass.

    Bucket labels are assigned once per row, then one groupby over
    ``(bucket, group)`` fills the cells. Every bucket label is present in the
    result, empty buckets mapping to ``{}``.
    """
    metrics = tuple(metrics)
    selector = resolve_selector(key)
    result: dict[str, dict[str, dict[str, Stats]]] = {b.label: {} for b in buckets}
    if df.empty:
        _check_metrics(df, metrics)
        return result
    enriched = _ensure_enriched(df)
    _check_metrics(enriched, metrics)
    frame = enriched.copy()
    frame[_BUCKET_COLUMN] = assign_labels(_reference_series(frame, reference), buckets)
    frame = frame[frame[_BUCKET_COLUMN].notna()]
    if frame.empty:
        return result
    keyed = _keyed(frame, selector)
    for (label, group), cell in keyed.groupby([_BUCKET_COLUMN, _GROUP_COLUMN], sort=True):
        result[label][str(group)] = _stats_for(cell, metrics)
    return result


def bucket_series(
    df: pd.DataFrame,
    buckets: list[Bucket],
    reference: str = "closed",
    metrics: Sequence[str] = ("cycle_time",),
) -> pd.DataFrame:
    """One row per bucket: label, bounds, counts and mean/p50/p85 per metric.

    ``count`` is every item whose reference date falls in the bucket and
    ``completed`` the subset in the Completed phase (throughput).
    """
    metrics = tuple(metrics)
    columns = ["label", "start", "end", "count", "completed"]
    for metric in metrics:
        columns.extend([f"{metric}_mean", f"{metric}_p50", f"{metric}_p85"])
    enriched = _ensure_enriched(df) if not df.empty else df
    _check_metrics(enriched, metrics)
    if enriched.empty:
        labels = pd.Series([], dtype=object)
    else:
        labels = assign_labels(_reference_series(enriched, reference), buckets)
    grouped = {label: frame for label, frame in enriched.groupby(labels.to_numpy(), sort=False)} if len(labels) else {}
    rows: list[dict[str, Any]] = []
    for bucket in buckets:
        frame = grouped.get(bucket.label)
        row: dict[str, Any] = {"label": bucket.label, "start": bucket.start, "end": bucket.end}
        if frame is None or frame.empty:
            row["count"] = 0
            row["completed"] = 0
            for metric in metrics:
                row.update({f"{metric}_mean": None, f"{metric}_p50": None, f"{metric}_p85": None})
        else:
            row["count"] = int(len(frame))
            row["completed"] = int((frame["phase"] == PHASE_COMPLETED).sum())
            for metric in metrics:
                stats = summarize(frame[metric])
                row.update({f"{metric}_mean": stats.mean, f"{metric}_p50": stats.p50, f"{metric}_p85": stats.p85})
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)


@dataclass(slots=True)
class FlowKpis:
    total: int
    completed: int
    wip: int
    bugs: int
    avg_cycle_time: float | None
    avg_lead_time: float | None
    completion_rate: float
    bug_rate: float
    teams: int

    def to_dict(self) -> dict:
        return asdict(self)


def summary_kpis(df: pd.DataFrame) -> FlowKpis:
    """Headline counts and rates for a set of items.

    Rates are percentages of the item total and are 0 for an empty set; the
    average cycle/lead time stays None when no item has a defined value.
    """
    if df.empty:
        return FlowKpis(0, 0, 0, 0, None, None, 0.0, 0.0, 0)
    enriched = _ensure_enriched(df)
    total = int(len(enriched))
    completed_mask = enriched["phase"] == PHASE_COMPLETED
    completed = int(completed_mask.sum())
    wip = int((enriched["phase"] == PHASE_IN_PROGRESS).sum())
    types = enriched["type"] if "type" in enriched.columns else pd.Series(None, index=enriched.index)
    bugs = int(types.isin(DEFECT_TYPES).sum())
    return FlowKpis(
        total=total,
        completed=completed,
        wip=wip,
        bugs=bugs,
        avg_cycle_time=mean_or_none(enriched.loc[completed_mask, "cycle_time"]),
        avg_lead_time=mean_or_none(enriched.loc[completed_mask, "lead_time"]),
        completion_rate=completed / total * 100.0,
        bug_rate=bugs / total * 100.0,
        teams=int(group_keys(enriched, "team").nunique()),
    )


def stats_frame(result: Mapping[str, Mapping[str, Stats]], metric: str = "cycle_time") -> pd.DataFrame:
    """Flatten ``aggregate`` output for one metric into a table, one row per group."""
    columns = ["group", "count", "samples", "excluded", "mean", "p50", "p85", "p95", "min", "max"]
    rows = []
    for group, metrics in result.items():
        stats = metrics.get(metric)
        if stats is None:
            raise UnknownMetricError(metric)
        row = stats.to_dict()
        row["group"] = group
        rows.append(row)
    return pd.DataFrame(rows, columns=columns)
