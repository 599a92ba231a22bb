"""Lifecycle classification and derived duration metrics.

This module is the single place where a raw tracker state becomes a lifecycle
phase and where ``cycle_time``, ``lead_time`` and ``age`` are derived. Both the
per-item :func:`classify` and the vectorized :func:`add_lifecycle_metrics`
apply the same rules, so every chart and table sees identical values:

- durations are whole days, ``ceil((end - start) / 1 day)``;
- a duration is defined only when both timestamps exist, ``end >= start`` and
  the result is below ``MAX_VALID_DAYS``; otherwise it is ``None``/NaN;
- cycle and lead time are defined only for items in the Completed phase;
- lead time equals cycle time unless an ``activated_date`` (start of work) is
  known, in which case cycle time is measured from activation.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from typing import Any

import numpy as np
import pandas as pd

from .config import MAX_VALID_DAYS, PHASE_COMPLETED, PHASE_IN_PROGRESS, SECONDS_PER_DAY
from .dates import get_tz, localize, normalize_timestamp, to_series
from .models import Classification
from .taxonomy import StateTaxonomy, load_taxonomy

logger = logging.getLogger(__name__)

DATE_COLUMNS: dict[str, str] = {
    "created_date": "created_dt",
    "changed_date": "changed_dt",
    "closed_date": "closed_dt",
    "activated_date": "activated_dt",
}


def _field(item: Any, name: str) -> Any:
    if isinstance(item, Mapping):
        return item.get(name)
    return getattr(item, name, None)


def _plausible(days: float | None) -> float | None:
    if days is None:
        return None
    try:
        value = float(days)
    except (TypeError, ValueError):
        return None
    if math.isnan(value) or value < 0 or value >= MAX_VALID_DAYS:
        logger.debug("Discarding implausible duration %r", days)
        return None
    return value


def _materialized(value: Any) -> float | None:
    """A source-supplied duration, or None when absent or not numeric."""
    if value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return None if math.isnan(number) else number


def _resolve_now(now, tz) -> pd.Timestamp:
    if now is None:
        return pd.Timestamp.now(tz=tz)
    return localize(now, tz)


def phase_of(state: str | None, taxonomy: StateTaxonomy | None = None) -> str:
    """Map a raw state string to its lifecycle phase.

    Examples
    --------
    >>> phase_of("Concluído")
    'Completed'
    >>> phase_of("done")
    'Other'
    """
    taxonomy = taxonomy or load_taxonomy()
    return taxonomy.phase_of(state if isinstance(state, str) else None)


def is_completed(state: str | None, taxonomy: StateTaxonomy | None = None) -> bool:
    return phase_of(state, taxonomy) == PHASE_COMPLETED


def is_in_progress(state: str | None, taxonomy: StateTaxonomy | None = None) -> bool:
    return phase_of(state, taxonomy) == PHASE_IN_PROGRESS


def compute_days(start, end) -> float | None:
    """Whole days from ``start`` to ``end``, or None when undefined or implausible."""
    start_ts = normalize_timestamp(start)
    end_ts = normalize_timestamp(end)
    if start_ts is None or end_ts is None:
        return None
    seconds = (end_ts - start_ts).total_seconds()
    if seconds < 0:
        return None
    return _plausible(float(math.ceil(seconds / SECONDS_PER_DAY)))


def classify(item: Any, taxonomy: StateTaxonomy | None = None, now=None) -> Classification:
    """Classify one work item (a WorkItem or a mapping with the same field names)."""
    taxonomy = taxonomy or load_taxonomy()
    tz = get_tz()
    phase = phase_of(_field(item, "state"), taxonomy)
    created = _field(item, "created_date")

    cycle_time: float | None = None
    lead_time: float | None = None
    if phase == PHASE_COMPLETED:
        closed = _field(item, "closed_date")
        activated = _field(item, "activated_date")
        computed_lead = compute_days(created, closed)
        has_activation = normalize_timestamp(activated) is not None
        computed_cycle = compute_days(activated, closed) if has_activation else computed_lead

        materialized_cycle = _materialized(_field(item, "cycle_time"))
        materialized_lead = _materialized(_field(item, "lead_time"))
        if materialized_cycle is not None:
            cycle_time = _plausible(materialized_cycle)
        else:
            cycle_time = computed_cycle
        if materialized_lead is not None:
            lead_time = _plausible(materialized_lead)
        else:
            lead_time = computed_lead if has_activation else cycle_time

    age: int | None = None
    created_ts = normalize_timestamp(created, tz)
    if created_ts is not None:
        seconds = (_resolve_now(now, tz) - created_ts).total_seconds()
        if seconds >= 0:
            age = int(math.floor(seconds / SECONDS_PER_DAY))

    return Classification(phase=phase, cycle_time=cycle_time, lead_time=lead_time, age=age)


def _days_between(start: pd.Series, end: pd.Series) -> pd.Series:
    seconds = (end - start).dt.total_seconds()
    days = np.ceil(seconds / SECONDS_PER_DAY)
    return days.where((seconds >= 0) & (days < MAX_VALID_DAYS))


def _trusted(series: pd.Series) -> pd.Series:
    values = pd.to_numeric(series, errors="coerce")
    return values.where((values >= 0) & (values < MAX_VALID_DAYS))


def add_lifecycle_metrics(
    df: pd.DataFrame,
    taxonomy: StateTaxonomy | None = None,
    now=None,
) -> pd.DataFrame:
    """Add ``phase``, ``cycle_time``, ``lead_time``, ``age`` and ``*_dt`` columns.

    Undefined metrics are NaN, never zero. The input frame is not modified.
    """
    taxonomy = taxonomy or load_taxonomy()
    tz = get_tz()
    out = df.copy()
    if out.empty:
        for column in ("phase", "cycle_time", "lead_time", "age", *DATE_COLUMNS.values()):
            if column not in out.columns:
                out[column] = pd.Series(dtype=object)
        return out

    for source, target in DATE_COLUMNS.items():
        if source in out.columns:
            out[target] = to_series(out[source], tz)
        else:
            out[target] = pd.Series(pd.NaT, index=out.index, dtype=f"datetime64[ns, {tz.zone}]")

    states = out["state"] if "state" in out.columns else pd.Series(None, index=out.index, dtype=object)
    out["phase"] = states.apply(lambda s: taxonomy.phase_of(s if isinstance(s, str) else None))
    completed = out["phase"] == PHASE_COMPLETED

    computed_lead = _days_between(out["created_dt"], out["closed_dt"])
    has_activation = out["activated_dt"].notna()
    computed_cycle = _days_between(out["activated_dt"], out["closed_dt"]).where(has_activation, computed_lead)

    if "cycle_time" in out.columns:
        raw_cycle = pd.to_numeric(out["cycle_time"], errors="coerce")
        cycle = computed_cycle.where(raw_cycle.isna(), _trusted(raw_cycle))
    else:
        cycle = computed_cycle
    if "lead_time" in out.columns:
        raw_lead = pd.to_numeric(out["lead_time"], errors="coerce")
        fallback_lead = computed_lead.where(has_activation, cycle)
        lead = fallback_lead.where(raw_lead.isna(), _trusted(raw_lead))
    else:
        lead = computed_lead.where(has_activation, cycle)

    out["cycle_time"] = cycle.where(completed).astype(float)
    out["lead_time"] = lead.where(completed).astype(float)

    age_seconds = (_resolve_now(now, tz) - out["created_dt"]).dt.total_seconds()
    out["age"] = np.floor(age_seconds / SECONDS_PER_DAY).where(age_seconds >= 0).astype(float)
    return out
