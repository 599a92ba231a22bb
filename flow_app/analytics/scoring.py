"""Composite scores: Health Score, SLA compliance and flow efficiency.

All functions accept a raw or already enriched items frame and never modify
it. Exclusions are reported next to the results (``excluded``, ``None``
rates) so an empty sample is never shown as a zero.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import asdict, dataclass, field
from typing import Any

import pandas as pd

from flow_app.analytics.aggregations.groups import GroupKey, split_by_group
from flow_app.analytics.metrics.stats import mean_or_none, percentile
from flow_app.core.config import (
    DEFAULT_SLA_TARGET_DAYS,
    DEFAULT_TOP_N,
    DEFECT_TYPES,
    FLOW_EFFICIENCY_MIN_ITEMS,
    PHASE_COMPLETED,
    PHASE_IN_PROGRESS,
    PRIORITY_LABELS,
    SECONDS_PER_DAY,
    SETTINGS,
    HealthThresholds,
)
from flow_app.core.dates import get_tz, normalize_timestamp
from flow_app.core.models import StateTransition
from flow_app.core.status import add_lifecycle_metrics
from flow_app.core.taxonomy import StateTaxonomy, load_taxonomy

logger = logging.getLogger(__name__)


def _enriched(df: pd.DataFrame, now=None) -> pd.DataFrame:
    if now is None and "phase" in df.columns and "age" in df.columns:
        return df
    return add_lifecycle_metrics(df, now=now)


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _ladder(value: float, steps: Sequence[tuple[float, float]], floor: float, higher_is_better: bool) -> float:
    for bound, score in steps:
        if (value >= bound) if higher_is_better else (value <= bound):
            return _clamp(score)
    return _clamp(floor)


# =============================================================================
# Health Score
# =============================================================================
@dataclass(slots=True)
class HealthScore:
    score: int
    throughput: int
    avg_cycle_time: float | None
    defect_rate: float
    completion_rate: float
    total: int
    wip: int
    subscores: dict[str, float] = field(default_factory=dict)
    group: str | None = None

    def to_dict(self) -> dict:
        return asdict(self)


def health_score(df: pd.DataFrame, thresholds: HealthThresholds | None = None) -> HealthScore:
    """Blend four step sub-scores into a 0-100 health score.

    Sub-scores (each clamped to [0, 100]) use ``thresholds``:

    - throughput: completed items in the set, higher is better;
    - cycle time: mean cycle time of completed items, lower is better;
    - defect rate: percentage of items whose type is a defect, lower is better;
    - completion rate: percentage of items completed, higher is better.

    The result is the weighted mean (equal weights by default), rounded half
    up. When no item has a defined cycle time the cycle-time input is 0 for
    scoring while ``avg_cycle_time`` stays None.
    """
    thresholds = thresholds or SETTINGS.health
    enriched = _enriched(df) if not df.empty else df
    total = int(len(enriched))
    if total:
        phase = enriched["phase"]
        completed_mask = phase == PHASE_COMPLETED
        completed = int(completed_mask.sum())
        wip = int((phase == PHASE_IN_PROGRESS).sum())
        types = enriched["type"] if "type" in enriched.columns else pd.Series(None, index=enriched.index)
        bugs = int(types.isin(DEFECT_TYPES).sum())
        avg_ct = mean_or_none(enriched.loc[completed_mask, "cycle_time"])
    else:
        completed = wip = bugs = 0
        avg_ct = None
    defect_rate = bugs / total * 100.0 if total else 0.0
    completion_rate = completed / total * 100.0 if total else 0.0

    subscores = {
        "throughput": _ladder(completed, thresholds.throughput, thresholds.throughput_floor, True),
        "cycle_time": _ladder(avg_ct or 0.0, thresholds.cycle_time, thresholds.cycle_time_floor, False),
        "defect_rate": _ladder(defect_rate, thresholds.defect_rate, thresholds.defect_rate_floor, False),
        "completion_rate": _ladder(
            completion_rate, thresholds.completion_rate, thresholds.completion_rate_floor, True
        ),
    }
    weights = {name: float(thresholds.weights.get(name, 0.0)) for name in subscores}
    weight_total = sum(w for w in weights.values() if w > 0)
    if weight_total <= 0:
        logger.warning("Health weights sum to zero; using equal weights")
        weights = dict.fromkeys(subscores, 1.0)
        weight_total = float(len(subscores))
    blended = sum(subscores[name] * max(weights[name], 0.0) for name in subscores) / weight_total
    return HealthScore(
        score=int(_clamp(round_half_up(blended))),
        throughput=completed,
        avg_cycle_time=avg_ct,
        defect_rate=defect_rate,
        completion_rate=completion_rate,
        total=total,
        wip=wip,
        subscores=subscores,
    )


def health_by_group(
    df: pd.DataFrame,
    key: str | GroupKey = "team",
    thresholds: HealthThresholds | None = None,
) -> list[HealthScore]:
    """Health score per group, best first (ties broken by group name)."""
    if df.empty:
        return []
    rows: list[HealthScore] = []
    for group, frame in split_by_group(_enriched(df), key):
        result = health_score(frame, thresholds)
        result.group = group
        rows.append(result)
    rows.sort(key=lambda r: (-r.score, r.group or ""))
    return rows


# =============================================================================
# SLA compliance
# =============================================================================
@dataclass(slots=True)
class SlaReport:
    target_days: float
    total: int
    within: int
    breached: int
    rate: float | None
    pct: float | None
    currently_breaching: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(slots=True)
class SlaGroupRow:
    group: str
    label: str
    total: int
    within: int
    breached: int
    rate: float | None
    pct: float | None
    avg_cycle_time: float | None
    p85_cycle_time: float | None

    def to_dict(self) -> dict:
        return asdict(self)


def _measurable_cycle_times(df: pd.DataFrame) -> pd.Series:
    completed = df[df["phase"] == PHASE_COMPLETED]
    return pd.to_numeric(completed["cycle_time"], errors="coerce").dropna()


def _breaching(df: pd.DataFrame, target_days: float, limit: int | None) -> list[dict[str, Any]]:
    ages = pd.to_numeric(df["age"], errors="coerce")
    mask = (df["phase"] == PHASE_IN_PROGRESS) & (ages > target_days)
    if not mask.any():
        return []
    frame = df.loc[mask].assign(_age=ages[mask])
    frame = frame.sort_values(by="_age", ascending=False, kind="mergesort")
    if limit is not None:
        frame = frame.head(limit)
    out: list[dict[str, Any]] = []
    for row in frame.to_dict("records"):
        out.append(
            {
                "work_item_id": row.get("work_item_id"),
                "title": row.get("title"),
                "state": row.get("state"),
                "team": row.get("team"),
                "assigned_to": row.get("assigned_to"),
                "age": int(row["_age"]),
                "over_by": int(row["_age"] - target_days),
                "url": row.get("url"),
            }
        )
    return out


def sla_compliance(
    df: pd.DataFrame,
    target_days: float = DEFAULT_SLA_TARGET_DAYS,
    now=None,
    breaching_limit: int | None = DEFAULT_TOP_N,
) -> SlaReport:
    """Share of completed items whose cycle time is within ``target_days``.

    Only completed items with a defined cycle time are measurable. In-progress
    items already older than the target are listed in ``currently_breaching``
    (oldest first) and do not affect the historical rate.
    """
    if df.empty:
        return SlaReport(target_days, 0, 0, 0, None, None, [])
    enriched = _enriched(df, now)
    cycle_times = _measurable_cycle_times(enriched)
    total = int(cycle_times.size)
    within = int((cycle_times <= target_days).sum())
    rate = within / total if total else None
    return SlaReport(
        target_days=target_days,
        total=total,
        within=within,
        breached=total - within,
        rate=rate,
        pct=round(rate * 100.0, 1) if rate is not None else None,
        currently_breaching=_breaching(enriched, target_days, breaching_limit),
    )


def sla_by_group(
    df: pd.DataFrame,
    target_days: float = DEFAULT_SLA_TARGET_DAYS,
    key: str | GroupKey = "priority",
) -> list[SlaGroupRow]:
    """SLA compliance per group.

    By priority every level 1-4 is listed (empty levels with ``rate=None``),
    ordered by level. Other keys list groups with measurable items, best
    compliance first.
    """
    enriched = _enriched(df) if not df.empty else df
    rows: dict[str, SlaGroupRow] = {}
    if not enriched.empty:
        for group, frame in split_by_group(enriched, key):
            cycle_times = _measurable_cycle_times(frame)
            total = int(cycle_times.size)
            if not total:
                continue
            within = int((cycle_times <= target_days).sum())
            rate = within / total
            rows[group] = SlaGroupRow(
                group=group,
                label=PRIORITY_LABELS.get(group, group) if key == "priority" else group,
                total=total,
                within=within,
                breached=total - within,
                rate=rate,
                pct=round(rate * 100.0, 1),
                avg_cycle_time=mean_or_none(cycle_times),
                p85_cycle_time=percentile(cycle_times, 0.85),
            )
    if key == "priority":
        for level, label in PRIORITY_LABELS.items():
            rows.setdefault(level, SlaGroupRow(level, label, 0, 0, 0, None, None, None, None))
        return [rows[k] for k in sorted(rows)]
    return sorted(rows.values(), key=lambda r: (-(r.rate or 0.0), r.group))


# =============================================================================
# Flow efficiency
# =============================================================================
@dataclass(slots=True)
class FlowEfficiencyRow:
    group: str
    count: int
    active_days: float
    wait_days: float
    avg_cycle_time: float
    efficiency: float | None

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass(slots=True)
class FlowEfficiencyReport:
    efficiency: float | None
    items: int
    excluded: int
    groups: list[FlowEfficiencyRow] = field(default_factory=list)

    @property
    def pct(self) -> float | None:
        return None if self.efficiency is None else round(self.efficiency * 100.0, 1)

    def to_dict(self) -> dict:
        out = asdict(self)
        out["pct"] = self.pct
        return out


def _split_active(time_in_status: Mapping[str, Any], taxonomy: StateTaxonomy) -> tuple[float, float]:
    active = wait = 0.0
    for status, days in time_in_status.items():
        try:
            value = float(days)
        except (TypeError, ValueError):
            continue
        if math.isnan(value) or value < 0:
            continue
        if taxonomy.is_active_work(status):
            active += value
        else:
            wait += value
    return active, wait


def flow_efficiency(
    df: pd.DataFrame,
    taxonomy: StateTaxonomy | None = None,
    key: str | GroupKey = "team",
    min_items: int = FLOW_EFFICIENCY_MIN_ITEMS,
) -> FlowEfficiencyReport:
    """Active time over cycle time for completed items.

    Items need ``time_in_status_days`` and a positive cycle time; completed
    items lacking either are counted in ``excluded`` instead of being treated
    as zero. Groups with fewer than ``min_items`` measurable items are left
    out of ``groups`` but still count towards the global ratio.
    """
    taxonomy = taxonomy or load_taxonomy()
    if df.empty:
        return FlowEfficiencyReport(None, 0, 0, [])
    enriched = _enriched(df)
    completed = enriched[enriched["phase"] == PHASE_COMPLETED]
    if completed.empty:
        return FlowEfficiencyReport(None, 0, 0, [])

    tis = completed["time_in_status_days"] if "time_in_status_days" in completed.columns else None
    cycle = pd.to_numeric(completed["cycle_time"], errors="coerce")
    has_tis = (
        tis.apply(lambda v: isinstance(v, Mapping) and len(v) > 0)
        if tis is not None
        else pd.Series(False, index=completed.index)
    )
    measurable = has_tis & (cycle > 0)
    excluded = int((~measurable).sum())
    frame = completed.loc[measurable]
    if frame.empty:
        return FlowEfficiencyReport(None, 0, excluded, [])

    split = frame["time_in_status_days"].apply(lambda v: _split_active(v, taxonomy))
    frame = frame.assign(
        _active=split.map(lambda pair: pair[0]),
        _wait=split.map(lambda pair: pair[1]),
        _cycle=cycle[measurable],
    )
    total_cycle = float(frame["_cycle"].sum())
    efficiency = float(frame["_active"].sum()) / total_cycle if total_cycle > 0 else None

    groups: list[FlowEfficiencyRow] = []
    for group, part in split_by_group(frame, key):
        count = int(len(part))
        if count < min_items:
            continue
        group_cycle = float(part["_cycle"].sum())
        groups.append(
            FlowEfficiencyRow(
                group=group,
                count=count,
                active_days=float(part["_active"].mean()),
                wait_days=float(part["_wait"].mean()),
                avg_cycle_time=group_cycle / count,
                efficiency=float(part["_active"].sum()) / group_cycle if group_cycle > 0 else None,
            )
        )
    groups.sort(key=lambda r: (-(r.efficiency or 0.0), r.group))
    return FlowEfficiencyReport(efficiency, int(len(frame)), excluded, groups)


# =============================================================================
# Time in status from state history
# =============================================================================
def status_durations_from_history(
    history: Iterable[StateTransition | Mapping[str, Any]] | None,
    created=None,
    closed=None,
    now=None,
    initial_state: str | None = None,
) -> dict[str, float]:
    """Days spent in each state, replayed from a list of transitions.

    Time before the first transition is attributed to that transition's
    ``from_state`` (or ``initial_state``) starting at ``created``; the state
    after the last transition runs until ``closed`` or ``now``. Returns an
    empty dict when there are no usable transitions.
    """
    tz = get_tz()
    events: list[tuple[pd.Timestamp, str | None, str | None]] = []
    for entry in history or []:
        if isinstance(entry, Mapping):
            changed = entry.get("changed")
            from_state, to_state = entry.get("from_state"), entry.get("to_state")
        else:
            changed, from_state, to_state = entry.changed, entry.from_state, entry.to_state
        ts = normalize_timestamp(changed, tz)
        if ts is None:
            continue
        events.append((ts, from_state, to_state))
    if not events:
        return {}
    events.sort(key=lambda event: event[0])

    current_state = events[0][1] or initial_state
    current_start = normalize_timestamp(created, tz)
    if current_start is None or current_start > events[0][0]:
        current_start = events[0][0]
    durations: defaultdict[str, float] = defaultdict(float)
    for changed, _from_state, to_state in events:
        delta = (changed - current_start).total_seconds() / SECONDS_PER_DAY
        if current_state and delta >= 0:
            durations[current_state] += delta
        current_state = to_state or current_state
        current_start = changed

    end = normalize_timestamp(closed, tz)
    if end is None:
        end = normalize_timestamp(now, tz) if now is not None else pd.Timestamp.now(tz=tz)
    if current_state and end > current_start:
        durations[current_state] += (end - current_start).total_seconds() / SECONDS_PER_DAY
    return dict(durations)


def fill_time_in_status(df: pd.DataFrame, now=None) -> pd.DataFrame:
    """Derive ``time_in_status_days`` from ``state_history`` where the source left it empty."""
    if df.empty or "state_history" not in df.columns:
        return df
    out = df.copy()
    if "time_in_status_days" not in out.columns:
        out["time_in_status_days"] = None

    def derive(row: Mapping[str, Any]):
        existing = row.get("time_in_status_days")
        if isinstance(existing, Mapping) and existing:
            return existing
        durations = status_durations_from_history(
            row.get("state_history"),
            created=row.get("created_date"),
            closed=row.get("closed_date"),
            now=now,
        )
        return durations or None

    out["time_in_status_days"] = [derive(row) for row in out.to_dict("records")]
    return out
