"""Pure helpers to build the Flow Overview context for testing (no Streamlit)."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from flow_app.analytics.aggregations.groups import (
    FlowKpis,
    aggregate,
    bucket_series,
    stats_frame,
    summary_kpis,
)
from flow_app.analytics.aggregations.wip import wip_by_group
from flow_app.analytics.metrics.aging import AgingReport, aging_report
from flow_app.analytics.metrics.binning import Bucket, bucketize, duration_histogram, normalize_granularity
from flow_app.analytics.periods import Period, previous_period, resolve
from flow_app.analytics.scoring import (
    FlowEfficiencyReport,
    HealthScore,
    SlaGroupRow,
    SlaReport,
    flow_efficiency,
    health_by_group,
    health_score,
    sla_by_group,
    sla_compliance,
)
from flow_app.analytics.trajectory import CumulativeFlow, cumulative_flow
from flow_app.core.config import DEFAULT_SLA_TARGET_DAYS, PHASE_COMPLETED, PHASE_REMOVED
from flow_app.core.status import add_lifecycle_metrics


@dataclass(slots=True)
class FlowOverviewContext:
    """Everything the Flow Overview and SLA & Health pages render."""

    period: Period
    granularity: str
    group_key: str
    items: pd.DataFrame
    kpis: FlowKpis
    previous_kpis: FlowKpis
    buckets: list[Bucket]
    trend: pd.DataFrame
    group_stats: dict[str, dict[str, Any]]
    group_table: pd.DataFrame
    health: HealthScore
    health_by_group: list[HealthScore]
    sla: SlaReport
    sla_by_priority: list[SlaGroupRow]
    flow_efficiency: FlowEfficiencyReport
    cfd: CumulativeFlow
    aging: AgingReport
    wip: pd.DataFrame
    cycle_time_histogram: pd.DataFrame = field(default_factory=pd.DataFrame)

    @property
    def empty(self) -> bool:
        return self.items.empty


def items_in_period(df: pd.DataFrame, period: Period) -> pd.DataFrame:
    """Rows created or closed inside ``period``, plus items still open at its end.

    Expects an enriched frame (``created_dt``, ``closed_dt``, ``phase``).
    """
    if df.empty:
        return df
    created = df["created_dt"]
    closed = df["closed_dt"]
    created_in = created.between(period.start, period.end)
    closed_in = closed.between(period.start, period.end)
    still_open = ~df["phase"].isin([PHASE_COMPLETED, PHASE_REMOVED]) & (created <= period.end)
    return df[created_in | closed_in | still_open]


def build_flow_context(
    df: pd.DataFrame,
    period_spec: Any = "monthly",
    granularity: str | None = None,
    key: str = "team",
    sla_target: float = DEFAULT_SLA_TARGET_DAYS,
    now=None,
) -> FlowOverviewContext:
    """Build context for the Flow Overview page.

    Parameters
    ----------
    df : pd.DataFrame
        Snapshot frame (raw or already enriched).
    period_spec : Any
        Anything :func:`flow_app.analytics.periods.resolve` accepts.
    granularity : str, optional
        Trend bucket size; defaults to monthly.
    key : str
        Group selector name for the stats table and health ranking.
    sla_target : float
        Cycle-time ceiling in days.
    now : datetime-like, optional
        Evaluation instant (tests pin it).

    Returns
    -------
    FlowOverviewContext
    """
    period = resolve(period_spec, now=now)
    granularity = normalize_granularity(granularity)
    enriched = add_lifecycle_metrics(df, now=now)
    scoped = items_in_period(enriched, period)
    before = items_in_period(enriched, previous_period(period))

    buckets = bucketize(period, granularity)
    trend = bucket_series(scoped, buckets, reference="closed", metrics=("cycle_time", "lead_time"))
    group_stats = aggregate(scoped, key, metrics=("cycle_time", "lead_time", "age"))
    completed = scoped[scoped["phase"] == PHASE_COMPLETED] if not scoped.empty else scoped
    histogram = duration_histogram(completed["cycle_time"]) if not completed.empty else pd.DataFrame()

    return FlowOverviewContext(
        period=period,
        granularity=granularity,
        group_key=key,
        items=scoped,
        kpis=summary_kpis(scoped),
        previous_kpis=summary_kpis(before),
        buckets=buckets,
        trend=trend,
        group_stats=group_stats,
        group_table=stats_frame(group_stats, "cycle_time"),
        health=health_score(scoped),
        health_by_group=health_by_group(scoped, key),
        sla=sla_compliance(scoped, sla_target),
        sla_by_priority=sla_by_group(scoped, sla_target, key="priority"),
        flow_efficiency=flow_efficiency(scoped, key=key),
        cfd=cumulative_flow(scoped, period, now=now),
        aging=aging_report(scoped),
        wip=wip_by_group(scoped, key),
        cycle_time_histogram=histogram,
    )
