"""Aging of open work items (pure functions)."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field

import pandas as pd

from flow_app.core.config import (
    DEFAULT_AGING_CRITICAL_DAYS,
    DEFAULT_AGING_WARN_DAYS,
    DEFAULT_TOP_N,
    PHASE_COMPLETED,
    PHASE_REMOVED,
)
from flow_app.core.status import add_lifecycle_metrics

AGING_CRITICAL = "critical"
AGING_WARNING = "warning"
AGING_NORMAL = "normal"


@dataclass(slots=True)
class AgingReport:
    open_items: int
    critical: int
    warning: int
    normal: int
    avg_age: float | None
    oldest: list[dict] = field(default_factory=list)

    def to_dict(self) -> dict:
        return asdict(self)


def add_aging_metrics(
    df: pd.DataFrame,
    warn_days: int = DEFAULT_AGING_WARN_DAYS,
    critical_days: int = DEFAULT_AGING_CRITICAL_DAYS,
    now=None,
) -> pd.DataFrame:
    """Add an ``aging_bucket`` column (critical / warning / normal) for open items.

    Completed and removed items, and items without a known age, get None.
    """
    if df.empty:
        return df
    out = add_lifecycle_metrics(df, now=now) if now is not None or "age" not in df.columns else df.copy()
    age = pd.to_numeric(out["age"], errors="coerce")
    is_open = ~out["phase"].isin([PHASE_COMPLETED, PHASE_REMOVED]) & age.notna()
    bucket = pd.Series(None, index=out.index, dtype=object)
    bucket[is_open & (age > critical_days)] = AGING_CRITICAL
    bucket[is_open & (age > warn_days) & (age <= critical_days)] = AGING_WARNING
    bucket[is_open & (age <= warn_days)] = AGING_NORMAL
    out["aging_bucket"] = bucket
    return out


def aging_report(
    df: pd.DataFrame,
    warn_days: int = DEFAULT_AGING_WARN_DAYS,
    critical_days: int = DEFAULT_AGING_CRITICAL_DAYS,
    now=None,
    top_n: int = DEFAULT_TOP_N,
) -> AgingReport:
    if df.empty:
        return AgingReport(0, 0, 0, 0, None, [])
    out = add_aging_metrics(df, warn_days, critical_days, now)
    open_items = out[out["aging_bucket"].notna()]
    counts = open_items["aging_bucket"].value_counts()
    oldest = open_items.sort_values(by="age", ascending=False, kind="mergesort").head(top_n)
    keep = [c for c in ("work_item_id", "title", "state", "team", "assigned_to", "age", "aging_bucket", "url") if c in oldest.columns]
    return AgingReport(
        open_items=int(len(open_items)),
        critical=int(counts.get(AGING_CRITICAL, 0)),
        warning=int(counts.get(AGING_WARNING, 0)),
        normal=int(counts.get(AGING_NORMAL, 0)),
        avg_age=float(open_items["age"].mean()) if not open_items.empty else None,
        oldest=oldest[keep].to_dict("records"),
    )
