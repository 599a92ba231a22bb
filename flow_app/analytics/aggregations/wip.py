"""Work-in-progress counts against per-team and per-person limits."""

from __future__ import annotations

import pandas as pd

from flow_app.analytics.aggregations.groups import GroupKey, group_keys
from flow_app.core.config import DEFAULT_PERSON_WIP_LIMIT, DEFAULT_TEAM_WIP_LIMIT, PHASE_IN_PROGRESS
from flow_app.core.status import add_lifecycle_metrics

DEFAULT_LIMITS: dict[str, int] = {
    "team": DEFAULT_TEAM_WIP_LIMIT,
    "assignee": DEFAULT_PERSON_WIP_LIMIT,
}


def wip_by_group(df: pd.DataFrame, key: str | GroupKey = "team", limit: int | None = None) -> pd.DataFrame:
    """In-progress item count per group, with ``limit`` and an ``over_limit`` flag.

    Sorted by WIP descending then group. The default limit is 10 for teams
    and 3 for people.
    """
    columns = ["group", "wip", "limit", "over_limit"]
    if df.empty:
        return pd.DataFrame(columns=columns)
    if limit is None:
        limit = DEFAULT_LIMITS.get(key, DEFAULT_TEAM_WIP_LIMIT) if isinstance(key, str) else DEFAULT_TEAM_WIP_LIMIT
    enriched = df if "phase" in df.columns else add_lifecycle_metrics(df)
    in_progress = enriched[enriched["phase"] == PHASE_IN_PROGRESS]
    if in_progress.empty:
        return pd.DataFrame(columns=columns)
    groups = group_keys(in_progress, key).explode()
    agg = groups.value_counts().rename_axis("group").reset_index(name="wip")
    agg["limit"] = int(limit)
    agg["over_limit"] = agg["wip"] > agg["limit"]
    agg = agg.sort_values(by=["wip", "group"], ascending=[False, True], kind="mergesort")
    return agg[columns].reset_index(drop=True)
