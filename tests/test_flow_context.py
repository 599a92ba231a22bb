from datetime import datetime

import pandas as pd
import pytz

from flow_app.analytics.periods import resolve
from flow_app.core.status import add_lifecycle_metrics
from flow_app.features.flow_overview.context import build_flow_context, items_in_period

TZ = pytz.timezone("America/Sao_Paulo")
NOW = pd.Timestamp(TZ.localize(datetime(2024, 3, 20, 12, 0)))


def _make_df():
    rows = []
    for i in range(12):
        done = i < 8
        rows.append(
            {
                "work_item_id": i,
                "title": f"Context item {i}",
                "state": "Done" if done else ("Active" if i < 10 else "New"),
                "type": "Bug" if i % 5 == 0 else "User Story",
                "team": ["Alpha", "Beta", "Gamma"][i % 3],
                "priority": str(1 + i % 4),
                "tags": ["api"] if i % 2 else [],
                "created_date": f"2024-03-{1 + i:02d}T12:00:00Z",
                "closed_date": f"2024-03-{5 + i:02d}T12:00:00Z" if done else None,
                "time_in_status_days": {"Active": 2, "Aguardando QA": 2} if done else None,
            }
        )
    # Completed long before the period
    rows.append(
        {
            "work_item_id": 99,
            "title": "Ancient",
            "state": "Done",
            "type": "Task",
            "team": "Alpha",
            "created_date": "2023-01-01T12:00:00Z",
            "closed_date": "2023-01-10T12:00:00Z",
        }
    )
    return pd.DataFrame(rows)


def test_items_in_period_scope():
    enriched = add_lifecycle_metrics(_make_df(), now=NOW)
    period = resolve({"kind": "specific-month", "year": 2024, "month": 3}, now=NOW)
    scoped = items_in_period(enriched, period)
    assert 99 not in set(scoped["work_item_id"])
    assert len(scoped) == 12


def test_flow_context_basic():
    ctx = build_flow_context(
        _make_df(),
        {"kind": "specific-month", "year": 2024, "month": 3},
        granularity="weekly",
        key="team",
        sla_target=7,
        now=NOW,
    )
    assert not ctx.empty
    assert ctx.granularity == "weekly"
    assert ctx.kpis.total == 12
    assert ctx.kpis.completed == 8
    assert ctx.kpis.wip == 2
    assert ctx.previous_kpis.total == 0
    assert list(ctx.trend["label"]) == [b.label for b in ctx.buckets]
    assert int(ctx.trend["completed"].sum()) == 8
    assert list(ctx.group_table["group"]) == ["Alpha", "Beta", "Gamma"]
    assert ctx.sla.total == 8
    assert ctx.sla.within == 8
    assert [row.group for row in ctx.sla_by_priority] == ["1", "2", "3", "4"]
    assert 0 <= ctx.health.score <= 100
    assert len(ctx.health_by_group) == 3
    assert ctx.flow_efficiency.efficiency == 0.5
    assert ctx.cfd.approximate
    assert ctx.aging.open_items == 4
    assert int(ctx.wip["wip"].sum()) == 2
    assert int(ctx.cycle_time_histogram["count"].sum()) == 8


def test_flow_context_unknown_granularity_and_empty_frame():
    ctx = build_flow_context(pd.DataFrame(), "monthly", granularity="hourly", now=NOW)
    assert ctx.empty
    assert ctx.granularity == "monthly"
    assert ctx.kpis.total == 0
    assert ctx.sla.rate is None
    assert ctx.group_table.empty
    assert int(ctx.trend["count"].sum()) == 0
