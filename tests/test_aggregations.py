from datetime import datetime

import pandas as pd
import pytest
import pytz

from flow_app.analytics.aggregations.groups import (
    UnknownMetricError,
    UnknownSelectorError,
    aggregate,
    aggregate_by_bucket,
    bucket_series,
    group_keys,
    stats_frame,
    summary_kpis,
)
from flow_app.analytics.aggregations.wip import wip_by_group
from flow_app.analytics.metrics.binning import bucketize
from flow_app.analytics.periods import resolve

TZ = pytz.timezone("America/Sao_Paulo")
NOW = pd.Timestamp(TZ.localize(datetime(2024, 6, 15, 12, 0)))


def _sample_df():
    rows = []
    for i in range(6):
        rows.append(
            {
                "work_item_id": 100 + i,
                "title": f"Item {i}",
                "state": "Done",
                "type": "Bug" if i == 0 else "User Story",
                "team": "Alpha" if i < 4 else "Beta",
                "assigned_to": "Ana" if i % 2 == 0 else None,
                "priority": 2.0 if i < 2 else None,
                "tags": ["api", "ui"] if i == 0 else ([] if i == 1 else ["api"]),
                "created_date": f"2024-01-0{i + 1}T12:00:00Z",
                "closed_date": f"2024-02-0{i + 1}T12:00:00Z",
            }
        )
    rows.append(
        {
            "work_item_id": 200,
            "title": "Open work",
            "state": "Active",
            "type": "User Story",
            "team": None,
            "area_path": "Proj\\Gamma",
            "assigned_to": "Bia",
            "priority": "1",
            "tags": None,
            "created_date": "2024-02-10T12:00:00Z",
            "closed_date": None,
        }
    )
    return pd.DataFrame(rows)


def test_aggregate_by_team_counts_every_row():
    out = aggregate(_sample_df(), "team")
    assert list(out) == ["Alpha", "Beta", "Gamma"]
    assert sum(stats["cycle_time"].count for stats in out.values()) == 7
    assert out["Alpha"]["cycle_time"].samples == 4
    assert out["Alpha"]["cycle_time"].p50 == 31
    assert out["Gamma"]["cycle_time"].samples == 0
    assert out["Gamma"]["cycle_time"].mean is None


def test_aggregate_is_idempotent():
    df = _sample_df()
    assert aggregate(df, "assignee") == aggregate(df, "assignee")


def test_fallback_labels():
    keys = group_keys(_sample_df(), "assignee")
    assert "Não Atribuído" in set(keys)
    priorities = group_keys(_sample_df(), "priority")
    assert list(priorities) == ["2", "2", "4", "4", "4", "4", "1"]


def test_multi_valued_tags_repeat_items():
    out = aggregate(_sample_df(), "tag")
    assert out["api"]["cycle_time"].count == 5
    assert out["ui"]["cycle_time"].count == 1
    assert out["Sem Tag"]["cycle_time"].count == 2


def test_custom_selector_callable():
    out = aggregate(_sample_df(), lambda row: "bug" if row.get("type") == "Bug" else "other")
    assert set(out) == {"bug", "other"}


def test_custom_selector_missing_keys_land_in_unknown():
    df = _sample_df()
    out = aggregate(df, lambda row: row.get("team"))
    assert set(out) == {"Alpha", "Beta", "Unknown"}
    assert sum(stats["cycle_time"].count for stats in out.values()) == len(df)

    by_person = aggregate(df, lambda row: row.get("assigned_to"))
    assert by_person["Unknown"]["cycle_time"].count == 3

    empty_lists = aggregate(df, lambda row: [] if row["work_item_id"] == 200 else ["x"])
    assert empty_lists["Unknown"]["cycle_time"].count == 1

    period = resolve({"kind": "custom", "start": "2024-01-01", "end": "2024-03-31"}, now=NOW)
    cells = aggregate_by_bucket(df, bucketize(period, "monthly"), key=lambda row: row.get("assigned_to"))
    assert cells["2024-02"]["Unknown"]["cycle_time"].count == 3
    assert cells["2024-02"]["Ana"]["cycle_time"].count == 3


def test_unknown_selector_and_metric_raise():
    with pytest.raises(UnknownSelectorError):
        aggregate(_sample_df(), "planet")
    with pytest.raises(KeyError):
        aggregate(_sample_df(), "planet")
    with pytest.raises(UnknownMetricError):
        aggregate(_sample_df(), "team", metrics=("velocity",))


def test_empty_frame_gives_empty_result():
    assert aggregate(pd.DataFrame(), "team") == {}


def test_aggregate_by_bucket_keeps_empty_buckets():
    period = resolve({"kind": "custom", "start": "2024-01-01", "end": "2024-03-31"}, now=NOW)
    buckets = bucketize(period, "monthly")
    out = aggregate_by_bucket(_sample_df(), buckets, reference="closed", key="team")
    assert list(out) == ["2024-01", "2024-02", "2024-03"]
    assert out["2024-01"] == {}
    assert out["2024-03"] == {}
    assert out["2024-02"]["Alpha"]["cycle_time"].count == 4
    assert out["2024-02"]["Beta"]["cycle_time"].count == 2


def test_bucket_series_rows():
    period = resolve({"kind": "custom", "start": "2024-01-01", "end": "2024-03-31"}, now=NOW)
    series = bucket_series(_sample_df(), bucketize(period, "monthly"))
    assert list(series["label"]) == ["2024-01", "2024-02", "2024-03"]
    assert list(series["completed"]) == [0, 6, 0]
    assert series.loc[0, "cycle_time_mean"] is None or pd.isna(series.loc[0, "cycle_time_mean"])
    assert series.loc[1, "cycle_time_p50"] == 31


def test_summary_kpis():
    kpis = summary_kpis(_sample_df())
    assert kpis.total == 7
    assert kpis.completed == 6
    assert kpis.wip == 1
    assert kpis.bugs == 1
    assert kpis.teams == 3
    assert kpis.avg_cycle_time == 31
    assert round(kpis.completion_rate, 1) == 85.7


def test_stats_frame_one_row_per_group():
    table = stats_frame(aggregate(_sample_df(), "team"))
    assert list(table["group"]) == ["Alpha", "Beta", "Gamma"]
    assert {"p50", "p85", "p95", "excluded"}.issubset(table.columns)


def test_wip_by_group():
    out = wip_by_group(_sample_df(), "team")
    assert list(out["group"]) == ["Gamma"]
    assert int(out.loc[0, "wip"]) == 1
    assert int(out.loc[0, "limit"]) == 10
    assert not bool(out.loc[0, "over_limit"])
    people = wip_by_group(_sample_df(), "assignee", limit=0)
    assert bool(people.loc[0, "over_limit"])
