from datetime import datetime, timedelta

import pandas as pd
import pytz

from flow_app.analytics.aggregations.groups import summary_kpis
from flow_app.core.status import add_lifecycle_metrics, classify, compute_days, phase_of

TZ = pytz.timezone("America/Sao_Paulo")
NOW = pd.Timestamp(TZ.localize(datetime(2024, 6, 15, 12, 0)))


def _sample_df():
    rows = [
        {"work_item_id": 1, "state": "Done", "created_date": "2024-01-01", "closed_date": "2024-01-06"},
        {
            "work_item_id": 2,
            "state": "Concluído",
            "created_date": "2024-01-01",
            "activated_date": "2024-01-03",
            "closed_date": "2024-01-06",
        },
        # closed date but not in a completed state
        {"work_item_id": 3, "state": "Active", "created_date": "2024-02-01", "closed_date": "2024-02-03"},
        {"work_item_id": 4, "state": "New", "created_date": "2024-06-01T12:00:00Z", "closed_date": None},
        # closed before created
        {"work_item_id": 5, "state": "Fechado", "created_date": "2024-03-10", "closed_date": "2024-03-01"},
        # far beyond any plausible duration
        {"work_item_id": 6, "state": "Closed", "created_date": "2019-01-01", "closed_date": "2024-01-01"},
    ]
    return pd.DataFrame(rows)


def test_cycle_time_from_created_to_closed():
    result = classify({"state": "Done", "created_date": "2024-01-01", "closed_date": "2024-01-06"}, now=NOW)
    assert result.phase == "Completed"
    assert result.cycle_time == 5
    assert result.lead_time == 5


def test_activation_splits_cycle_and_lead_time():
    item = {
        "state": "Done",
        "created_date": "2024-01-01",
        "activated_date": "2024-01-03",
        "closed_date": "2024-01-06",
    }
    result = classify(item, now=NOW)
    assert result.cycle_time == 3
    assert result.lead_time == 5


def test_closed_but_not_completed_has_no_cycle_time():
    df = add_lifecycle_metrics(_sample_df(), now=NOW)
    row = df[df["work_item_id"] == 3].iloc[0]
    assert row["phase"] == "In Progress"
    assert pd.isna(row["cycle_time"])
    kpis = summary_kpis(df)
    assert kpis.total == 6
    assert kpis.wip == 1


def test_implausible_durations_are_undefined():
    df = add_lifecycle_metrics(_sample_df(), now=NOW)
    assert pd.isna(df.loc[df["work_item_id"] == 5, "cycle_time"].iloc[0])
    assert pd.isna(df.loc[df["work_item_id"] == 6, "cycle_time"].iloc[0])
    assert compute_days("2024-03-10", "2024-03-01") is None
    assert compute_days(None, "2024-03-01") is None


def test_partial_days_round_up():
    assert compute_days("2024-01-01T00:00:00Z", "2024-01-01T01:00:00Z") == 1
    assert compute_days("2024-01-01T00:00:00Z", "2024-01-01T00:00:00Z") == 0


def test_materialized_cycle_time_trusted_when_plausible():
    item = {"state": "Done", "created_date": "2024-01-01", "closed_date": "2024-01-06", "cycle_time": 2.5}
    assert classify(item, now=NOW).cycle_time == 2.5
    item["cycle_time"] = -1
    assert classify(item, now=NOW).cycle_time is None


def test_phase_matching_is_exact():
    assert phase_of("Concluído") == "Completed"
    assert phase_of("done") == "Other"
    assert phase_of(None) == "Other"
    assert phase_of("Removido") == "Removed"
    assert phase_of("Novo") == "Backlog"


def test_age_counts_whole_days_since_creation():
    created = NOW - timedelta(days=10, hours=5)
    assert classify({"state": "Active", "created_date": created}, now=NOW).age == 10
    assert classify({"state": "Active", "created_date": None}, now=NOW).age is None


def test_vectorized_matches_per_item():
    df = _sample_df()
    enriched = add_lifecycle_metrics(df, now=NOW)
    for record, (_, row) in zip(df.to_dict("records"), enriched.iterrows()):
        single = classify(record, now=NOW)
        assert single.phase == row["phase"]
        for name in ("cycle_time", "lead_time", "age"):
            value = getattr(single, name)
            if value is None:
                assert pd.isna(row[name])
            else:
                assert value == row[name]


def test_enrichment_does_not_modify_input():
    df = _sample_df()
    before = df.copy()
    add_lifecycle_metrics(df, now=NOW)
    pd.testing.assert_frame_equal(df, before)
