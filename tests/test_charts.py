from datetime import datetime

import pandas as pd
import pytz

from flow_app.analytics.aggregations.groups import bucket_series
from flow_app.analytics.metrics.binning import bucketize, duration_histogram
from flow_app.analytics.periods import resolve
from flow_app.analytics.scoring import health_by_group
from flow_app.analytics.trajectory import burndown, cumulative_flow
from flow_app.visual.charts import (
    burndown_chart,
    cfd_chart,
    cycle_time_histogram,
    cycle_time_trend,
    health_bars,
    throughput_trend,
)
from flow_app.visual.tables import add_item_link, stats_display

TZ = pytz.timezone("America/Sao_Paulo")
NOW = pd.Timestamp(TZ.localize(datetime(2024, 3, 31, 12, 0)))


def _sample_df():
    rows = []
    for i in range(8):
        rows.append(
            {
                "work_item_id": 500 + i,
                "title": f"Sample item {i + 1}",
                "state": "Done" if i < 6 else "Active",
                "type": "Bug" if i % 4 == 0 else "Task",
                "team": "Alpha" if i % 2 == 0 else "Beta",
                "story_points": 2,
                "url": f"https://tracker.example/items/{500 + i}",
                "created_date": f"2024-0{1 + i % 3}-01T12:00:00Z",
                "closed_date": f"2024-0{1 + i % 3}-{10 + i}T12:00:00Z" if i < 6 else None,
            }
        )
    return pd.DataFrame(rows)


def _period():
    return resolve({"kind": "custom", "start": "2024-01-01", "end": "2024-03-31"}, now=NOW)


def test_trend_charts_shapes():
    trend = bucket_series(_sample_df(), bucketize(_period(), "monthly"))
    chart, frame = throughput_trend(trend)
    assert chart is not None
    assert list(frame["label"]) == ["2024-01", "2024-02", "2024-03"]
    assert int(frame["completed"].sum()) == 6
    chart, frame = cycle_time_trend(trend)
    assert chart is not None
    assert set(frame["series"]) == {"MEAN", "P50", "P85"}


def test_empty_inputs_give_no_chart():
    assert throughput_trend(pd.DataFrame())[0] is None
    assert cycle_time_histogram(pd.DataFrame())[0] is None
    assert health_bars([])[0] is None


def test_cfd_and_burndown_charts():
    chart, frame = cfd_chart(cumulative_flow(_sample_df(), _period(), now=NOW))
    assert chart is not None
    assert {"date", "column", "count"}.issubset(frame.columns)
    series = burndown(_sample_df(), "2024-03-01", "2024-03-14", now=NOW)
    chart, frame = burndown_chart(series, points=True)
    assert chart is not None
    assert set(frame["line"]) == {"Remaining", "Ideal"}


def test_histogram_and_health_bars():
    df = _sample_df()
    chart, _ = cycle_time_histogram(duration_histogram(pd.Series([3, 5, 9, 9, 14])))
    assert chart is not None
    chart, frame = health_bars(health_by_group(df, "team"))
    assert chart is not None
    assert set(frame["band"]) <= {"poor", "fair", "good"}


def test_item_link_injection():
    df = _sample_df().head(1)
    linked, cfg = add_item_link(df)
    assert "Item" in linked.columns
    assert linked.loc[linked.index[0], "Item"].endswith("/items/500")
    assert "Item" in cfg


def test_stats_display_rounds():
    table = pd.DataFrame([{"group": "Alpha", "mean": 3.14159, "p85": None}])
    out = stats_display(table)
    assert out.loc[0, "mean"] == 3.1
