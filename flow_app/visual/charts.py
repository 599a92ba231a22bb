"""Chart builders (Altair) for flow trends, CFD, burndown and distributions.

Every builder returns ``(chart, frame)``; ``chart`` is None when there is
nothing to draw so pages can show an empty-state message instead.
"""

from __future__ import annotations

import altair as alt
import pandas as pd

from flow_app.analytics.scoring import HealthScore
from flow_app.analytics.trajectory import BurndownSeries, CumulativeFlow


def throughput_trend(trend: pd.DataFrame):
    """Completed items per bucket, bars labelled by bucket."""
    if trend is None or trend.empty:
        return None, pd.DataFrame()
    frame = trend[["label", "completed", "count"]].copy()
    chart = (
        alt.Chart(frame)
        .mark_bar(color="#1f77b4")
        .encode(
            x=alt.X("label:N", title="Period", sort=list(frame["label"])),
            y=alt.Y("completed:Q", title="Completed items"),
            tooltip=[
                alt.Tooltip("label:N", title="Bucket"),
                alt.Tooltip("completed:Q", title="Completed"),
                alt.Tooltip("count:Q", title="Closed (any state)"),
            ],
        )
        .properties(height=260)
    )
    return chart, frame


def cycle_time_trend(trend: pd.DataFrame, metric: str = "cycle_time"):
    """Mean / P50 / P85 lines per bucket; empty buckets leave gaps instead of zeros."""
    columns = [f"{metric}_mean", f"{metric}_p50", f"{metric}_p85"]
    if trend is None or trend.empty or not set(columns).issubset(trend.columns):
        return None, pd.DataFrame()
    frame = trend[["label", *columns]].melt(id_vars="label", var_name="series", value_name="days")
    frame["series"] = frame["series"].str.replace(f"{metric}_", "", regex=False).str.upper()
    frame["days"] = pd.to_numeric(frame["days"], errors="coerce")
    if frame["days"].notna().sum() == 0:
        return None, frame
    chart = (
        alt.Chart(frame)
        .mark_line(point=True)
        .encode(
            x=alt.X("label:N", title="Period", sort=list(trend["label"])),
            y=alt.Y("days:Q", title="Days"),
            color=alt.Color("series:N", title="Statistic"),
            tooltip=[
                alt.Tooltip("label:N", title="Bucket"),
                alt.Tooltip("series:N", title="Statistic"),
                alt.Tooltip("days:Q", title="Days", format=".1f"),
            ],
        )
        .properties(height=260)
    )
    return chart, frame


def cfd_chart(cfd: CumulativeFlow):
    if cfd is None or not cfd.points:
        return None, pd.DataFrame()
    frame = cfd.to_frame(long=True)
    frame["date"] = pd.to_datetime(frame["date"])
    chart = (
        alt.Chart(frame)
        .mark_area(opacity=0.8)
        .encode(
            x=alt.X("date:T", title="Date"),
            y=alt.Y("count:Q", stack="zero", title="Items"),
            color=alt.Color("column:N", sort=list(cfd.columns), title="Column"),
            order=alt.Order("column_order:Q"),
            tooltip=["date:T", "column:N", "count:Q"],
        )
        .transform_calculate(column_order=f"indexof({list(cfd.columns)!r}, datum.column)")
        .properties(height=300, title="Cumulative flow (approximate)")
    )
    return chart, frame


def burndown_chart(series: BurndownSeries, points: bool = False):
    frame = series.to_frame() if series is not None else pd.DataFrame()
    if frame.empty:
        return None, frame
    actual, ideal = ("remaining_points", "ideal_points") if points else ("remaining", "ideal")
    long = frame[["date", actual, ideal]].rename(columns={actual: "Remaining", ideal: "Ideal"})
    long = long.melt(id_vars="date", var_name="line", value_name="value")
    long["date"] = pd.to_datetime(long["date"])
    chart = (
        alt.Chart(long)
        .mark_line()
        .encode(
            x=alt.X("date:T", title="Day"),
            y=alt.Y("value:Q", title="Story points" if points else "Items"),
            color=alt.Color("line:N", title=""),
            strokeDash=alt.condition(alt.datum.line == "Ideal", alt.value([5, 5]), alt.value([0])),
            tooltip=["date:T", "line:N", "value:Q"],
        )
        .properties(height=280)
    )
    return chart, long


def cycle_time_histogram(histogram: pd.DataFrame):
    if histogram is None or histogram.empty:
        return None, pd.DataFrame()
    chart = (
        alt.Chart(histogram)
        .mark_bar(color="#9467bd")
        .encode(
            x=alt.X("bin:N", sort=list(histogram["bin"]), title="Cycle time"),
            y=alt.Y("count:Q", title="Items"),
            tooltip=["bin:N", "count:Q"],
        )
        .properties(height=240)
    )
    return chart, histogram


def health_bars(rows: list[HealthScore]):
    if not rows:
        return None, pd.DataFrame()
    frame = pd.DataFrame(
        [{"group": r.group, "score": r.score, "throughput": r.throughput, "total": r.total} for r in rows]
    )
    frame["band"] = pd.cut(frame["score"], bins=[-1, 44, 69, 100], labels=["poor", "fair", "good"]).astype(str)
    chart = (
        alt.Chart(frame)
        .mark_bar()
        .encode(
            x=alt.X("score:Q", title="Health score", scale=alt.Scale(domain=[0, 100])),
            y=alt.Y("group:N", sort="-x", title=""),
            color=alt.Color(
                "band:N",
                scale=alt.Scale(domain=["good", "fair", "poor"], range=["#2ca02c", "#ffbf00", "#d62728"]),
                legend=None,
            ),
            tooltip=["group:N", "score:Q", "throughput:Q", "total:Q"],
        )
        .properties(height=max(120, 24 * len(frame)))
    )
    return chart, frame
