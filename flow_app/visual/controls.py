"""Shared sidebar pickers for period, granularity and grouping."""

from __future__ import annotations

from datetime import date, timedelta

import streamlit as st

from flow_app.analytics.aggregations.groups import GROUP_SELECTORS
from flow_app.analytics.metrics.binning import GRANULARITIES
from flow_app.analytics.periods import recent_months
from flow_app.core.config import DEFAULT_GRANULARITY, PROJECT_EPOCH

PERIOD_CHOICES = {
    "Last 12 weeks": "weekly",
    "Last 6 months": "biweekly",
    "Last 12 months": "monthly",
    "Specific month": "specific-month",
    "Specific year": "specific-year",
    "Custom range": "custom",
    "All time": "all",
}

GROUP_LABELS = {
    "team": "Team",
    "type": "Work item type",
    "assignee": "Assignee",
    "priority": "Priority",
    "tag": "Tag",
    "creator": "Created by",
    "state": "State",
    "phase": "Phase",
    "client": "Client type",
}


def period_picker(prefix: str = "flow"):
    """Render period widgets in the sidebar and return a period spec."""
    label = st.sidebar.selectbox("Period", list(PERIOD_CHOICES), index=2, key=f"{prefix}_period")
    kind = PERIOD_CHOICES[label]
    if kind == "specific-month":
        value = st.sidebar.selectbox("Month", recent_months(24), key=f"{prefix}_month")
        return {"kind": kind, "value": value}
    if kind == "specific-year":
        this_year = date.today().year
        years = ["all", *[str(y) for y in range(this_year, PROJECT_EPOCH.year - 1, -1)]]
        return {"kind": kind, "year": st.sidebar.selectbox("Year", years, index=1, key=f"{prefix}_year")}
    if kind == "custom":
        today = date.today()
        start = st.sidebar.date_input("Start", value=today - timedelta(days=30), key=f"{prefix}_start")
        end = st.sidebar.date_input("End", value=today, key=f"{prefix}_end")
        return {"kind": kind, "start": start, "end": end}
    if kind == "all":
        return {"kind": "all"}
    return kind


def granularity_picker(prefix: str = "flow") -> str:
    options = list(GRANULARITIES)
    return st.sidebar.selectbox(
        "Granularity", options, index=options.index(DEFAULT_GRANULARITY), key=f"{prefix}_granularity"
    )


def group_picker(prefix: str = "flow", default: str = "team") -> str:
    options = list(GROUP_SELECTORS)
    return st.sidebar.selectbox(
        "Group by",
        options,
        index=options.index(default),
        format_func=lambda k: GROUP_LABELS.get(k, k),
        key=f"{prefix}_group",
    )
