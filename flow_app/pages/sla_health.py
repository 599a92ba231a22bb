"""SLA & Health page: compliance, health ranking, breaching items, burndown and targets."""

from __future__ import annotations

from datetime import date, timedelta

import pandas as pd
import streamlit as st

from flow_app.analytics.forecast import monte_carlo, weekly_throughput
from flow_app.analytics.trajectory import burndown
from flow_app.app import register_page
from flow_app.core.config import DEFAULT_SLA_TARGET_DAYS, SLA_TARGET_CHOICES
from flow_app.core.service import FlowService
from flow_app.core.targets import InMemoryTargetsStore, TargetsStore, TeamTargets, evaluate_targets
from flow_app.features.flow_overview.context import build_flow_context
from flow_app.visual import charts
from flow_app.visual.controls import group_picker, period_picker
from flow_app.visual.tables import render_item_table


def _targets_store() -> TargetsStore:
    store = st.session_state.get("targets_store")
    if store is None:
        store = InMemoryTargetsStore()
        st.session_state["targets_store"] = store
    return store


@register_page("SLA & Health")
def sla_health_page():
    st.title("SLA & Health")
    service: FlowService | None = st.session_state.get("flow_service")
    if service is None:
        st.warning("Initialize connection on Setup page first.")
        return
    snapshot = service.snapshot()
    if snapshot.empty:
        st.info("The snapshot is empty. Load items on the Setup page.")
        return

    period_spec = period_picker("sla")
    key = group_picker("sla")
    choices = list(SLA_TARGET_CHOICES)
    target = st.sidebar.selectbox(
        "SLA target (days)", choices, index=choices.index(DEFAULT_SLA_TARGET_DAYS), key="sla_target"
    )
    ctx = build_flow_context(snapshot.frame, period_spec, key=key, sla_target=target)

    sla = ctx.sla
    cols = st.columns(4)
    cols[0].metric("SLA compliance", f"{sla.pct:.1f}%" if sla.pct is not None else "n/a")
    cols[1].metric("Within SLA", sla.within)
    cols[2].metric("Breached", sla.breached)
    cols[3].metric("Health score", ctx.health.score)

    st.subheader("SLA by priority")
    st.dataframe([row.to_dict() for row in ctx.sla_by_priority], hide_index=True)

    st.subheader(f"Health by {key}")
    chart, _ = charts.health_bars(ctx.health_by_group)
    if chart is None:
        st.info("No groups to score.")
    else:
        st.altair_chart(chart, use_container_width=True)

    st.subheader("Currently breaching")
    st.caption("In-progress items already older than the SLA target.")
    render_item_table(sla.currently_breaching)

    st.subheader("Burndown")
    today = date.today()
    start = st.date_input("Sprint start", value=today - timedelta(days=13), key="bd_start")
    end = st.date_input("Sprint end", value=today, key="bd_end")
    scope = ctx.items
    if "iteration_path" in scope.columns:
        iterations = sorted(p for p in scope["iteration_path"].dropna().unique())
        chosen = st.selectbox("Iteration", ["(all items in period)", *iterations], key="bd_iteration")
        if chosen != "(all items in period)":
            scope = scope[scope["iteration_path"] == chosen]
    series = burndown(scope, start, end)
    use_points = st.toggle("Story points", value=False, key="bd_points")
    chart, _ = charts.burndown_chart(series, points=use_points)
    if chart is None:
        st.info("No burndown data for this range.")
    else:
        st.altair_chart(chart, use_container_width=True)

    st.subheader("Forecast")
    samples = weekly_throughput(ctx.items)
    col_a, col_b = st.columns(2)
    weeks = col_a.number_input("How many items in N weeks?", min_value=1, max_value=52, value=4)
    items = col_b.number_input("When will N items be done?", min_value=1, max_value=1000, value=20)
    forecast = monte_carlo(samples, items=int(items), weeks=int(weeks))
    if forecast is None:
        st.info("At least two weeks of throughput are needed for a forecast.")
    else:
        conf = pd.DataFrame(
            {"how_many_items": forecast.how_many.confidence, "weeks_needed": forecast.when.confidence}
        )
        st.dataframe(conf, use_container_width=True)

    st.subheader("Team targets")
    store = _targets_store()
    team = st.selectbox("Team", sorted(ctx.items["team"].dropna().unique()) or ["Sem Time"], key="tg_team")
    current = store.get(team)
    with st.form("targets_form"):
        tp = st.number_input("Throughput / week", value=float(current.throughput_per_week))
        ct = st.number_input("Cycle time (days)", value=float(current.cycle_time_days))
        lt = st.number_input("Lead time (days)", value=float(current.lead_time_days))
        dr = st.number_input("Defect rate (%)", value=float(current.defect_rate_pct))
        if st.form_submit_button("Save targets"):
            current = TeamTargets(tp, ct, lt, dr)
            store.set(team, current)
    team_items = ctx.items[ctx.items["team"] == team]
    progress = evaluate_targets(team_items, current, ctx.period.days)
    st.dataframe([p.to_dict() for p in progress], hide_index=True)
