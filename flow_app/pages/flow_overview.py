"""Flow Overview page: KPIs, throughput and cycle-time trends, group stats and CFD."""

from __future__ import annotations

import streamlit as st

from flow_app.app import register_page
from flow_app.core.service import FlowService
from flow_app.features.flow_overview.context import build_flow_context
from flow_app.visual import charts
from flow_app.visual.controls import granularity_picker, group_picker, period_picker
from flow_app.visual.tables import render_item_table, stats_display


def _delta(current, previous, digits: int = 1):
    if current is None or previous is None:
        return None
    return round(current - previous, digits)


@register_page("Flow Overview")
def flow_overview_page():
    st.title("Flow Overview")
    service: FlowService | None = st.session_state.get("flow_service")
    if service is None:
        st.warning("Initialize connection on Setup page first.")
        return
    snapshot = service.snapshot()
    if snapshot.empty:
        st.info("The snapshot is empty. Load items on the Setup page.")
        return

    period_spec = period_picker("flow")
    granularity = granularity_picker("flow")
    key = group_picker("flow")
    ctx = build_flow_context(snapshot.frame, period_spec, granularity, key)
    st.caption(f"{ctx.period.start:%Y-%m-%d} to {ctx.period.end:%Y-%m-%d} · {len(ctx.items)} items in scope")

    kpis, prev = ctx.kpis, ctx.previous_kpis
    cols = st.columns(5)
    cols[0].metric("Items", kpis.total, delta=kpis.total - prev.total)
    cols[1].metric("Completed", kpis.completed, delta=kpis.completed - prev.completed)
    cols[2].metric("WIP", kpis.wip)
    avg_ct = f"{kpis.avg_cycle_time:.1f} d" if kpis.avg_cycle_time is not None else "n/a"
    cols[3].metric(
        "Avg cycle time",
        avg_ct,
        delta=_delta(kpis.avg_cycle_time, prev.avg_cycle_time),
        delta_color="inverse",
    )
    cols[4].metric("Completion rate", f"{kpis.completion_rate:.0f}%")

    left, right = st.columns(2)
    with left:
        st.subheader("Throughput")
        chart, _ = charts.throughput_trend(ctx.trend)
        if chart is None:
            st.info("No completions in this period.")
        else:
            st.altair_chart(chart, use_container_width=True)
    with right:
        st.subheader("Cycle time")
        chart, _ = charts.cycle_time_trend(ctx.trend)
        if chart is None:
            st.info("No measurable cycle times in this period.")
        else:
            st.altair_chart(chart, use_container_width=True)

    st.subheader("Cycle time by group")
    if ctx.group_table.empty:
        st.info("No items to group.")
    else:
        st.dataframe(stats_display(ctx.group_table), hide_index=True)
    chart, _ = charts.cycle_time_histogram(ctx.cycle_time_histogram)
    if chart is not None:
        st.altair_chart(chart, use_container_width=True)

    st.subheader("Cumulative flow")
    chart, _ = charts.cfd_chart(ctx.cfd)
    if chart is None:
        st.info("Nothing to plot for this period.")
    else:
        st.altair_chart(chart, use_container_width=True)
        st.caption(ctx.cfd.caveat)

    left, right = st.columns(2)
    with left:
        st.subheader("WIP per group")
        if ctx.wip.empty:
            st.info("No work in progress.")
        else:
            st.dataframe(ctx.wip, hide_index=True)
    with right:
        st.subheader("Aging")
        aging = ctx.aging
        st.write(f"Critical: **{aging.critical}** · Warning: **{aging.warning}** · Normal: **{aging.normal}**")
        render_item_table(aging.oldest)

    fe = ctx.flow_efficiency
    st.subheader("Flow efficiency")
    if fe.efficiency is None:
        st.info(f"No items with time-in-status data ({fe.excluded} excluded).")
    else:
        st.metric("Global efficiency", f"{fe.pct:.1f}%", help=f"{fe.items} items measured, {fe.excluded} excluded")
        if fe.groups:
            st.dataframe([row.to_dict() for row in fe.groups], hide_index=True)
