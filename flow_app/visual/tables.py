"""Reusable table helpers for Streamlit rendering."""

from __future__ import annotations

import pandas as pd
import streamlit as st

ITEM_COLUMNS = ["Item", "work_item_id", "title", "state", "team", "assigned_to", "age", "over_by", "aging_bucket"]


def add_item_link(df: pd.DataFrame, url_col: str = "url", label: str = "Item"):
    if df.empty or url_col not in df.columns:
        return df, {}
    out = df.copy()
    out[label] = out[url_col].fillna("").astype(str)
    cfg = {label: st.column_config.LinkColumn(label, display_text=r"(\d+)$", help="Open in the tracker", width="small")}
    return out, cfg


def render_item_table(rows, limit: int = 1000) -> None:
    """Render work item records (list of dicts or a frame) with a link column."""
    df = rows if isinstance(rows, pd.DataFrame) else pd.DataFrame(list(rows))
    if df.empty:
        st.info("No items.")
        return
    linked, cfg = add_item_link(df)
    cols = [c for c in ITEM_COLUMNS if c in linked.columns]
    st.dataframe(linked[cols].head(limit), hide_index=True, column_config=cfg)


def stats_display(table: pd.DataFrame) -> pd.DataFrame:
    """Round stats columns to one decimal for display."""
    out = table.copy()
    for col in ("mean", "p50", "p85", "p95", "min", "max"):
        if col in out.columns:
            out[col] = pd.to_numeric(out[col], errors="coerce").round(1)
    return out
