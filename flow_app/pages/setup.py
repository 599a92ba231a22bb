"""Connection setup page: point at the items backend and load a snapshot."""

from __future__ import annotations

import json

import streamlit as st

from flow_app.app import register_page
from flow_app.core.api_client import ItemsAPI
from flow_app.core.config import API_DEFAULT_SERVER
from flow_app.core.service import FlowService
from flow_app.visual.progress import ProgressReporter


@register_page("Setup / Connection")
def setup_page():
    st.title("Backend Connection Setup")
    st.caption("The dashboard reads work items from the sync backend (`/api/items`).")

    backend_secrets = st.secrets.get("backend", {})
    secret_server = backend_secrets.get("API_SERVER") or st.secrets.get("API_SERVER")

    server = st.text_input(
        "Backend URL",
        value=st.session_state.get("api_server") or secret_server or API_DEFAULT_SERVER,
    )
    days = st.number_input("Only items changed in the last N days (0 = all)", min_value=0, max_value=3650, value=0)
    ttl = st.number_input("Client cache TTL (seconds)", min_value=60, max_value=3600, value=300)
    init_btn = st.button("Connect and load", type="primary")

    if init_btn:
        if not server:
            st.error("Backend URL is required.")
            return
        api = ItemsAPI(server)
        api._cache_ttl = float(ttl)
        service = st.session_state.get("flow_service")
        if not isinstance(service, FlowService) or service.api.server != api.server:
            service = FlowService(api)
        else:
            service.api._cache_ttl = float(ttl)
        reporter = ProgressReporter("Loading work items")
        snapshot = service.refresh(days=int(days) or None, progress=reporter.callback)
        if service.last_error:
            reporter.error(f"Refresh failed: {service.last_error}")
        else:
            reporter.complete(f"Loaded {snapshot.size} work items.")
        st.session_state["api_server"] = api.server
        st.session_state["flow_service"] = service

    uploaded = st.file_uploader("…or load a JSON export of /api/items", type=["json"])
    if uploaded is not None:
        try:
            raw = json.loads(uploaded.getvalue().decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            st.error(f"Could not parse file: {exc}")
            return
        if not isinstance(raw, list):
            st.error("Expected a JSON list of work items.")
            return
        service = st.session_state.get("flow_service") or FlowService(ItemsAPI(server or API_DEFAULT_SERVER))
        snapshot = service.load_raw(raw, source="upload")
        st.session_state["flow_service"] = service
        st.success(f"Loaded {snapshot.size} work items from file.")

    service = st.session_state.get("flow_service")
    if isinstance(service, FlowService):
        snap = service.snapshot()
        st.info(f"Snapshot ready: {snap.size} items, loaded {snap.loaded_at:%Y-%m-%d %H:%M}.")
        status = service.sync_status()
        if status:
            st.caption(f"Last backend sync: {status}")
