"""Convenience launcher for the Streamlit app.

Usage:
  streamlit run run_dashboard.py

Automatically imports every module in ``flow_app/pages`` so each page
decorated with ``@register_page`` registers itself without manual edits here.
"""

import logging
from importlib import import_module
from pathlib import Path

import streamlit as st

from flow_app.app import main

st.set_page_config(layout="wide")
logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("flow_app")


def _auto_init_flow_service():
    """Connect to the backend from Streamlit secrets if configured."""
    if "flow_service" in st.session_state:
        return
    backend_secrets = st.secrets.get("backend", {})
    server = backend_secrets.get("API_SERVER") or st.secrets.get("API_SERVER")
    if not server:
        st.sidebar.warning("Backend URL not configured. Please use the Setup page.")
        return

    from flow_app.core.api_client import ItemsAPI
    from flow_app.core.service import FlowService

    service = FlowService(ItemsAPI(server))
    snapshot = service.refresh()
    if service.last_error:
        st.sidebar.error(f"Backend load failed: {service.last_error}")
        return
    st.session_state["api_server"] = server
    st.session_state["flow_service"] = service
    st.sidebar.success(f"Loaded {snapshot.size} work items.")


_auto_init_flow_service()

PAGES_DIR = Path(__file__).parent / "flow_app" / "pages"
for py in sorted(PAGES_DIR.glob("[!_]*.py")):
    mod_name = f"flow_app.pages.{py.stem}"
    try:
        import_module(mod_name)
    except ImportError as e:  # pragma: no cover
        logger.error("Failed importing page %s: %s", mod_name, e)

if __name__ == "__main__":
    main()
