"""Application entry point: page registry, router and snapshot status footer."""

from __future__ import annotations

import streamlit as st

PAGES = {}

PAGE_ORDER = (
    "Flow Overview",  # trends, stats per group, CFD
    "SLA & Health",  # compliance, health ranking, burndown
    "Setup / Connection",  # backend connection and snapshot refresh
)
SETUP_PAGE = "Setup / Connection"


def register_page(label):
    def decorator(func):
        PAGES[label] = func
        return func

    return decorator


def ordered_pages(registered) -> list[str]:
    """Known pages in their fixed order, then any extra pages alphabetically."""
    known = [name for name in PAGE_ORDER if name in registered]
    return known + sorted(name for name in registered if name not in PAGE_ORDER)


def _snapshot_footer():
    service = st.session_state.get("flow_service")
    if service is None:
        st.sidebar.caption("No snapshot loaded.")
        return
    snapshot = service.snapshot()
    st.sidebar.caption(f"{snapshot.size} items · loaded {snapshot.loaded_at:%Y-%m-%d %H:%M} ({snapshot.source})")
    if service.last_error:
        st.sidebar.warning(f"Last refresh failed: {service.last_error}")


def main():
    st.sidebar.title("Flow Metrics")
    pages = ordered_pages(PAGES)
    if not pages:
        st.write("No pages registered yet.")
        return
    # Without a loaded service the only useful page is the setup one
    needs_setup = SETUP_PAGE in pages and "flow_service" not in st.session_state
    page = st.sidebar.selectbox("Page", pages, index=pages.index(SETUP_PAGE) if needs_setup else 0)
    _snapshot_footer()
    PAGES[page]()


if __name__ == "__main__":
    main()
