"""FlowService: orchestrates fetching, mapping, enrichment and snapshot swap."""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

import pandas as pd

from flow_app.analytics.scoring import fill_time_in_status

from .api_client import ItemsAPI
from .mappers import map_work_items
from .snapshot import Snapshot, SnapshotStore, build_snapshot
from .status import add_lifecycle_metrics
from .taxonomy import StateTaxonomy, load_taxonomy

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int | None, int | None], None]


class FlowService:
    def __init__(
        self,
        api: ItemsAPI,
        store: SnapshotStore | None = None,
        taxonomy: StateTaxonomy | None = None,
    ):
        self.api = api
        self.store = store or SnapshotStore()
        self.taxonomy = taxonomy or load_taxonomy()
        self.last_error: str | None = None

    def snapshot(self) -> Snapshot:
        return self.store.current()

    def frame(self) -> pd.DataFrame:
        return self.store.current().frame

    # ------------------ Enrichment Pipeline ------------------
    def enrich(self, df: pd.DataFrame, now=None) -> pd.DataFrame:
        """Derive time-in-status from history, then lifecycle metrics."""
        if df.empty:
            return add_lifecycle_metrics(df, taxonomy=self.taxonomy, now=now)
        out = fill_time_in_status(df, now=now)
        return add_lifecycle_metrics(out, taxonomy=self.taxonomy, now=now)

    def load_raw(self, raw_items: list[dict[str, Any]], source: str = "backend") -> Snapshot:
        """Map and publish records that were obtained elsewhere (file upload, tests)."""
        items = map_work_items(raw_items)
        snapshot = build_snapshot(items, enrich=self.enrich, source=source, meta={"raw_count": len(raw_items)})
        self.store.swap(snapshot)
        return snapshot

    # ------------------ Fetch Methods ------------------
    def refresh(
        self,
        days: int | None = None,
        *,
        progress: ProgressCallback | None = None,
    ) -> Snapshot:
        """Fetch fresh items and publish a new snapshot.

        On a backend failure the previous snapshot stays current and is
        returned; the error text is kept in ``last_error``.
        """
        if hasattr(self.api, "clear_cache"):
            self.api.clear_cache()
        if progress:
            progress("Fetching work items", None, None)
        try:
            raw = self.api.fetch_items(days=days)
        except RuntimeError as exc:
            self.last_error = str(exc)
            logger.error("Work item refresh failed, keeping previous snapshot: %s", exc)
            return self.store.current()
        if progress:
            progress("Computing lifecycle metrics", len(raw), len(raw))
        snapshot = self.load_raw(raw)
        self.last_error = None
        logger.info("Loaded %s work items", snapshot.size)
        return snapshot

    def sync_status(self) -> dict[str, Any] | None:
        try:
            return self.api.sync_status()
        except RuntimeError as exc:
            logger.warning("Could not read sync status: %s", exc)
            return None
