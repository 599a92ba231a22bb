"""Immutable item snapshots with an atomically swapped current reference.

Readers call :meth:`SnapshotStore.current` and keep using the object they got
for the whole computation, so they see either the old or the new snapshot and
never a mix. Only writers take the lock.
"""

from __future__ import annotations

import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

import pandas as pd

from .dates import now as tz_now
from .mappers import items_to_dataframe
from .models import WorkItem
from .status import add_lifecycle_metrics


@dataclass(frozen=True, slots=True)
class Snapshot:
    items: tuple[WorkItem, ...]
    frame: pd.DataFrame
    loaded_at: pd.Timestamp
    source: str = "backend"
    meta: dict = field(default_factory=dict)

    @property
    def size(self) -> int:
        return len(self.items)

    @property
    def empty(self) -> bool:
        return not self.items


def build_snapshot(
    items: Iterable[WorkItem],
    enrich: Callable[[pd.DataFrame], pd.DataFrame] | None = None,
    source: str = "backend",
    meta: dict | None = None,
) -> Snapshot:
    """Map items into an enriched frame and freeze both."""
    frozen = tuple(items)
    frame = items_to_dataframe(frozen)
    frame = enrich(frame) if enrich is not None else add_lifecycle_metrics(frame)
    return Snapshot(frozen, frame, tz_now(), source, dict(meta or {}))


EMPTY_SNAPSHOT = build_snapshot(())


class SnapshotStore:
    def __init__(self, initial: Snapshot | None = None):
        self._current = initial or EMPTY_SNAPSHOT
        self._write_lock = threading.Lock()
        self._version = 0

    def current(self) -> Snapshot:
        return self._current

    @property
    def version(self) -> int:
        return self._version

    def swap(self, snapshot: Snapshot) -> Snapshot:
        """Publish ``snapshot`` and return the one it replaced."""
        with self._write_lock:
            previous = self._current
            self._current = snapshot
            self._version += 1
        return previous

    def replace_items(self, items: Iterable[WorkItem], **kwargs) -> Snapshot:
        """Build the complete snapshot first, then publish it in one swap."""
        snapshot = build_snapshot(items, **kwargs)
        self.swap(snapshot)
        return snapshot
