import threading
from datetime import datetime

import pytz

from flow_app.core.models import WorkItem
from flow_app.core.snapshot import EMPTY_SNAPSHOT, SnapshotStore, build_snapshot


def _items(n, state="Done"):
    created = datetime(2024, 1, 1, 12, tzinfo=pytz.UTC)
    closed = datetime(2024, 1, 4, 12, tzinfo=pytz.UTC)
    return [WorkItem(i, f"Item {i}", state, "Task", created, closed_date=closed) for i in range(n)]


def test_build_snapshot_enriches_frame():
    snapshot = build_snapshot(_items(3))
    assert snapshot.size == 3
    assert not snapshot.empty
    assert list(snapshot.frame["phase"]) == ["Completed"] * 3
    assert list(snapshot.frame["cycle_time"]) == [3.0] * 3


def test_empty_snapshot():
    assert EMPTY_SNAPSHOT.empty
    assert SnapshotStore().current() is EMPTY_SNAPSHOT


def test_swap_returns_previous_and_readers_keep_their_copy():
    store = SnapshotStore()
    first = store.replace_items(_items(2))
    held = store.current()
    previous = store.swap(build_snapshot(_items(5, state="Active")))
    assert previous is first
    assert held.size == 2
    assert store.current().size == 5
    assert store.version == 2


def test_concurrent_swaps_publish_whole_snapshots():
    store = SnapshotStore()
    candidates = [build_snapshot(_items(n)) for n in (1, 2, 3, 4)]
    seen = []

    def writer(snapshot):
        for _ in range(50):
            store.swap(snapshot)

    def reader():
        for _ in range(200):
            snap = store.current()
            seen.append(len(snap.frame) == snap.size)

    threads = [threading.Thread(target=writer, args=(s,)) for s in candidates]
    threads += [threading.Thread(target=reader) for _ in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert all(seen)
    assert store.version == 200
    assert store.current() in candidates
