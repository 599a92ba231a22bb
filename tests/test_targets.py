import pandas as pd

from flow_app.core.targets import (
    InMemoryTargetsStore,
    TargetsStore,
    TeamTargets,
    YamlTargetsStore,
    evaluate_targets,
)


def _sample_df():
    rows = []
    for i in range(10):
        rows.append(
            {
                "work_item_id": i,
                "state": "Done",
                "type": "Bug" if i < 2 else "User Story",
                "team": "Alpha",
                "created_date": "2024-01-01T12:00:00Z",
                "closed_date": "2024-01-08T12:00:00Z",
            }
        )
    return pd.DataFrame(rows)


def test_defaults_and_invalid_values():
    assert TeamTargets().to_dict() == {
        "throughput_per_week": 10.0,
        "cycle_time_days": 7.0,
        "lead_time_days": 14.0,
        "defect_rate_pct": 15.0,
    }
    parsed = TeamTargets.from_dict({"throughput_per_week": "12", "cycle_time_days": "soon"})
    assert parsed.throughput_per_week == 12.0
    assert parsed.cycle_time_days == 7.0
    assert TeamTargets.from_dict(None) == TeamTargets()


def test_in_memory_store():
    store = InMemoryTargetsStore()
    assert isinstance(store, TargetsStore)
    assert store.get("Alpha") == TeamTargets()
    store.set("Alpha", TeamTargets(throughput_per_week=4))
    assert store.get("Alpha").throughput_per_week == 4
    assert store.get("Beta") == TeamTargets()


def test_yaml_store_persists(tmp_path):
    path = tmp_path / "targets" / "teams.yaml"
    store = YamlTargetsStore(path)
    assert isinstance(store, TargetsStore)
    assert store.get("Alpha") == TeamTargets()
    store.set("Alpha", TeamTargets(throughput_per_week=6, cycle_time_days=5))
    store.set("Beta", TeamTargets(defect_rate_pct=5))
    reopened = YamlTargetsStore(path)
    assert reopened.get("Alpha").cycle_time_days == 5.0
    assert reopened.get("Beta").defect_rate_pct == 5.0
    assert not path.with_suffix(".yaml.tmp").exists()


def test_yaml_store_ignores_garbage(tmp_path):
    path = tmp_path / "teams.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")
    assert YamlTargetsStore(path).get("Alpha") == TeamTargets()


def test_evaluate_targets():
    progress = {p.metric: p for p in evaluate_targets(_sample_df(), TeamTargets(), period_days=14)}
    assert progress["throughput_per_week"].current == 5.0
    assert progress["throughput_per_week"].progress == 50.0
    assert progress["throughput_per_week"].status == "far"
    assert progress["cycle_time_days"].current == 7.0
    assert progress["cycle_time_days"].status == "met"
    assert progress["lead_time_days"].progress == 150.0
    assert progress["defect_rate_pct"].current == 20.0
    assert progress["defect_rate_pct"].progress == 75.0
    assert progress["defect_rate_pct"].status == "near"


def test_evaluate_targets_without_items():
    progress = evaluate_targets(pd.DataFrame(), TeamTargets(), period_days=30)
    assert [p.status for p in progress] == ["no-data"] * 4
    assert all(p.progress is None for p in progress)
