import pandas as pd

from flow_app.analytics.forecast import monte_carlo, weekly_throughput


def _sample_df():
    closed = ["2024-01-02", "2024-01-03", "2024-01-09", "2024-01-10", "2024-01-11", "2024-01-24"]
    rows = [
        {"work_item_id": i, "state": "Done", "created_date": "2023-12-20T12:00:00Z", "closed_date": f"{d}T12:00:00Z"}
        for i, d in enumerate(closed)
    ]
    rows.append({"work_item_id": 99, "state": "Active", "created_date": "2024-01-01T12:00:00Z"})
    return pd.DataFrame(rows)


def test_weekly_throughput_by_iso_week():
    weekly = weekly_throughput(_sample_df())
    assert weekly.to_dict() == {"2024-W01": 2, "2024-W02": 3, "2024-W04": 1}


def test_not_enough_samples():
    assert monte_carlo([], items=5, weeks=2) is None
    assert monte_carlo([4], items=5, weeks=2) is None


def test_constant_throughput_is_deterministic():
    forecast = monte_carlo([5, 5, 5], items=20, weeks=4, trials=200, seed=1)
    assert forecast.how_many.confidence == {"p50": 20, "p85": 20, "p95": 20}
    assert forecast.when.confidence == {"p50": 4, "p85": 4, "p95": 4}
    assert forecast.capped == 0


def test_seeded_runs_repeat():
    samples = [2, 5, 1, 7, 3]
    first = monte_carlo(samples, items=15, weeks=3, trials=500, seed=42)
    second = monte_carlo(samples, items=15, weeks=3, trials=500, seed=42)
    assert first.to_dict() == second.to_dict()


def test_confidence_levels_are_conservative():
    forecast = monte_carlo([0, 2, 4, 6, 8, 10], items=30, weeks=5, trials=2000, seed=3)
    how_many = forecast.how_many.confidence
    when = forecast.when.confidence
    assert how_many["p95"] <= how_many["p85"] <= how_many["p50"]
    assert when["p50"] <= when["p85"] <= when["p95"]
    assert sum(d["frequency"] for d in forecast.when.distribution) == 2000


def test_zero_throughput_is_capped():
    forecast = monte_carlo([0, 0], items=5, weeks=2, trials=50, seed=0, max_weeks=10)
    assert forecast.capped == 50
    assert forecast.when.confidence["p50"] == 10
