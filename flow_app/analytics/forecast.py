"""Monte Carlo throughput forecasting over weekly completion samples."""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from dataclasses import asdict, dataclass, field

import numpy as np
import pandas as pd

from flow_app.core.config import MONTE_CARLO_MAX_WEEKS, MONTE_CARLO_TRIALS, PHASE_COMPLETED
from flow_app.core.status import add_lifecycle_metrics

logger = logging.getLogger(__name__)

CONFIDENCE_LEVELS: dict[str, float] = {"p50": 0.50, "p85": 0.85, "p95": 0.95}
MIN_SAMPLES = 2


@dataclass(slots=True)
class ForecastOutcome:
    confidence: dict[str, int]
    distribution: list[dict[str, int]] = field(default_factory=list)


@dataclass(slots=True)
class MonteCarloForecast:
    items: int
    weeks: int
    trials: int
    samples: int
    how_many: ForecastOutcome
    when: ForecastOutcome
    capped: int = 0

    def to_dict(self) -> dict:
        return asdict(self)


def weekly_throughput(df: pd.DataFrame) -> pd.Series:
    """Completed items per ISO week (Monday start), indexed ``YYYY-Www``.

    Only weeks with at least one completion appear, matching how the samples
    were historically collected.
    """
    if df.empty:
        return pd.Series(dtype=int)
    enriched = df if "closed_dt" in df.columns and "phase" in df.columns else add_lifecycle_metrics(df)
    closed = enriched.loc[(enriched["phase"] == PHASE_COMPLETED) & enriched["closed_dt"].notna(), "closed_dt"]
    if closed.empty:
        return pd.Series(dtype=int)
    iso = closed.dt.isocalendar()
    keys = iso["year"].astype(str) + "-W" + iso["week"].astype(int).map("{:02d}".format)
    return keys.value_counts().sort_index().astype(int)


def _distribution(outcomes: np.ndarray, name: str) -> list[dict[str, int]]:
    values, counts = np.unique(outcomes, return_counts=True)
    return [{name: int(v), "frequency": int(c)} for v, c in zip(values, counts)]


def monte_carlo(
    samples: Sequence[int] | pd.Series,
    items: int = 20,
    weeks: int = 4,
    trials: int = MONTE_CARLO_TRIALS,
    seed: int | None = None,
    max_weeks: int = MONTE_CARLO_MAX_WEEKS,
) -> MonteCarloForecast | None:
    """Answer "how many items in ``weeks``" and "how many weeks for ``items``".

    Each trial draws weekly throughput values with replacement from
    ``samples``. Returns None with fewer than two samples.

    Confidence levels follow the conservative reading of each question: for
    "how many" the P85 answer is the outcome reached in 85% of trials, taken
    at sorted index ``floor(n * (1 - p))``; for "when" it is the nearest-rank
    index ``ceil(n * p) - 1``. Trials that have not finished after
    ``max_weeks`` stop there and are counted in ``capped``.
    """
    values = np.asarray(pd.to_numeric(pd.Series(list(samples)), errors="coerce").dropna(), dtype=float)
    values = values[values >= 0]
    if values.size < MIN_SAMPLES:
        logger.info("Not enough weekly samples for a forecast (%s)", values.size)
        return None
    trials = max(int(trials), 1)
    weeks = max(int(weeks), 0)
    items = max(int(items), 0)
    rng = np.random.default_rng(seed)

    how_many = rng.choice(values, size=(trials, weeks)).sum(axis=1) if weeks else np.zeros(trials)
    how_many = np.sort(how_many.astype(int))

    done = np.zeros(trials)
    elapsed = np.zeros(trials, dtype=int)
    active = done < items
    week = 0
    while active.any() and week < max_weeks:
        week += 1
        done[active] += rng.choice(values, size=int(active.sum()))
        elapsed[active] = week
        active = done < items
    capped = int(active.sum())
    when = np.sort(elapsed)

    n = trials
    how_many_conf = {k: int(how_many[min(math.floor(n * (1 - p)), n - 1)]) for k, p in CONFIDENCE_LEVELS.items()}
    when_conf = {k: int(when[min(max(math.ceil(n * p) - 1, 0), n - 1)]) for k, p in CONFIDENCE_LEVELS.items()}
    return MonteCarloForecast(
        items=items,
        weeks=weeks,
        trials=trials,
        samples=int(values.size),
        how_many=ForecastOutcome(how_many_conf, _distribution(how_many, "items")),
        when=ForecastOutcome(when_conf, _distribution(when, "weeks")),
        capped=capped,
    )
