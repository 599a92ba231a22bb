"""Summary statistics over metric samples (nearest-rank percentiles)."""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import asdict, dataclass

import numpy as np
import pandas as pd

PERCENTILES: dict[str, float] = {"p50": 0.50, "p85": 0.85, "p95": 0.95}


@dataclass(frozen=True, slots=True)
class Stats:
    """Statistics for one metric over one group.

    ``count`` is the number of items considered, ``samples`` how many had a
    defined value and ``excluded`` the difference, so an empty sample is never
    mistaken for a zero.
    """

    count: int
    samples: int
    excluded: int
    mean: float | None
    p50: float | None
    p85: float | None
    p95: float | None
    min: float | None
    max: float | None
    sum: float

    def to_dict(self) -> dict:
        return asdict(self)


def _clean(values) -> np.ndarray:
    if values is None:
        return np.array([], dtype=float)
    if not isinstance(values, pd.Series):
        values = pd.Series(list(values) if isinstance(values, Iterable) else [values], dtype=object)
    numeric = pd.to_numeric(values, errors="coerce")
    arr = numeric.to_numpy(dtype=float, na_value=np.nan)
    return arr[np.isfinite(arr)]


def percentile(values, p: float, default: float | None = None) -> float | None:
    """Nearest-rank percentile: sorted value at ``ceil(n * p) - 1``, clamped.

    Examples
    --------
    >>> percentile(range(1, 11), 0.85)
    9.0
    >>> percentile([], 0.5) is None
    True
    """
    sample = np.sort(_clean(values))
    n = sample.size
    if n == 0:
        return default
    index = min(max(math.ceil(n * p) - 1, 0), n - 1)
    return float(sample[index])


def summarize(values, count: int | None = None) -> Stats:
    """Build :class:`Stats` for a sample, dropping null/NaN/non-numeric entries.

    ``count`` overrides the item total when the caller knows more items were in
    the group than values were passed (e.g. a pre-filtered sample).
    """
    raw_count = len(values) if hasattr(values, "__len__") else None
    sample = np.sort(_clean(values))
    n = int(sample.size)
    total = int(count if count is not None else (raw_count if raw_count is not None else n))
    if n == 0:
        return Stats(total, 0, total, None, None, None, None, None, None, 0.0)
    picks = {name: float(sample[min(max(math.ceil(n * p) - 1, 0), n - 1)]) for name, p in PERCENTILES.items()}
    return Stats(
        count=total,
        samples=n,
        excluded=max(total - n, 0),
        mean=float(sample.mean()),
        min=float(sample[0]),
        max=float(sample[-1]),
        sum=float(sample.sum()),
        **picks,
    )


def mean_or_none(values) -> float | None:
    sample = _clean(values)
    return float(sample.mean()) if sample.size else None
