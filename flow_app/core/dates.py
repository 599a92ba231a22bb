"""Timestamp normalization shared by the mapper, classifier and period resolver."""

from __future__ import annotations

import pandas as pd
import pytz

from .config import TIMEZONE


def get_tz(tz=None):
    if tz is None:
        return pytz.timezone(TIMEZONE)
    if isinstance(tz, str):
        return pytz.timezone(tz)
    return tz


def normalize_timestamp(value, target_tz=None) -> pd.Timestamp | None:
    """Normalize a timestamp-like value into ``target_tz``.

    Naive inputs are assumed to be UTC, which is what the tracker backend emits.
    Returns None when the input cannot be parsed.
    """
    if value is None or value == "":
        return None
    try:
        ts = pd.to_datetime(value, errors="coerce")
    except (TypeError, ValueError):
        return None
    if ts is None or pd.isna(ts):
        return None
    try:
        if getattr(ts, "tzinfo", None) is None:
            ts = ts.tz_localize(pytz.UTC)
        return ts.tz_convert(get_tz(target_tz))
    except (TypeError, ValueError):
        return None


def localize(value, tz=None) -> pd.Timestamp | None:
    """Interpret naive wall-clock values in ``tz`` (used for user-picked dates)."""
    if value is None or value == "":
        return None
    try:
        ts = pd.Timestamp(value)
    except (TypeError, ValueError):
        return None
    if pd.isna(ts):
        return None
    zone = get_tz(tz)
    if ts.tzinfo is None:
        return ts.tz_localize(zone)
    return ts.tz_convert(zone)


def to_series(values, tz=None) -> pd.Series:
    """Vectorized :func:`normalize_timestamp` for a column of mixed timestamp values."""
    series = pd.Series(values)
    if series.empty:
        return pd.Series(pd.DatetimeIndex([], tz=get_tz(tz)))
    parsed = pd.to_datetime(series, utc=True, errors="coerce", format="mixed")
    return parsed.dt.tz_convert(get_tz(tz))


def now(tz=None) -> pd.Timestamp:
    return pd.Timestamp.now(tz=get_tz(tz))
