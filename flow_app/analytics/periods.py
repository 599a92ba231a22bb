"""Resolve human-selected period specifications into concrete date intervals.

Rolling windows are anchored to the evaluation instant and never cached, so
two calls a second apart can return different ``end`` values. Calendar kinds
(month, year) are aligned to the first and last instant of the unit in the
engine timezone. Anything malformed falls back to the last 12 months.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import asdict, dataclass
from datetime import date, datetime
from typing import Any

import pandas as pd

from flow_app.core.config import DEFAULT_PERIOD_MONTHS, PROJECT_EPOCH
from flow_app.core.dates import get_tz, localize

logger = logging.getLogger(__name__)

ONE_MICROSECOND = pd.Timedelta(microseconds=1)
_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MONTH_VALUE = re.compile(r"^(\d{4})-(\d{1,2})$")
_YEAR_VALUE = re.compile(r"^\d{4}$")

# Shorthand kinds used by the cycle-time views
PRESETS: dict[str, dict[str, int]] = {
    "weekly": {"weeks": 12},
    "biweekly": {"months": 6},
    "monthly": {"months": 12},
}


@dataclass(frozen=True, slots=True)
class Period:
    start: pd.Timestamp
    end: pd.Timestamp
    kind: str = "custom"

    def __post_init__(self):
        if self.start > self.end:
            start, end = self.end, self.start
            object.__setattr__(self, "start", start)
            object.__setattr__(self, "end", end)

    def contains(self, value) -> bool:
        ts = localize(value, self.start.tz)
        if ts is None:
            return False
        return self.start <= ts <= self.end

    @property
    def days(self) -> int:
        """Number of calendar days touched by the period (inclusive)."""
        return (self.end.normalize() - self.start.normalize()).days + 1

    def to_dict(self) -> dict[str, str]:
        return {"kind": self.kind, "start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass(slots=True)
class PeriodSpec:
    kind: str
    weeks: int | None = None
    months: int | None = None
    days: int | None = None
    year: int | str | None = None
    month: int | None = None
    value: str | None = None
    start: Any = None
    end: Any = None


def _wall(naive: pd.Timestamp, zone) -> pd.Timestamp:
    return naive.tz_localize(zone, nonexistent="shift_forward", ambiguous=False)


def _positive_int(value) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = int(value)
    except (TypeError, ValueError):
        return None
    if number <= 0 or number != float(value):
        return None
    return number


def _month_bounds(year: int, month: int, zone) -> tuple[pd.Timestamp, pd.Timestamp]:
    first = pd.Timestamp(year=year, month=month, day=1)
    last = first + pd.DateOffset(months=1) - ONE_MICROSECOND
    return _wall(first, zone), _wall(last, zone)


def _year_bounds(first_year: int, last_year: int, zone) -> tuple[pd.Timestamp, pd.Timestamp]:
    first = pd.Timestamp(year=first_year, month=1, day=1)
    last = pd.Timestamp(year=last_year + 1, month=1, day=1) - ONE_MICROSECOND
    return _wall(first, zone), _wall(last, zone)


def default_period(now=None, tz=None) -> Period:
    """The safe fallback: the last ``DEFAULT_PERIOD_MONTHS`` months up to now."""
    zone = get_tz(tz)
    anchor = localize(now, zone) if now is not None else pd.Timestamp.now(tz=zone)
    return Period(anchor - pd.DateOffset(months=DEFAULT_PERIOD_MONTHS), anchor, "rolling")


def _rolling(spec: Mapping[str, Any], anchor: pd.Timestamp) -> Period | None:
    weeks = _positive_int(spec.get("weeks"))
    months = _positive_int(spec.get("months"))
    days = _positive_int(spec.get("days"))
    if weeks:
        return Period(anchor - pd.Timedelta(weeks=weeks), anchor, "rolling")
    if months:
        return Period(anchor - pd.DateOffset(months=months), anchor, "rolling")
    if days:
        return Period(anchor - pd.Timedelta(days=days), anchor, "rolling")
    return None


def _specific_month(spec: Mapping[str, Any], zone) -> Period | None:
    year, month = spec.get("year"), spec.get("month")
    value = spec.get("value")
    if (year is None or month is None) and isinstance(value, str):
        match = _MONTH_VALUE.match(value.strip())
        if match:
            year, month = match.group(1), match.group(2)
    year, month = _positive_int(year), _positive_int(month)
    if year is None or month is None or not 1 <= month <= 12:
        return None
    start, end = _month_bounds(year, month, zone)
    return Period(start, end, "specific-month")


def _specific_year(spec: Mapping[str, Any], anchor: pd.Timestamp, zone) -> Period | None:
    year = spec.get("year", spec.get("value"))
    if isinstance(year, str) and year.strip().lower() == "all":
        start, end = _year_bounds(PROJECT_EPOCH.year, max(anchor.year, PROJECT_EPOCH.year), zone)
        return Period(start, end, "all-years")
    year = _positive_int(year)
    if year is None:
        return None
    start, end = _year_bounds(year, year, zone)
    return Period(start, end, "specific-year")


def _is_date_only(value) -> bool:
    if isinstance(value, datetime):
        return False
    if isinstance(value, date):
        return True
    return isinstance(value, str) and bool(_DATE_ONLY.match(value.strip()))


def _custom(spec: Mapping[str, Any], zone) -> Period | None:
    raw_start, raw_end = spec.get("start"), spec.get("end")
    start = localize(raw_start, zone)
    end = localize(raw_end, zone)
    if start is None or end is None:
        return None
    if _is_date_only(raw_end):
        end = end.normalize() + pd.Timedelta(days=1) - ONE_MICROSECOND
    return Period(start, end, "custom")


def _all(anchor: pd.Timestamp, zone) -> Period:
    epoch = _wall(pd.Timestamp(PROJECT_EPOCH), zone)
    return Period(epoch, max(anchor, epoch), "all")


def _coerce_spec(spec: Any) -> Mapping[str, Any] | None:
    if isinstance(spec, PeriodSpec):
        return asdict(spec)
    if isinstance(spec, Mapping):
        return spec
    if isinstance(spec, bool):
        return None
    if isinstance(spec, int):
        return {"kind": "rolling", "days": spec}
    if isinstance(spec, str):
        text = spec.strip()
        lowered = text.lower()
        if lowered in {"all", "unbounded"}:
            return {"kind": lowered}
        if lowered in PRESETS:
            return {"kind": "rolling", **PRESETS[lowered]}
        if _MONTH_VALUE.match(text):
            return {"kind": "specific-month", "value": text}
        if _YEAR_VALUE.match(text):
            return {"kind": "specific-year", "year": text}
        if text.isdigit():
            return {"kind": "rolling", "days": int(text)}
    return None


def resolve(spec: Any, now=None, tz=None) -> Period:
    """Turn a period specification into a concrete :class:`Period`.

    Parameters
    ----------
    spec : Mapping | PeriodSpec | int | str
        ``{"kind": "rolling", "weeks"|"months"|"days": N}``,
        ``{"kind": "specific-month", "year": Y, "month": M}`` (or ``value="YYYY-MM"``),
        ``{"kind": "specific-year", "year": Y | "all"}``,
        ``{"kind": "custom", "start": ..., "end": ...}``, ``{"kind": "all"}``.
        A bare int is a rolling window of that many days; the strings
        ``"weekly"``, ``"biweekly"`` and ``"monthly"`` are preset windows.
    now : datetime-like, optional
        Evaluation instant; defaults to the current time.
    tz : str | tzinfo, optional
        Timezone for calendar alignment; defaults to the engine timezone.

    Returns
    -------
    Period
        Always a valid, normalized period. Invalid specs give the last 12 months.
    """
    zone = get_tz(tz)
    anchor = localize(now, zone) if now is not None else pd.Timestamp.now(tz=zone)
    mapping = _coerce_spec(spec)
    period: Period | None = None
    if mapping is not None:
        kind = str(mapping.get("kind") or "").strip().lower()
        try:
            if kind in PRESETS:
                period = _rolling(PRESETS[kind], anchor)
            elif kind == "rolling":
                period = _rolling(mapping, anchor)
            elif kind == "specific-month":
                period = _specific_month(mapping, zone)
            elif kind == "specific-year":
                period = _specific_year(mapping, anchor, zone)
            elif kind == "custom":
                period = _custom(mapping, zone)
            elif kind in {"all", "unbounded"}:
                period = _all(anchor, zone)
        except (TypeError, ValueError, OverflowError) as exc:
            logger.warning("Period spec %r could not be resolved: %s", spec, exc)
            period = None
    if period is None:
        logger.warning("Invalid period spec %r; using the last %s months", spec, DEFAULT_PERIOD_MONTHS)
        return default_period(anchor, zone)
    return period


def previous_period(period: Period) -> Period:
    """The equal-length period that ends right before ``period`` starts."""
    length = period.end - period.start
    end = period.start - ONE_MICROSECOND
    return Period(end - length, end, period.kind)


def recent_months(count: int = 12, now=None, tz=None) -> list[str]:
    """``YYYY-MM`` values for the current month and the ``count - 1`` before it."""
    zone = get_tz(tz)
    anchor = localize(now, zone) if now is not None else pd.Timestamp.now(tz=zone)
    first = anchor.tz_localize(None).normalize().replace(day=1)
    return [(first - pd.DateOffset(months=i)).strftime("%Y-%m") for i in range(max(count, 0))]
