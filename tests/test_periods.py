from datetime import date, datetime

import pandas as pd
import pytz

from flow_app.analytics.periods import ONE_MICROSECOND, Period, previous_period, recent_months, resolve

TZ = pytz.timezone("America/Sao_Paulo")
NOW = pd.Timestamp(TZ.localize(datetime(2024, 6, 15, 12, 0)))


def test_specific_month_bounds():
    period = resolve({"kind": "specific-month", "year": 2024, "month": 3}, now=NOW)
    assert period.start == TZ.localize(datetime(2024, 3, 1))
    assert period.end.strftime("%Y-%m-%dT%H:%M:%S") == "2024-03-31T23:59:59"
    assert period.end + ONE_MICROSECOND == TZ.localize(datetime(2024, 4, 1))
    assert period.days == 31


def test_specific_month_from_value_string():
    assert resolve({"kind": "specific-month", "value": "2024-03"}, now=NOW) == resolve("2024-03", now=NOW)


def test_rolling_window_ends_now():
    period = resolve({"kind": "rolling", "weeks": 12}, now=NOW)
    assert period.end == NOW
    assert period.start == NOW - pd.Timedelta(weeks=12)


def test_presets():
    period = resolve("monthly", now=NOW)
    assert period.start == NOW - pd.DateOffset(months=12)
    assert resolve(30, now=NOW).start == NOW - pd.Timedelta(days=30)


def test_invalid_specs_fall_back_to_last_twelve_months():
    expected_start = NOW - pd.DateOffset(months=12)
    for spec in (
        {"kind": "bogus"},
        {"kind": "specific-month", "year": 2024, "month": 13},
        {"kind": "rolling", "weeks": -3},
        {"kind": "custom", "start": "not a date", "end": "2024-01-01"},
        None,
        "whenever",
    ):
        period = resolve(spec, now=NOW)
        assert period.end == NOW
        assert period.start == expected_start


def test_custom_reversed_bounds_are_swapped():
    period = resolve({"kind": "custom", "start": "2024-05-10", "end": "2024-05-01"}, now=NOW)
    assert period.start <= period.end


def test_custom_date_only_end_is_inclusive():
    period = resolve({"kind": "custom", "start": date(2024, 5, 1), "end": "2024-05-10"}, now=NOW)
    assert period.start == TZ.localize(datetime(2024, 5, 1))
    assert period.end == TZ.localize(datetime(2024, 5, 11)) - ONE_MICROSECOND


def test_specific_year_and_all_years():
    year = resolve({"kind": "specific-year", "year": 2023}, now=NOW)
    assert year.start == TZ.localize(datetime(2023, 1, 1))
    assert year.end + ONE_MICROSECOND == TZ.localize(datetime(2024, 1, 1))
    everything = resolve({"kind": "specific-year", "year": "all"}, now=NOW)
    assert everything.start == TZ.localize(datetime(2023, 1, 1))
    assert everything.end + ONE_MICROSECOND == TZ.localize(datetime(2025, 1, 1))


def test_previous_period_has_same_length_and_touches():
    period = resolve({"kind": "specific-month", "year": 2024, "month": 3}, now=NOW)
    prev = previous_period(period)
    assert prev.end == period.start - ONE_MICROSECOND
    assert prev.end - prev.start == period.end - period.start


def test_contains_is_inclusive():
    period = Period(pd.Timestamp("2024-01-01", tz=TZ), pd.Timestamp("2024-01-31", tz=TZ))
    assert period.contains(period.start)
    assert period.contains(period.end)
    assert not period.contains(period.end + ONE_MICROSECOND)
    assert not period.contains(None)


def test_recent_months():
    assert recent_months(3, now=NOW) == ["2024-06", "2024-05", "2024-04"]
