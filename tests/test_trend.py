from datetime import datetime
from decimal import Decimal

from sharedbudget.domain.helpers.dates import shift_months
from sharedbudget.domain.helpers.trend import (
    DAY,
    MONTH,
    build_buckets,
    build_change,
    compute_ranges,
    sum_into_buckets,
    to_series,
)
from sharedbudget.domain.models import TrendPeriod


def test_change_direction():
    assert build_change(12.5, 12.5)["direction"] == "even"
    assert build_change(0, 0) == {"abs": 0, "pct": 0.0, "direction": "even"}
    assert build_change(20, 10)["direction"] == "up"
    assert build_change(5, 10)["direction"] == "down"


def test_change_percent():
    assert build_change(5, 10) == {"abs": -5, "pct": -50.0, "direction": "down"}
    assert build_change(15, 10)["pct"] == 50.0


def test_change_from_zero_previous():
    assert build_change(8, 0)["pct"] == 100.0
    assert build_change(0, 0)["pct"] == 0.0


def test_week_ranges_start_on_monday():
    ranges = compute_ranges(TrendPeriod.WEEK, datetime(2024, 5, 15, 10))
    assert ranges.start == datetime(2024, 5, 13)
    assert ranges.end.date() == datetime(2024, 5, 19).date()
    assert ranges.prev_start == datetime(2024, 5, 6)
    assert ranges.prev_end.date() == datetime(2024, 5, 12).date()
    assert ranges.step == DAY


def test_month_ranges_use_previous_calendar_month():
    ranges = compute_ranges(TrendPeriod.MONTH, datetime(2024, 3, 10))
    assert ranges.start == datetime(2024, 3, 1)
    assert ranges.prev_start == datetime(2024, 2, 1)
    assert ranges.prev_end.date() == datetime(2024, 2, 29).date()


def test_month_ranges_in_january():
    ranges = compute_ranges(TrendPeriod.MONTH, datetime(2024, 1, 20))
    assert ranges.prev_start == datetime(2023, 12, 1)


def test_year_has_month_buckets():
    ranges = compute_ranges(TrendPeriod.YEAR, datetime(2024, 7, 4))
    assert ranges.step == MONTH
    assert ranges.prev_start == datetime(2023, 1, 1)
    buckets = build_buckets(ranges.start, ranges.end, ranges.step)
    assert len(buckets) == 12
    assert buckets[0] == "2024-01"


def test_day_buckets_cover_the_month():
    buckets = build_buckets(datetime(2024, 2, 1), datetime(2024, 2, 29, 23, 59), DAY)
    assert len(buckets) == 29
    assert buckets[-1] == "2024-02-29"


def test_series_fills_missing_buckets_with_zero():
    by_key = sum_into_buckets(
        [
            (datetime(2024, 2, 3, 9), Decimal("10.10")),
            (datetime(2024, 2, 3, 18), Decimal("4.90")),
        ],
        DAY,
    )
    series = to_series(["2024-02-02", "2024-02-03"], by_key)
    assert series == [{"x": "2024-02-02", "y": 0.0}, {"x": "2024-02-03", "y": 15.0}]


def test_month_points_are_dated_on_the_first():
    series = to_series(["2024-01"], {"2024-01": Decimal("3")})
    assert series == [{"x": "2024-01-01", "y": 3.0}]


def test_shift_months_crosses_years():
    assert shift_months(datetime(2024, 1, 31, 15), -1) == datetime(2023, 12, 1)
    assert shift_months(datetime(2024, 11, 30), 3) == datetime(2025, 2, 1)
    assert shift_months(datetime(2024, 5, 5), 0) == datetime(2024, 5, 1)
