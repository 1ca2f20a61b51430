from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Tuple

from sharedbudget.domain.helpers.dates import (
    end_of_month,
    end_of_week,
    end_of_year,
    shift_months,
    start_of_day,
    start_of_month,
    start_of_week,
    start_of_year,
)
from sharedbudget.domain.helpers.money import to_money
from sharedbudget.domain.models import TrendPeriod

DAY = "day"
MONTH = "month"


@dataclass
class TrendRanges:
    start: datetime
    end: datetime
    prev_start: datetime
    prev_end: datetime
    step: str


def compute_ranges(period: TrendPeriod, now: datetime) -> TrendRanges:
    """
    Current window containing `now` and the window of the same length before it.
    """
    period = TrendPeriod(period)
    if period == TrendPeriod.WEEK:
        start, end = start_of_week(now), end_of_week(now)
        return TrendRanges(
            start, end, start - timedelta(days=7), end - timedelta(days=7), DAY
        )
    if period == TrendPeriod.MONTH:
        prev = shift_months(now, -1)
        return TrendRanges(
            start_of_month(now),
            end_of_month(now),
            start_of_month(prev),
            end_of_month(prev),
            DAY,
        )
    prev = datetime(now.year - 1, 1, 1)
    return TrendRanges(
        start_of_year(now),
        end_of_year(now),
        start_of_year(prev),
        end_of_year(prev),
        MONTH,
    )


def bucket_key(d: datetime, step: str) -> str:
    if step == MONTH:
        return d.strftime("%Y-%m")
    return d.strftime("%Y-%m-%d")


def build_buckets(start: datetime, end: datetime, step: str) -> List[str]:
    keys = []
    if step == MONTH:
        cursor = start_of_month(start)
        limit = start_of_month(end)
        while cursor <= limit:
            keys.append(bucket_key(cursor, MONTH))
            cursor = shift_months(cursor, 1)
    else:
        cursor = start_of_day(start)
        limit = start_of_day(end)
        while cursor <= limit:
            keys.append(bucket_key(cursor, DAY))
            cursor += timedelta(days=1)
    return keys


def sum_into_buckets(
    items: Iterable[Tuple[datetime, Decimal]], step: str
) -> Dict[str, Decimal]:
    out: Dict[str, Decimal] = defaultdict(Decimal)
    for paid_at, amount in items:
        out[bucket_key(paid_at, step)] += Decimal(str(amount or 0))
    return dict(out)


def to_series(buckets: List[str], by_key: Dict[str, Decimal]) -> List[dict]:
    points = []
    for key in buckets:
        x = f"{key}-01" if len(key) == 7 else key
        points.append({"x": x, "y": float(to_money(by_key.get(key, 0)))})
    return points


def sum_map(by_key: Dict[str, Decimal]) -> float:
    return float(to_money(sum(by_key.values(), Decimal(0))))


def build_change(current_total: float, previous_total: float) -> dict:
    diff = round(current_total - previous_total, 2)
    if previous_total > 0:
        pct = diff / previous_total * 100
    else:
        pct = 100.0 if current_total > 0 else 0.0
    if current_total == previous_total:
        direction = "even"
    elif current_total > previous_total:
        direction = "up"
    else:
        direction = "down"
    return {"abs": diff, "pct": round(pct, 2), "direction": direction}
