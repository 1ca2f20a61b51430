from datetime import datetime, timedelta
from typing import Any

from dateutil.relativedelta import relativedelta

from sharedbudget.domain.models import Recurrence


def normalize_interval(value: Any) -> int:
    """
    Coerce an interval to a positive integer. Anything unusable becomes 1.
    """
    if isinstance(value, bool):
        return 1
    try:
        interval = int(value)
    except (TypeError, ValueError):
        return 1
    if isinstance(value, float) and value != interval:
        return 1
    return interval if interval >= 1 else 1


def advance(moment: datetime, recurrence: Recurrence, interval: Any = 1) -> datetime:
    """
    Return the occurrence that follows `moment`.

    Months and years are added with relativedelta, so a day that does not
    exist in the target month is clamped to the last day of that month
    (Jan 31 + 1 month -> Feb 28/29).
    """
    n = normalize_interval(interval)
    recurrence = Recurrence(recurrence)
    if recurrence == Recurrence.DAILY:
        return moment + timedelta(days=n)
    if recurrence == Recurrence.WEEKLY:
        return moment + timedelta(days=7 * n)
    if recurrence == Recurrence.MONTHLY:
        return moment + relativedelta(months=n)
    return moment + relativedelta(years=n)


def first_run_at(
    start_at: datetime, recurrence: Recurrence, interval: Any, now: datetime
) -> datetime:
    """
    First time a new rule is due. A start in the future is used as is;
    otherwise we step forward from the start until we are past `now`.
    """
    next_run = start_at
    if next_run > now:
        return next_run
    while next_run <= now:
        next_run = advance(next_run, recurrence, interval)
    return next_run
