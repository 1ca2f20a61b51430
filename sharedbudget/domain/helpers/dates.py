import calendar
from datetime import datetime, time, timedelta, timezone

from dateutil.relativedelta import relativedelta


def utcnow() -> datetime:
    """Current time as a naive UTC datetime, the form we store."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def start_of_day(d: datetime) -> datetime:
    return datetime.combine(d.date(), time.min)


def end_of_day(d: datetime) -> datetime:
    return datetime.combine(d.date(), time.max)


def start_of_week(d: datetime) -> datetime:
    """Monday 00:00 of the ISO week containing d."""
    return start_of_day(d) - timedelta(days=d.weekday())


def end_of_week(d: datetime) -> datetime:
    return end_of_day(start_of_week(d) + timedelta(days=6))


def start_of_month(d: datetime) -> datetime:
    return datetime(d.year, d.month, 1)


def end_of_month(d: datetime) -> datetime:
    last_day = calendar.monthrange(d.year, d.month)[1]
    return end_of_day(datetime(d.year, d.month, last_day))


def start_of_year(d: datetime) -> datetime:
    return datetime(d.year, 1, 1)


def end_of_year(d: datetime) -> datetime:
    return end_of_day(datetime(d.year, 12, 31))


def shift_months(d: datetime, months: int) -> datetime:
    """Move d by whole months, keeping it on the first of the month."""
    return start_of_month(d) + relativedelta(months=months)
