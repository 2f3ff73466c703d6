# date_utils.py
# Date helpers shared by the review scheduler and the dashboard.

import calendar
from datetime import date, datetime, time, timezone
from typing import Optional, Union


def utcnow() -> datetime:
    """Current UTC time as a naive datetime, the form stored in every timestamp column."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def today() -> date:
    return utcnow().date()


def add_months(value: date, months: int) -> date:
    """
    Shift a date by whole calendar months.
    The day is clamped to the last day of the target month (Aug 31 + 6 -> Feb 28/29).
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_date(value: Union[str, date, datetime, None]) -> Optional[date]:
    """Accept YYYY-MM-DD, a full ISO timestamp, or a date/datetime; None for blanks."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value).date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        return None


def parse_datetime(value: Union[str, date, datetime, None]) -> Optional[datetime]:
    """Parse an ISO-8601 date or timestamp into naive UTC; None when unparseable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return to_naive_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    text = str(value).strip().replace("Z", "+00:00")
    try:
        return to_naive_utc(datetime.fromisoformat(text))
    except ValueError:
        parsed = parse_date(text)
        return datetime.combine(parsed, time.min) if parsed else None


def start_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.min)


def end_of_day(value: datetime) -> datetime:
    return datetime.combine(value.date(), time.max)


def month_periods(start: date, end: date) -> list:
    """Every calendar month from start to end inclusive, formatted YYYY-MM."""
    periods = []
    cursor = date(start.year, start.month, 1)
    last = date(end.year, end.month, 1)
    while cursor <= last:
        periods.append(cursor.strftime("%Y-%m"))
        cursor = add_months(cursor, 1)
    return periods
