"""
Trigger date arithmetic.

All calendar math is done on plain dates in UTC. Local time is never
consulted, so DST changes and month/year boundaries cannot shift a result
by a day.
"""

from datetime import date, datetime, time, timedelta, timezone
from typing import Optional, Union


def utc_now() -> datetime:
    """Current instant as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def utc_today(now: Optional[datetime] = None) -> date:
    """Current calendar date in UTC."""
    now = now or utc_now()
    if now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.date()


def parse_date(value: Union[str, date, datetime]) -> date:
    """
    Coerce a YYYY-MM-DD string (or an ISO timestamp) to a calendar date.

    Raises:
        ValueError: If the value cannot be parsed
    """
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if len(text) > 10:
        return parse_date(datetime.fromisoformat(text.replace("Z", "+00:00")))
    return date.fromisoformat(text)


def scheduled_send_date(earnings_date: date, days_before: int) -> date:
    """Date a before-alert reminder goes out."""
    return earnings_date - timedelta(days=days_before)


def trigger_date(earnings_date: date, days_after: int) -> date:
    """Date an after-alert becomes due. days_after=0 is the earnings day itself."""
    return earnings_date + timedelta(days=days_after)


def is_due(trigger: date, today: date) -> bool:
    """True when the trigger date is on or before today (date-only)."""
    return _as_date(trigger) <= _as_date(today)


def start_of_day_utc(day: date) -> datetime:
    """Midnight UTC at the start of the given date."""
    return datetime.combine(day, time.min, tzinfo=timezone.utc)


def is_future(candidate: datetime, now: datetime) -> bool:
    """
    True when candidate is strictly later than now.

    Naive datetimes are read as UTC.
    """
    return _as_utc(candidate) > _as_utc(now)


def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return _as_utc(value).date()
    return value


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
