from datetime import date, datetime, timedelta, timezone
from typing import Iterable, Optional, Union


def utc_today() -> date:
    """Calendar date in UTC, the same clock last_checked_at is stamped with."""
    return datetime.now(timezone.utc).date()


def _as_date(value: Union[date, datetime]) -> date:
    if isinstance(value, datetime):
        return value.date()
    return value


def days_until_expiry(expiry_date: Union[date, datetime], today: Optional[date] = None) -> int:
    """Whole calendar days from today to expiry (negative once expired)."""
    today = _as_date(today) if today is not None else utc_today()
    return (_as_date(expiry_date) - today).days


def next_reminder_date(
    expiry_date: Union[date, datetime],
    schedule: Iterable[int],
    last_checked: Optional[Union[date, datetime]] = None,
    today: Optional[date] = None,
) -> Optional[date]:
    """
    Return the next date a reminder is due, or None when the schedule is exhausted.

    Offsets are scanned from the largest (earliest date) down. A candidate is
    skipped when it lies before today, or when `last_checked` is on or after it
    (that slot was already evaluated).
    """
    today = _as_date(today) if today is not None else utc_today()
    expiry = _as_date(expiry_date)
    checked = _as_date(last_checked) if last_checked is not None else None

    for days_before in sorted(schedule, reverse=True):
        candidate = expiry - timedelta(days=days_before)
        if candidate < today:
            continue
        if checked is not None and checked >= candidate:
            continue
        return candidate

    return None


def is_due_today(
    expiry_date: Union[date, datetime],
    schedule: Iterable[int],
    today: Optional[date] = None,
) -> bool:
    """True iff today's days-until-expiry is exactly one of the schedule offsets."""
    return days_until_expiry(expiry_date, today) in set(schedule)
