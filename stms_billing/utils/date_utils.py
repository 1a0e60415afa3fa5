"""Date manipulation utilities"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional


def calculate_payment_due_date(builty_date: date, credit_days: int) -> date:
    """Due date for a builty given the client's credit period"""
    return builty_date + timedelta(days=credit_days)


def days_between(start: date, end: date) -> int:
    """Whole days from start to end (negative if end is earlier)"""
    return (end - start).days


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Timestamps are stored as naive UTC; offset-aware input is converted"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
