"""Date manipulation utilities"""

from datetime import date, datetime


def to_date(value: date | datetime) -> date:
    """Truncate a timestamp to its calendar day"""
    if isinstance(value, datetime):
        return value.date()
    return value


def days_between(start: date | datetime, end: date | datetime) -> int:
    """
    Whole calendar days from start to end.

    Both sides are truncated to the start of their day first, so partial days
    never count: disbursed 23:59 and valued 00:01 the next day is 1 day.
    Negative when end precedes start.
    """
    return (to_date(end) - to_date(start)).days
