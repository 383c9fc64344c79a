"""
Date helpers for the occupancy workflows.

Assignment and enrollment dates are calendar dates (no time component);
audit and row timestamps are stored in UTC.
"""

from datetime import date, datetime, timezone


def utc_now() -> datetime:
    """
    Get current UTC datetime.
    """
    return datetime.now(timezone.utc)


def today() -> date:
    """
    Current calendar date used for start_date / end_date / entry_date.
    """
    return date.today()
