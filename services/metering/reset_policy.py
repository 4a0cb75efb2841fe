# services/metering/reset_policy.py
"""
Day-boundary reset, evaluated lazily whenever a caller record is read.

There is no sweeper: the reset happens inside the same locked
read-modify-write as the consumption check. Dates are compared as calendar
dates in one canonical timezone, never as elapsed durations.
"""
from datetime import date, datetime, tzinfo
from typing import Optional

from utils.time_utils import day_window, local_date


def should_reset(last_reset_date: Optional[date], now: datetime, tz: tzinfo) -> bool:
    if last_reset_date is None:
        return True
    return local_date(now, tz) > last_reset_date


def apply_reset(record, today: date) -> bool:
    """
    Zero the daily counters if `today` is past record.last_reset_date.
    last_reset_date never moves backwards, so a skewed clock is a no-op.
    """
    last = record.last_reset_date
    if last is not None and today <= last:
        return False
    record.daily_consumed = 0
    record.bonus_used_today = 0
    record.last_reset_date = today
    return True


def next_reset_at(now: datetime, tz: tzinfo) -> datetime:
    """Start of the next calendar day in tz (the `resetTime` shown on a 429)."""
    _, end = day_window(now, tz)
    return end
