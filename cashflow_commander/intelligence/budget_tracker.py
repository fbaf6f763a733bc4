"""Budget period boundaries and spend aggregation."""
import calendar
from datetime import datetime, timedelta
from typing import Dict, Any, Optional, Tuple

from cashflow_commander.config import WEEK_MS


def to_epoch_ms(dt: datetime) -> int:
    """Convert a (local, naive) datetime to epoch milliseconds."""
    return round(dt.timestamp() * 1000)


def month_bounds(year: int, month: int) -> Tuple[int, int]:
    """First of the month 00:00 to the last day 23:59:59, local time.

    Args:
        year: Four digit year
        month: Month number, 1-12

    Returns:
        (start_ms, end_ms)
    """
    last_day = calendar.monthrange(year, month)[1]
    start = datetime(year, month, 1)
    end = datetime(year, month, last_day, 23, 59, 59)
    return to_epoch_ms(start), to_epoch_ms(end)


def period_bounds(period: str, now: Optional[datetime] = None) -> Tuple[int, int]:
    """Compute the fixed [start, end] window of a budget created at ``now``.

    - weekly: most recent Sunday 00:00, lasting 7 days minus 1 ms
    - monthly: current calendar month
    - yearly: Jan 1 00:00 to Dec 31 23:59:59

    Anything other than weekly or yearly is treated as monthly.
    """
    now = now or datetime.now()

    if period == "weekly":
        days_since_sunday = (now.weekday() + 1) % 7
        start = datetime(now.year, now.month, now.day) - timedelta(days=days_since_sunday)
        start_ms = to_epoch_ms(start)
        return start_ms, start_ms + WEEK_MS - 1

    if period == "yearly":
        return (
            to_epoch_ms(datetime(now.year, 1, 1)),
            to_epoch_ms(datetime(now.year, 12, 31, 23, 59, 59)),
        )

    return month_bounds(now.year, now.month)


def summarize_budget(budget: Dict[str, Any], spent: float) -> Dict[str, Any]:
    """Attach spent, remaining and percentage to a budget record.

    Percentage is clamped to [0, 100] and is 0 for a zero budget.
    """
    amount = budget["amount"]
    percentage = (spent / amount) * 100 if amount > 0 else 0
    return {
        **budget,
        "spent": spent,
        "remaining": amount - spent,
        "percentage": max(0, min(percentage, 100)),
    }
