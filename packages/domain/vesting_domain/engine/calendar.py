"""Calendar-month arithmetic.

All vesting dates are anchored to the vesting start date and offset by whole
calendar months. Day-of-month is kept where the target month has it and
clamped to the month's last day otherwise (Jan 31 + 1 month = Feb 28/29).
"""

from datetime import date
from dateutil.relativedelta import relativedelta


def add_months(start: date, months: int) -> date:
    """Return ``start`` shifted by ``months`` calendar months.

    Offsets are always applied to the original start date, never chained,
    so a month-end clamp in February does not leak into later events.

    Example:
        >>> add_months(date(2024, 1, 31), 1)
        datetime.date(2024, 2, 29)
        >>> add_months(date(2024, 1, 31), 2)
        datetime.date(2024, 3, 31)
    """
    return start + relativedelta(months=months)


def months_between(start: date, end: date) -> int:
    """Whole calendar months from ``start`` to ``end``, rounded to the nearest month.

    Inverse of add_months for dates it produced: months_between(d, add_months(d, n)) == n,
    including month-end clamped dates. Negative when end is before start.
    Leftover days of 15 or more count as one more month.
    """
    delta = relativedelta(end, start)
    months = delta.years * 12 + delta.months
    if abs(delta.days) >= 15:
        months += 1 if delta.days > 0 else -1
    return months
