"""Calendar arithmetic for monthly payment schedules."""

import calendar
from datetime import date


def add_months(start: date, months: int, day: int | None = None) -> date:
    """Move ``start`` by whole calendar months, clamping to the month's last day.

    Parameters
    ----------
    start : date
        Anchor date.
    months : int
        Calendar months to add (may be negative).
    day : int | None
        Day-of-month to aim for instead of ``start.day``.

    Returns
    -------
    date
        Resulting date, e.g. Jan 31 + 1 month -> Feb 28/29.
    """
    index = start.month - 1 + months
    year = start.year + index // 12
    month = index % 12 + 1
    anchor = start.day if day is None else day
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(anchor, last_day))


def monthly_due_date(start: date, target_month: int) -> date:
    """Due date of the ``target_month``-th monthly slot of a schedule starting at ``start``."""
    return add_months(start, target_month)


def months_between(old: date, new: date) -> int:
    """Whole calendar months from ``old`` to ``new``, truncated toward zero."""
    months = (new.year - old.year) * 12 + (new.month - old.month)
    if months > 0 and new.day < old.day:
        months -= 1
    elif months < 0 and new.day > old.day:
        months += 1
    return months


def schedule_end(start: date, period: int) -> date:
    """Date one full term after ``start``."""
    return add_months(start, period)


def virtual_due_date(reference: date, payment_day: int) -> date:
    """Due date a contract paying on ``payment_day`` would have in ``reference``'s month."""
    last_day = calendar.monthrange(reference.year, reference.month)[1]
    return date(reference.year, reference.month, min(payment_day, last_day))
