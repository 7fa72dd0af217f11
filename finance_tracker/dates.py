"""Calendar month arithmetic shared by the group engine, validation and reports."""

from datetime import date

from dateutil.relativedelta import relativedelta


def add_months(d: date, months: int) -> date:
    """Shift by whole months, clamping the day to the end of shorter months.

    Jan 31 + 1 month is Feb 28 (or 29), never Mar 3.
    """
    return d + relativedelta(months=months)


def months_between(start: date, end: date) -> int:
    """Largest k such that add_months(start, k) <= end.

    Negative when end falls before start. Month-end clamping is taken
    into account, so Jan 31 -> Feb 29 counts as one month.
    """
    months = (end.year - start.year) * 12 + (end.month - start.month)
    if add_months(start, months) > end:
        months -= 1
    return months


def month_bounds(year: int, month: int) -> tuple[date, date]:
    """First and last day of a month."""
    first = date(year, month, 1)
    last = add_months(first, 1) - relativedelta(days=1)
    return first, last
