"""
Pure due-date arithmetic for recurring obligations.

Contract:
    ``next_due_date(reference, frequency)`` returns the next occurrence
    strictly after ``reference``.  Calendar-correct: months and years are
    added on the calendar, clamping to the last day of a shorter month
    (Jan 31 + 1 month -> Feb 28/29, Feb 29 + 1 year -> Feb 28).

Architecture: recurring_kernel/domain.  ZERO I/O.  Time of day and tzinfo
    of the reference are preserved.
"""

from __future__ import annotations

import calendar
from datetime import datetime, timedelta
from typing import Iterator

from recurring_kernel.domain.types import Frequency
from recurring_kernel.exceptions import InvalidFrequencyError

_FIXED_STEPS = {
    Frequency.DAILY: timedelta(days=1),
    Frequency.WEEKLY: timedelta(weeks=1),
}

_MONTH_STEPS = {
    Frequency.MONTHLY: 1,
    Frequency.YEARLY: 12,
}


def coerce_frequency(frequency: Frequency | str) -> Frequency:
    """Return the Frequency for an enum member or its string value.

    Raises:
        InvalidFrequencyError: If the value is not a known frequency.
    """
    if isinstance(frequency, Frequency):
        return frequency
    try:
        return Frequency(frequency)
    except ValueError:
        raise InvalidFrequencyError(frequency) from None


def add_months(moment: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return moment.replace(year=year, month=month, day=min(moment.day, last_day))


def _step(reference: datetime, frequency: Frequency, count: int) -> datetime:
    if frequency in _FIXED_STEPS:
        return reference + _FIXED_STEPS[frequency] * count
    return add_months(reference, _MONTH_STEPS[frequency] * count)


def next_due_date(reference: datetime, frequency: Frequency | str) -> datetime:
    """Next occurrence strictly after ``reference``.

    Raises:
        InvalidFrequencyError: If ``frequency`` is unrecognized.
    """
    return _step(reference, coerce_frequency(frequency), 1)


def next_occurrence(
    anchor: datetime,
    after: datetime,
    frequency: Frequency | str,
) -> datetime:
    """First occurrence of the series anchored on ``anchor`` strictly after ``after``.

    Occurrences are ``anchor`` plus whole periods, so a series anchored on
    the 31st returns to the 31st after passing through a short month.

    Raises:
        InvalidFrequencyError: If ``frequency`` is unrecognized.
    """
    freq = coerce_frequency(frequency)
    if after < anchor:
        return anchor

    if freq in _FIXED_STEPS:
        count = (after - anchor) // _FIXED_STEPS[freq]
    else:
        months = (after.year - anchor.year) * 12 + after.month - anchor.month
        count = max(months // _MONTH_STEPS[freq], 0)

    candidate = _step(anchor, freq, count)
    while candidate <= after:
        count += 1
        candidate = _step(anchor, freq, count)
    return candidate


def occurrences_between(
    start: datetime,
    until: datetime,
    frequency: Frequency | str,
    anchor: datetime | None = None,
) -> Iterator[datetime]:
    """Yield occurrences from ``start`` (inclusive) to ``until`` (inclusive).

    Each step is ``next_occurrence(anchor, previous)``, the same rule the
    processor uses to advance an obligation.  ``anchor`` defaults to
    ``start``.
    """
    freq = coerce_frequency(frequency)
    anchor = start if anchor is None else anchor
    current = start
    while current <= until:
        yield current
        current = next_occurrence(anchor, current, freq)
