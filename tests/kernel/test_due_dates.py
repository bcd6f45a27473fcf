"""
Tests for recurring_kernel.domain.due_dates.

Validates next_due_date() for all four frequencies, calendar clamping at
month and year ends, preservation of time-of-day and tzinfo, rejection of
unknown frequencies, and the anchored series walked by next_occurrence()
and occurrences_between().
"""

import calendar
from datetime import datetime, timedelta, timezone

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from recurring_kernel.domain.due_dates import (
    add_months,
    coerce_frequency,
    next_due_date,
    next_occurrence,
    occurrences_between,
)
from recurring_kernel.domain.types import Frequency
from recurring_kernel.exceptions import InvalidFrequencyError


# =============================================================================
# next_due_date() -- one step per frequency
# =============================================================================


class TestNextDueDate:
    def test_daily_adds_one_day(self):
        assert next_due_date(datetime(2024, 3, 10), Frequency.DAILY) == datetime(2024, 3, 11)

    def test_weekly_adds_seven_days(self):
        assert next_due_date(datetime(2024, 3, 10), Frequency.WEEKLY) == datetime(2024, 3, 17)

    def test_monthly_adds_one_calendar_month(self):
        assert next_due_date(datetime(2024, 3, 10), Frequency.MONTHLY) == datetime(2024, 4, 10)

    def test_yearly_adds_one_calendar_year(self):
        assert next_due_date(datetime(2024, 3, 10), Frequency.YEARLY) == datetime(2025, 3, 10)

    def test_accepts_string_frequency(self):
        assert next_due_date(datetime(2024, 3, 10), "weekly") == datetime(2024, 3, 17)

    def test_daily_crosses_year_boundary(self):
        assert next_due_date(datetime(2024, 12, 31), "daily") == datetime(2025, 1, 1)

    def test_monthly_crosses_year_boundary(self):
        assert next_due_date(datetime(2024, 12, 15), "monthly") == datetime(2025, 1, 15)


# =============================================================================
# Month-end clamping
# =============================================================================


class TestMonthEndClamping:
    def test_jan_31_plus_month_is_feb_29_in_leap_year(self):
        assert next_due_date(datetime(2024, 1, 31), "monthly") == datetime(2024, 2, 29)

    def test_jan_31_plus_month_is_feb_28_in_common_year(self):
        assert next_due_date(datetime(2023, 1, 31), "monthly") == datetime(2023, 2, 28)

    def test_mar_31_plus_month_is_apr_30(self):
        assert next_due_date(datetime(2024, 3, 31), "monthly") == datetime(2024, 4, 30)

    def test_feb_29_plus_year_is_feb_28(self):
        assert next_due_date(datetime(2024, 2, 29), "yearly") == datetime(2025, 2, 28)

    def test_add_months_negative(self):
        assert add_months(datetime(2024, 3, 31), -1) == datetime(2024, 2, 29)

    def test_add_months_many(self):
        assert add_months(datetime(2024, 1, 15), 25) == datetime(2026, 2, 15)


# =============================================================================
# Time of day and tzinfo
# =============================================================================


class TestPreservation:
    def test_time_of_day_preserved(self):
        ref = datetime(2024, 5, 31, 23, 45, 10)
        assert next_due_date(ref, "monthly") == datetime(2024, 6, 30, 23, 45, 10)

    def test_tzinfo_preserved(self):
        ref = datetime(2024, 5, 1, 9, 0, tzinfo=timezone.utc)
        result = next_due_date(ref, "yearly")
        assert result.tzinfo is timezone.utc
        assert result == datetime(2025, 5, 1, 9, 0, tzinfo=timezone.utc)


# =============================================================================
# Unknown frequency
# =============================================================================


class TestInvalidFrequency:
    @pytest.mark.parametrize("bad", ["hourly", "", "Monthly", None])
    def test_unknown_frequency_raises(self, bad):
        with pytest.raises(InvalidFrequencyError) as exc_info:
            next_due_date(datetime(2024, 1, 1), bad)
        assert exc_info.value.code == "INVALID_FREQUENCY"

    def test_coerce_passes_enum_through(self):
        assert coerce_frequency(Frequency.DAILY) is Frequency.DAILY


# =============================================================================
# occurrences_between()
# =============================================================================


class TestOccurrencesBetween:
    def test_inclusive_bounds(self):
        dates = list(occurrences_between(
            datetime(2024, 1, 1), datetime(2024, 1, 4), "daily",
        ))
        assert dates == [
            datetime(2024, 1, 1),
            datetime(2024, 1, 2),
            datetime(2024, 1, 3),
            datetime(2024, 1, 4),
        ]

    def test_month_end_series_does_not_drift(self):
        dates = list(occurrences_between(
            datetime(2023, 1, 31), datetime(2023, 4, 30), "monthly",
        ))
        assert dates == [
            datetime(2023, 1, 31),
            datetime(2023, 2, 28),
            datetime(2023, 3, 31),
            datetime(2023, 4, 30),
        ]

    def test_empty_when_until_before_start(self):
        assert list(occurrences_between(
            datetime(2024, 2, 1), datetime(2024, 1, 1), "weekly",
        )) == []

    def test_resumes_mid_series_on_the_anchor_day(self):
        dates = list(occurrences_between(
            datetime(2026, 2, 28), datetime(2026, 4, 30), "monthly",
            anchor=datetime(2026, 1, 31),
        ))
        assert dates == [
            datetime(2026, 2, 28),
            datetime(2026, 3, 31),
            datetime(2026, 4, 30),
        ]


class TestNextOccurrence:
    def test_month_end_anchor_returns_to_the_31st(self):
        anchor = datetime(2026, 1, 31, 12, tzinfo=timezone.utc)
        feb = next_occurrence(anchor, anchor, "monthly")
        assert feb == datetime(2026, 2, 28, 12, tzinfo=timezone.utc)
        assert next_occurrence(anchor, feb, "monthly") == datetime(
            2026, 3, 31, 12, tzinfo=timezone.utc,
        )

    def test_stepping_from_previous_date_would_drift(self):
        # the unanchored step lands on the 28th
        feb = datetime(2026, 2, 28)
        assert next_due_date(feb, "monthly") == datetime(2026, 3, 28)
        assert next_occurrence(datetime(2026, 1, 31), feb, "monthly") == datetime(2026, 3, 31)

    def test_leap_day_yearly_anchor(self):
        anchor = datetime(2024, 2, 29)
        assert next_occurrence(anchor, anchor, "yearly") == datetime(2025, 2, 28)
        assert next_occurrence(anchor, datetime(2027, 2, 28), "yearly") == datetime(2028, 2, 29)

    def test_after_before_anchor_returns_anchor(self):
        anchor = datetime(2026, 3, 1)
        assert next_occurrence(anchor, datetime(2026, 1, 1), "weekly") == anchor

    def test_result_is_strictly_after(self):
        anchor = datetime(2026, 1, 1)
        assert next_occurrence(anchor, datetime(2026, 1, 15), "weekly") == datetime(2026, 1, 22)
        assert next_occurrence(anchor, datetime(2026, 1, 16), "weekly") == datetime(2026, 1, 22)
        assert next_occurrence(anchor, datetime(2026, 1, 3, 6), "daily") == datetime(2026, 1, 4)

    def test_unknown_frequency_rejected(self):
        with pytest.raises(InvalidFrequencyError):
            next_occurrence(datetime(2026, 1, 1), datetime(2026, 1, 1), "hourly")


# =============================================================================
# Properties
# =============================================================================


_datetimes = st.datetimes(
    min_value=datetime(1900, 1, 1), max_value=datetime(2200, 12, 31),
)


class TestDueDateProperties:
    @given(ref=_datetimes, freq=st.sampled_from(list(Frequency)))
    @settings(max_examples=200)
    def test_strictly_after_reference(self, ref, freq):
        assert next_due_date(ref, freq) > ref

    @given(ref=_datetimes, freq=st.sampled_from(list(Frequency)))
    @settings(max_examples=200)
    def test_time_of_day_unchanged(self, ref, freq):
        assert next_due_date(ref, freq).time() == ref.time()

    @given(ref=_datetimes)
    @settings(max_examples=200)
    def test_monthly_step_bounds(self, ref):
        # A calendar month is between 28 and 31 days.
        delta = next_due_date(ref, Frequency.MONTHLY) - ref
        assert timedelta(days=28) <= delta <= timedelta(days=31)

    @given(ref=_datetimes)
    @settings(max_examples=200)
    def test_monthly_keeps_day_or_clamps_to_month_end(self, ref):
        result = next_due_date(ref, Frequency.MONTHLY)
        if result.day != ref.day:
            assert result.day < ref.day
            assert (result + timedelta(days=1)).day == 1

    @given(anchor=_datetimes, periods=st.integers(min_value=0, max_value=60))
    @settings(max_examples=200)
    def test_anchored_monthly_series_keeps_anchor_day(self, anchor, periods):
        after = add_months(anchor, periods)
        result = next_occurrence(anchor, after, Frequency.MONTHLY)
        assert result > after
        last_day = calendar.monthrange(result.year, result.month)[1]
        assert result.day == min(anchor.day, last_day)
