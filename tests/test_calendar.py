"""
Tests for working-day arithmetic and day normalization.
"""

import pytest
from datetime import date, datetime, timedelta

from capacity_core.calendar import (
    DayRange,
    normalize_day,
    normalize_range,
    optional_day,
    overlap,
    round_half_up,
    week_window,
    working_days
)
from capacity_core.errors import InvalidDate, InvalidRange


class TestWorkingDays:
    """Tests for working_days."""

    def test_two_full_weeks(self):
        """Monday to Friday of the following week is ten working days."""
        assert working_days(date(2025, 3, 3), date(2025, 3, 14)) == 10

    def test_weekend_only(self):
        """A weekend contains no working days."""
        assert working_days(date(2025, 3, 8), date(2025, 3, 9)) == 0

    def test_single_weekday(self):
        assert working_days(date(2025, 3, 12), date(2025, 3, 12)) == 1

    def test_calendar_week(self):
        """Any seven consecutive days hold five working days."""
        start = date(2025, 3, 1)
        for offset in range(7):
            first = start + timedelta(days=offset)
            assert working_days(first, first + timedelta(days=6)) == 5

    def test_inverted_range_is_zero(self):
        assert working_days(date(2025, 3, 14), date(2025, 3, 3)) == 0

    def test_split_additivity(self):
        """Splitting a range at any day never changes the total."""
        a = date(2025, 2, 26)
        c = date(2025, 4, 9)
        total = working_days(a, c)

        b = a
        while b <= c:
            assert working_days(a, b) + working_days(b + timedelta(days=1), c) == total
            b += timedelta(days=1)


class TestOverlap:
    """Tests for range intersection."""

    def test_partial_overlap(self):
        result = overlap(date(2025, 3, 10), date(2025, 3, 20), date(2025, 3, 3), date(2025, 3, 14))
        assert result == DayRange(date(2025, 3, 10), date(2025, 3, 14))
        assert result.working_days == 5

    def test_disjoint_ranges(self):
        assert overlap(date(2025, 3, 1), date(2025, 3, 2), date(2025, 3, 3), date(2025, 3, 14)) is None

    def test_touching_ranges_share_one_day(self):
        """Ranges are closed, so a shared endpoint is an overlap."""
        result = overlap(date(2025, 3, 1), date(2025, 3, 3), date(2025, 3, 3), date(2025, 3, 14))
        assert result == DayRange(date(2025, 3, 3), date(2025, 3, 3))


class TestNormalization:
    """Tests for day normalization."""

    def test_iso_date_string(self):
        assert normalize_day("2025-03-10") == date(2025, 3, 10)

    def test_datetime_drops_time(self):
        """Intra-day times collapse to the calendar day."""
        assert normalize_day(datetime(2025, 3, 10, 23, 59)) == date(2025, 3, 10)

    def test_naive_timestamp_string(self):
        assert normalize_day("2025-03-10T08:30:00") == date(2025, 3, 10)

    def test_date_passes_through(self):
        assert normalize_day(date(2025, 3, 10)) == date(2025, 3, 10)

    def test_invalid_string(self):
        with pytest.raises(InvalidDate):
            normalize_day("2025-13-01")

    def test_unsupported_type(self):
        with pytest.raises(InvalidDate):
            normalize_day(20250310)

    def test_optional_day(self):
        assert optional_day(None) is None
        assert optional_day("") is None
        assert optional_day("2025-03-10") == date(2025, 3, 10)

    def test_inverted_range_rejected(self):
        with pytest.raises(InvalidRange):
            normalize_range("2025-03-12", "2025-03-10")

    def test_same_day_range_allowed(self):
        assert normalize_range("2025-03-12", "2025-03-12").working_days == 1


class TestWeekWindow:
    """Tests for Monday-anchored forecast weeks."""

    def test_first_week_contains_anchor(self):
        window = week_window(date(2025, 3, 12), 1)
        assert window.start == date(2025, 3, 10)
        assert window.end == date(2025, 3, 16)

    def test_later_week(self):
        window = week_window(date(2025, 3, 12), 3)
        assert window.start == date(2025, 3, 24)
        assert window.end == date(2025, 3, 30)

    def test_anchor_on_sunday(self):
        """Sunday belongs to the week that started the Monday before."""
        window = week_window(date(2025, 3, 16), 1)
        assert window.start == date(2025, 3, 10)


class TestRounding:
    """Tests for half-up rounding."""

    def test_half_rounds_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(52.5) == 53

    def test_integer_result(self):
        assert isinstance(round_half_up(80.0), int)

    def test_one_decimal(self):
        assert round_half_up(0.25, 1) == 0.3
        assert round_half_up(24.0, 1) == 24.0
