"""
Tests for the billing cycle calculator.
"""

import pytest
from datetime import date, timedelta

from invoice_engine.billing.cycle import (
    clamp_closing_day,
    due_date_for_closing,
    invoice_month_key,
    invoice_periods,
    last_closing,
    next_closing,
    shift_month,
)


class TestClosingDates:
    """Tests for last/next closing arithmetic."""

    def test_mid_month_closing(self):
        """Test a mid-month closing day."""
        last = last_closing(date(2024, 6, 10), 15)
        assert last == date(2024, 5, 15)
        assert next_closing(last, 15) == date(2024, 6, 15)

    def test_reference_on_closing_day(self):
        """Test that the closing day itself is the last closing."""
        assert last_closing(date(2024, 6, 15), 15) == date(2024, 6, 15)

    def test_clamped_closing_day(self):
        """Test that day 31 behaves as day 28, including in February."""
        last = last_closing(date(2024, 2, 28), 31)
        assert last == date(2024, 2, 28)
        assert next_closing(last, 31) == date(2024, 3, 28)

    def test_clamped_closing_day_before_closing(self):
        """Test that a date before the clamped closing goes to the previous month."""
        assert last_closing(date(2024, 2, 20), 31) == date(2024, 1, 28)

    def test_year_boundary(self):
        """Test closings across January."""
        assert last_closing(date(2024, 1, 5), 10) == date(2023, 12, 10)
        assert next_closing(date(2023, 12, 10), 10) == date(2024, 1, 10)

    @pytest.mark.parametrize("raw, expected", [
        (None, 1),
        (0, 1),
        (-5, 1),
        (31, 28),
        ("abc", 1),
        (15, 15),
        ("20", 20),
    ])
    def test_clamp_closing_day(self, raw, expected):
        """Test clamping of missing and out-of-range closing days."""
        assert clamp_closing_day(raw) == expected

    @pytest.mark.parametrize("closing_day", range(1, 29))
    def test_cycle_properties(self, closing_day):
        """Test last <= ref < next and that next is one month later."""
        start = date(2023, 11, 1)
        for offset in range(0, 120, 7):
            ref = start + timedelta(days=offset)
            last = last_closing(ref, closing_day)
            upcoming = next_closing(last, closing_day)

            assert last <= ref < upcoming
            assert last.day == closing_day
            assert upcoming.day == closing_day
            months_apart = (upcoming.year - last.year) * 12 + upcoming.month - last.month
            assert months_apart == 1


class TestInvoiceMonths:
    """Tests for reference month assignment."""

    def test_on_closing_day_stays_in_month(self):
        """Test that a purchase on the closing day closes that month."""
        assert invoice_month_key(date(2024, 6, 15), 15) == "2024-06"

    def test_after_closing_rolls_over(self):
        """Test that a purchase after closing goes to the next invoice."""
        assert invoice_month_key(date(2024, 6, 16), 15) == "2024-07"
        assert invoice_month_key(date(2024, 12, 20), 15) == "2025-01"

    def test_shift_month(self):
        """Test whole-month shifts of month keys."""
        assert shift_month("2024-12", 1) == "2025-01"
        assert shift_month("2024-01", -1) == "2023-12"
        assert shift_month("2024-06", 0) == "2024-06"


class TestDueDates:
    """Tests for due date calculation."""

    def test_due_after_closing_same_month(self):
        """Test a due day later in the closing month."""
        assert due_date_for_closing(date(2024, 6, 15), 15, 25) == date(2024, 6, 25)

    def test_due_before_closing_next_month(self):
        """Test that an earlier due day falls in the following month."""
        assert due_date_for_closing(date(2024, 6, 15), 15, 5) == date(2024, 7, 5)

    def test_default_due_day(self):
        """Test the default of ten days after closing, capped at 28."""
        assert due_date_for_closing(date(2024, 6, 15), 15) == date(2024, 6, 25)
        assert due_date_for_closing(date(2024, 6, 20), 20) == date(2024, 6, 28)
        assert due_date_for_closing(date(2024, 6, 28), 28) == date(2024, 7, 28)


class TestInvoicePeriods:
    """Tests for the closed/current/next cycle triple."""

    def test_periods_around_reference(self):
        """Test periods, reference months and due dates."""
        periods = invoice_periods(date(2024, 6, 10), 15, 25)

        assert periods.closed.reference_month == "2024-05"
        assert periods.closed.period_start == date(2024, 4, 15)
        assert periods.closed.period_end == date(2024, 5, 15)
        assert periods.closed.due_date == date(2024, 5, 25)

        assert periods.current.reference_month == "2024-06"
        assert periods.current.period_start == date(2024, 5, 15)
        assert periods.current.period_end == date(2024, 6, 15)
        assert periods.current.due_date == date(2024, 6, 25)

        assert periods.next.reference_month == "2024-07"
        assert periods.next.period_end == date(2024, 7, 15)

    def test_periods_are_contiguous(self):
        """Test that each cycle starts where the previous one ended."""
        periods = invoice_periods(date(2024, 1, 3), 28, None)
        assert periods.closed.period_end == periods.current.period_start
        assert periods.current.period_end == periods.next.period_start
