"""
Tests for the income projection calculator.
"""

import pytest
from datetime import date
from decimal import Decimal

from invoice_engine.config.settings import TaxSettings
from invoice_engine.income import IncomeProjectionCalculator
from invoice_engine.models import DeductionRule, SalaryProfile


@pytest.fixture
def calculator():
    return IncomeProjectionCalculator(TaxSettings())


@pytest.fixture
def advance_profile():
    return SalaryProfile(
        base_salary="5000",
        payment_day=5,
        advance_day=20,
        advance_percent="40",
    )


class TestPayrollTaxes:
    """Tests for INSS and IRRF."""

    @pytest.mark.parametrize("gross, expected", [
        ("1518.00", "113.85"),
        ("3000.00", "253.41"),
        ("5000.00", "509.60"),
        ("10000.00", "951.63"),
        ("0", "0.00"),
    ])
    def test_inss(self, calculator, gross, expected):
        """Test the progressive INSS contribution and its ceiling."""
        assert calculator.inss(Decimal(gross)) == Decimal(expected)

    def test_irrf_exempt_range(self, calculator):
        """Test that the simplified discount can zero the tax."""
        assert calculator.irrf(Decimal("3000"), Decimal("253.41")) == Decimal("0.00")

    def test_irrf_simplified_wins(self, calculator):
        """Test that the cheaper method is used."""
        assert calculator.irrf(Decimal("5000"), Decimal("509.60")) == Decimal("312.89")

    def test_irrf_dependents(self, calculator):
        """Test that dependents make the legal method cheaper."""
        assert calculator.irrf(Decimal("5000"), Decimal("509.60"), 2) == Decimal("249.53")


class TestBreakdown:
    """Tests for gross-to-net computation."""

    def test_net_with_custom_deductions(self, calculator):
        """Test fixed and percentage deductions."""
        profile = SalaryProfile(
            base_salary="5000",
            vale_deductions=[
                DeductionRule(name="Plano", value="50", kind="fixed"),
                DeductionRule(name="VR", value="2", kind="percent"),
            ],
        )
        breakdown = calculator.breakdown(profile)

        assert breakdown.inss == Decimal("509.60")
        assert breakdown.irrf == Decimal("312.89")
        assert breakdown.custom_deductions == Decimal("150.00")
        assert breakdown.net_salary == Decimal("4027.51")

    def test_advance_percentage(self, calculator, advance_profile):
        """Test that the advance is taken out of the net salary."""
        breakdown = calculator.breakdown(advance_profile)

        assert breakdown.advance == Decimal("2000.00")
        assert breakdown.net_salary == Decimal("2177.51")

    def test_fixed_advance_value(self, calculator):
        """Test that a fixed advance beats the percentage."""
        profile = SalaryProfile(base_salary="5000", advance_value="1500", advance_percent="40")
        assert calculator.advance_amount(profile) == Decimal("1500.00")

    def test_salary_exempt(self, calculator):
        """Test that an exempt salary pays no payroll taxes."""
        profile = SalaryProfile(base_salary="5000", salary_exempt_from_discounts=True)
        breakdown = calculator.breakdown(profile)

        assert breakdown.exempt
        assert breakdown.inss == Decimal("0")
        assert breakdown.net_salary == Decimal("5000.00")

    def test_vale_flag_governs_with_advance(self, calculator):
        """Test that the vale flag is consulted when an advance exists."""
        profile = SalaryProfile(
            base_salary="5000",
            advance_percent="40",
            salary_exempt_from_discounts=True,
        )
        assert not calculator.is_exempt(profile)

        exempt = profile.model_copy(update={"vale_exempt_from_discounts": True})
        assert calculator.is_exempt(exempt)


class TestProjectedIncome:
    """Tests for salary still to be received."""

    @pytest.mark.parametrize("reference_date, expected", [
        (date(2024, 6, 3), "4177.51"),
        (date(2024, 6, 5), "2000.00"),
        (date(2024, 6, 10), "2000.00"),
        (date(2024, 6, 20), "0.00"),
        (date(2024, 6, 25), "0.00"),
    ])
    def test_current_month(self, calculator, advance_profile, reference_date, expected):
        """Test that payments are pending until their pay day."""
        pending = calculator.projected_income(advance_profile, "2024-06", reference_date)
        assert pending == Decimal(expected)

    def test_future_month(self, calculator, advance_profile):
        """Test that a future month has every payment pending."""
        pending = calculator.projected_income(advance_profile, "2024-07", date(2024, 6, 25))
        assert pending == Decimal("4177.51")

    def test_past_month(self, calculator, advance_profile):
        """Test that a past month has nothing pending."""
        pending = calculator.projected_income(advance_profile, "2024-05", date(2024, 6, 3))
        assert pending == Decimal("0")

    def test_no_salary(self, calculator):
        """Test that a missing or zero salary projects nothing."""
        assert calculator.projected_income(None, "2024-06", date(2024, 6, 1)) == Decimal("0")
        assert calculator.projected_income(SalaryProfile(), "2024-06", date(2024, 6, 1)) == Decimal("0")
