"""
Income Projection Calculator

Gross-to-net salary under the Brazilian payroll taxes, and the part of it
still to be received in a month.

INSS (social security) is progressive over four brackets and capped.
IRRF (income tax) is computed twice and the cheaper result wins:
    (i)  gross - INSS - dependents * dependent deduction
    (ii) gross - simplified discount
Each bracket evaluates `base * rate - deduction`.

DESIGN DECISION: Tax tables come from TaxSettings, never from constants in
this module, so a new year's table is a configuration change.
"""

import datetime as dt
from decimal import Decimal
from typing import Optional

from invoice_engine.config.settings import TaxBracket, TaxSettings, get_settings
from invoice_engine.models.dashboard import IncomeBreakdown
from invoice_engine.models.finance import DeductionKind, SalaryProfile
from invoice_engine.models.money import ZERO, month_key, round_cents, sum_money

HUNDRED = Decimal("100")


def _bracket_tax(base: Decimal, brackets: list[TaxBracket]) -> Decimal:
    """Tax of `base` under the first bracket that contains it."""
    if base <= ZERO:
        return ZERO
    for bracket in brackets:
        if bracket.up_to is None or base <= bracket.up_to:
            return base * bracket.rate - bracket.deduction
    top = brackets[-1]
    return base * top.rate - top.deduction


class IncomeProjectionCalculator:
    """
    Projects the user's salary.

    Usage:
        calculator = IncomeProjectionCalculator()
        breakdown = calculator.breakdown(profile)
        pending = calculator.projected_income(profile, "2025-03", today)
    """

    def __init__(self, tax: Optional[TaxSettings] = None):
        self._tax = tax or get_settings().tax

    def inss(self, gross: Decimal) -> Decimal:
        """Progressive INSS contribution, capped at the ceiling."""
        contribution = _bracket_tax(gross, self._tax.inss_brackets)
        return round_cents(min(max(contribution, ZERO), self._tax.inss_ceiling))

    def irrf(self, gross: Decimal, inss: Decimal, dependents: int = 0) -> Decimal:
        """Income tax: the lower of the legal-deductions and simplified methods."""
        legal_base = gross - inss - self._tax.dependent_deduction * dependents
        simplified_base = gross - self._tax.simplified_discount

        legal = max(_bracket_tax(legal_base, self._tax.irrf_brackets), ZERO)
        simplified = max(_bracket_tax(simplified_base, self._tax.irrf_brackets), ZERO)
        return round_cents(min(legal, simplified))

    @staticmethod
    def advance_amount(profile: SalaryProfile) -> Decimal:
        """Salary advance: a fixed value, else a percentage of gross."""
        if profile.advance_value > ZERO:
            return round_cents(profile.advance_value)
        if profile.advance_percent > ZERO:
            return round_cents(profile.base_salary * profile.advance_percent / HUNDRED)
        return ZERO

    @staticmethod
    def custom_deductions(profile: SalaryProfile) -> Decimal:
        return sum_money(
            profile.base_salary * rule.value / HUNDRED
            if rule.kind == DeductionKind.PERCENT
            else rule.value
            for rule in profile.vale_deductions
        )

    @staticmethod
    def is_exempt(profile: SalaryProfile) -> bool:
        """
        Whether payroll taxes are skipped.

        With an advance configured the vale flag governs, otherwise the
        salary flag.
        """
        if profile.has_advance:
            return profile.vale_exempt_from_discounts
        return profile.salary_exempt_from_discounts

    def breakdown(self, profile: SalaryProfile) -> IncomeBreakdown:
        """Gross to net salary."""
        gross = round_cents(max(profile.base_salary, ZERO))
        advance = self.advance_amount(profile)
        exempt = self.is_exempt(profile)

        inss = ZERO if exempt else self.inss(gross)
        irrf = ZERO if exempt else self.irrf(gross, inss, profile.dependents)
        custom = self.custom_deductions(profile)

        return IncomeBreakdown(
            gross=gross,
            advance=advance,
            inss=inss,
            irrf=irrf,
            custom_deductions=custom,
            net_salary=round_cents(gross - advance - inss - irrf - custom),
            exempt=exempt,
        )

    def projected_income(
        self,
        profile: Optional[SalaryProfile],
        month: str,
        reference_date: dt.date,
    ) -> Decimal:
        """
        Salary payments of `month` not yet received as of `reference_date`.

        A payment is received on its pay day. Past months have nothing
        pending; future months have everything pending.
        """
        if profile is None or profile.base_salary <= ZERO:
            return ZERO

        current = month_key(reference_date)
        if month < current:
            return ZERO

        breakdown = self.breakdown(profile)
        if month > current:
            return round_cents(breakdown.advance + breakdown.net_salary)

        pending = ZERO
        if profile.has_advance and profile.advance_day is not None:
            if reference_date.day < profile.advance_day:
                pending += breakdown.advance
        payment_day = profile.payment_day or 5
        if reference_date.day < payment_day:
            pending += breakdown.net_salary
        return round_cents(pending)
