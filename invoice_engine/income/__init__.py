"""Salary projection."""

from invoice_engine.income.projection import IncomeProjectionCalculator

__all__ = ["IncomeProjectionCalculator"]
