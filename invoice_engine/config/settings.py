"""
Configuration Management for the Invoice Engine

Uses pydantic-settings for type-safe configuration from environment variables.

DESIGN DECISION: All tunable constants live here (tolerances, horizons,
tax tables). Components receive them explicitly so a computation never
depends on hidden module state.
"""

from decimal import Decimal
from functools import lru_cache
from typing import Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TaxBracket(BaseModel):
    """
    One progressive bracket: `amount * rate - deduction`.

    `up_to` is the inclusive upper bound of the bracket; None marks the
    open-ended top bracket.
    """

    up_to: Optional[Decimal] = None
    rate: Decimal
    deduction: Decimal = Decimal("0")


# 2025 tables (Portaria Interministerial MPS/MF and Lei 15.191/2025)
DEFAULT_INSS_BRACKETS = [
    TaxBracket(up_to=Decimal("1518.00"), rate=Decimal("0.075"), deduction=Decimal("0")),
    TaxBracket(up_to=Decimal("2793.88"), rate=Decimal("0.09"), deduction=Decimal("22.77")),
    TaxBracket(up_to=Decimal("4190.83"), rate=Decimal("0.12"), deduction=Decimal("106.59")),
    TaxBracket(up_to=Decimal("8157.41"), rate=Decimal("0.14"), deduction=Decimal("190.40")),
]

DEFAULT_IRRF_BRACKETS = [
    TaxBracket(up_to=Decimal("2428.80"), rate=Decimal("0"), deduction=Decimal("0")),
    TaxBracket(up_to=Decimal("2826.65"), rate=Decimal("0.075"), deduction=Decimal("182.16")),
    TaxBracket(up_to=Decimal("3751.05"), rate=Decimal("0.15"), deduction=Decimal("394.16")),
    TaxBracket(up_to=Decimal("4664.68"), rate=Decimal("0.225"), deduction=Decimal("675.49")),
    TaxBracket(up_to=None, rate=Decimal("0.275"), deduction=Decimal("896.00")),
]


class EngineSettings(BaseSettings):
    """Reconciliation engine configuration."""

    model_config = SettingsConfigDict(
        env_prefix="INVOICE_ENGINE_",
        extra="ignore"
    )

    default_closing_day: int = Field(
        default=1,
        ge=1,
        le=28,
        description="Closing day used when a card has none"
    )
    future_invoice_months: int = Field(
        default=12,
        ge=1,
        le=60,
        description="How many future invoices to project"
    )
    subscription_tolerance_ratio: Decimal = Field(
        default=Decimal("0.10"),
        ge=0,
        le=1,
        description="Relative amount tolerance when matching subscriptions"
    )
    subscription_tolerance_floor: Decimal = Field(
        default=Decimal("1.00"),
        ge=0,
        description="Absolute amount tolerance floor when matching subscriptions"
    )
    paid_ratio_threshold: Decimal = Field(
        default=Decimal("0.95"),
        ge=0,
        le=1,
        description="Share of a bill that must be paid for it to count as PAID"
    )
    future_date_tolerance_days: int = Field(
        default=7,
        ge=0,
        description="How many days in the future a transaction date can be"
    )
    cache_size: int = Field(
        default=32,
        ge=0,
        description="Number of memoised dashboard results kept by the engine"
    )


class TaxSettings(BaseSettings):
    """Brazilian payroll tax tables (INSS and IRRF)."""

    model_config = SettingsConfigDict(
        env_prefix="INVOICE_ENGINE_TAX_",
        extra="ignore"
    )

    inss_brackets: list[TaxBracket] = Field(
        default_factory=lambda: list(DEFAULT_INSS_BRACKETS),
        description="Four progressive INSS brackets"
    )
    inss_ceiling: Decimal = Field(
        default=Decimal("951.63"),
        ge=0,
        description="Maximum INSS contribution"
    )
    irrf_brackets: list[TaxBracket] = Field(
        default_factory=lambda: list(DEFAULT_IRRF_BRACKETS),
        description="Five progressive IRRF brackets"
    )
    dependent_deduction: Decimal = Field(
        default=Decimal("189.59"),
        ge=0,
        description="IRRF deduction per dependent"
    )
    simplified_discount: Decimal = Field(
        default=Decimal("607.20"),
        ge=0,
        description="Simplified monthly IRRF discount"
    )

    @field_validator('inss_brackets')
    @classmethod
    def validate_inss_brackets(cls, v: list[TaxBracket]) -> list[TaxBracket]:
        """INSS has exactly four brackets."""
        if len(v) != 4:
            raise ValueError("INSS table must have exactly 4 brackets")
        return v

    @field_validator('irrf_brackets')
    @classmethod
    def validate_irrf_brackets(cls, v: list[TaxBracket]) -> list[TaxBracket]:
        """IRRF has exactly five brackets, the last one open-ended."""
        if len(v) != 5:
            raise ValueError("IRRF table must have exactly 5 brackets")
        if v[-1].up_to is not None:
            raise ValueError("Top IRRF bracket must be open-ended")
        return v


class Settings(BaseSettings):
    """
    Root settings container.

    Aggregates all sub-settings for easy access.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore"
    )

    @property
    def engine(self) -> EngineSettings:
        return EngineSettings()

    @property
    def tax(self) -> TaxSettings:
        return TaxSettings()


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload if needed.
    """
    return Settings()


def validate_all_settings() -> dict[str, bool]:
    """
    Validate all settings are properly configured.

    Returns a dict of {setting_name: is_valid}, with an `<name>_error`
    entry for every failure. Useful for startup checks.
    """
    results = {}

    settings = get_settings()

    try:
        _ = settings.engine
        results["engine"] = True
    except Exception as e:
        results["engine"] = False
        results["engine_error"] = str(e)

    try:
        _ = settings.tax
        results["tax"] = True
    except Exception as e:
        results["tax"] = False
        results["tax_error"] = str(e)

    return results
