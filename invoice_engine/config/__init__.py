"""Configuration package."""

from invoice_engine.config.settings import (
    EngineSettings,
    Settings,
    TaxBracket,
    TaxSettings,
    get_settings,
    validate_all_settings,
)

__all__ = [
    "EngineSettings",
    "Settings",
    "TaxBracket",
    "TaxSettings",
    "get_settings",
    "validate_all_settings",
]
