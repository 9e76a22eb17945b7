"""
Engine exceptions.

These never cross the public entry points: builders and the engine catch
them and return a typed result carrying `error_message` instead.
"""


class EngineError(Exception):
    """Base error raised inside the invoice engine."""
    pass


class InvoiceBuildError(EngineError):
    """A card's invoices could not be built from its transactions."""
    pass
