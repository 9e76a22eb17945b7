"""Trace logging package."""

from invoice_engine.tracing.logger import TraceLogger, create_correlation_id

__all__ = ["TraceLogger", "create_correlation_id"]
