"""Raw record ingestion."""

from invoice_engine.ingestion.normalizer import TransactionNormalizer, detect_kind

__all__ = ["TransactionNormalizer", "detect_kind"]
