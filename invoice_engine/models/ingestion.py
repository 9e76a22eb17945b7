"""
Ingestion Models

Issues and results produced while normalizing raw transaction records.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from invoice_engine.models.finance import Transaction


class NormalizationIssue(BaseModel):
    """A single problem found in a raw record."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_format', 'future_date')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="How the source could fix it"
    )


class NormalizationResult(BaseModel):
    """
    Result of normalizing one raw record.

    Stage 1: Structural checks (required keys, parsable values)
    Stage 2: Semantic checks (dates, account linkage)
    """

    record_id: Optional[str] = None
    normalized_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool = Field(
        ...,
        description="True when the record was accepted"
    )

    transaction: Optional[Transaction] = None
    issues: list[NormalizationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
