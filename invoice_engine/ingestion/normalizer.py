"""
Two-Stage Transaction Normalizer

Turns raw provider or manual records (plain dicts) into Transaction models.

STAGE 1 - STRUCTURAL CHECKS:
- Required keys (id)
- Parsable date and amount
- Known type and status values

STAGE 2 - SEMANTIC CHECKS:
- Dates too far in the future
- Card transactions not linked to any account

DESIGN DECISION: The transaction kind is decided here, once. Raw records
describe their origin in many ways (accountType, sourceType, tags,
isInvestment, cardId); downstream code only ever reads `kind`.

IMPORTANT: Normalization never invents data. A bad date is kept as None
and an unusable amount as zero, and both are reported.
"""

import datetime as dt
from typing import Any, Optional

from pydantic import ValidationError

from invoice_engine.config.settings import EngineSettings, get_settings
from invoice_engine.models.finance import Transaction, TransactionKind
from invoice_engine.models.ingestion import NormalizationIssue, NormalizationResult
from invoice_engine.models.money import coerce_optional_money, parse_date
from invoice_engine.tracing.logger import TraceLogger


CARD_MARKERS = ("credit", "card", "cartao", "cartão")
SAVINGS_MARKERS = ("savings", "poupanca", "poupança", "investment", "investimento")
ADJUSTMENT_MARKERS = ("adjustment", "ajuste")

# Provider vocabularies for the transaction direction
TYPE_ALIASES = {
    "income": "income",
    "credit": "income",
    "receita": "income",
    "expense": "expense",
    "debit": "expense",
    "despesa": "expense",
}


def _text(value: Any) -> str:
    return value.strip().lower() if isinstance(value, str) else ""


def _has_marker(value: str, markers: tuple[str, ...]) -> bool:
    return any(marker in value for marker in markers)


def detect_kind(raw: dict) -> TransactionKind:
    """
    Decide the transaction kind of a raw record.

    Priority: an explicit valid `kind`, the investment flag, the declared
    account/source type, tags, and finally the presence of a card id.
    """
    explicit = _text(raw.get("kind"))
    if explicit in {k.value for k in TransactionKind}:
        return TransactionKind(explicit)

    if raw.get("isInvestment") is True:
        return TransactionKind.SAVINGS

    for key in ("accountType", "sourceType"):
        declared = _text(raw.get(key))
        if not declared:
            continue
        if _has_marker(declared, CARD_MARKERS):
            return TransactionKind.CREDIT_CARD
        if _has_marker(declared, SAVINGS_MARKERS):
            return TransactionKind.SAVINGS
        if _has_marker(declared, ADJUSTMENT_MARKERS):
            return TransactionKind.MANUAL_ADJUSTMENT

    tags = raw.get("tags") or []
    if isinstance(tags, (list, tuple)):
        lowered = " ".join(_text(tag) for tag in tags)
        if _has_marker(lowered, CARD_MARKERS):
            return TransactionKind.CREDIT_CARD
        if _has_marker(lowered, ADJUSTMENT_MARKERS):
            return TransactionKind.MANUAL_ADJUSTMENT

    if raw.get("cardId"):
        return TransactionKind.CREDIT_CARD
    return TransactionKind.CHECKING


class TransactionNormalizer:
    """
    Normalizes raw records through a two-stage pipeline.

    Stage 1: Structural checks on the raw dict
    Stage 2: Semantic checks on the built Transaction
    """

    def __init__(
        self,
        reference_date: Optional[dt.date] = None,
        settings: Optional[EngineSettings] = None,
        trace: Optional[TraceLogger] = None,
    ):
        """
        Initialize normalizer.

        Args:
            reference_date: "Today" for future-date checks.
                            Defaults to the current date.
            settings: Engine settings (future date tolerance).
            trace: Trace logger receiving rejected records.
        """
        self._reference_date = reference_date or dt.date.today()
        self._settings = settings or get_settings().engine
        self._trace = trace or TraceLogger()

    def _validate_schema(
        self,
        raw: dict,
    ) -> tuple[bool, list[NormalizationIssue], dict]:
        """
        Stage 1: Structural checks.

        Returns: (is_valid, list_of_issues, cleaned_record)
        """
        issues = []
        cleaned = dict(raw)

        record_id = raw.get("id")
        if record_id is None or (isinstance(record_id, str) and not record_id.strip()):
            issues.append(NormalizationIssue(
                field="id",
                issue_type="missing",
                message="Transaction id is required",
                severity="error",
                suggested_fix="Assign a stable id at the source",
            ))

        raw_date = raw.get("date")
        if raw_date is None or raw_date == "":
            issues.append(NormalizationIssue(
                field="date",
                issue_type="missing",
                message="Transaction has no date",
                severity="warning",
                suggested_fix="The record will be kept out of every billing cycle",
            ))
        elif parse_date(raw_date) is None:
            issues.append(NormalizationIssue(
                field="date",
                issue_type="invalid_format",
                message=f"Date ({raw_date}) could not be parsed",
                severity="warning",
                suggested_fix="Use ISO format (YYYY-MM-DD)",
            ))

        raw_amount = raw.get("amount")
        if coerce_optional_money(raw_amount) is None:
            issues.append(NormalizationIssue(
                field="amount",
                issue_type="invalid_format",
                message=f"Amount ({raw_amount!r}) is not a number, using 0",
                severity="warning",
                suggested_fix="Check the amount at the source",
            ))

        raw_type = _text(raw.get("type"))
        if raw_type:
            if raw_type in TYPE_ALIASES:
                cleaned["type"] = TYPE_ALIASES[raw_type]
            else:
                cleaned["type"] = None
                issues.append(NormalizationIssue(
                    field="type",
                    issue_type="invalid_value",
                    message=f"Unknown transaction type ({raw.get('type')}), using the amount sign",
                    severity="warning",
                ))

        cleaned["kind"] = detect_kind(raw)

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues, cleaned

    def _validate_semantic(
        self,
        tx: Transaction,
    ) -> tuple[bool, list[NormalizationIssue]]:
        """
        Stage 2: Semantic checks.

        Returns: (is_valid, list_of_issues)
        """
        issues = []

        max_future_days = self._settings.future_date_tolerance_days
        max_future_date = self._reference_date + dt.timedelta(days=max_future_days)
        if tx.date and tx.date > max_future_date and not tx.is_projected:
            issues.append(NormalizationIssue(
                field="date",
                issue_type="future_date",
                message=f"Transaction date ({tx.date}) is in the future",
                severity="warning",
                suggested_fix="Please verify the date is correct",
            ))

        if tx.is_card and not tx.linked_account_ids:
            issues.append(NormalizationIssue(
                field="cardId",
                issue_type="unlinked",
                message="Card transaction is not linked to any account",
                severity="warning",
                suggested_fix="It will be attributed by fallback matching",
            ))

        is_valid = not any(issue.severity == "error" for issue in issues)
        return is_valid, issues

    def normalize(self, raw: dict) -> NormalizationResult:
        """Run both stages on one raw record."""
        record_id = raw.get("id")
        record_id = None if record_id is None else str(record_id)

        schema_valid, issues, cleaned = self._validate_schema(raw)

        tx = None
        semantic_valid = False
        if schema_valid:
            try:
                tx = Transaction.model_validate(cleaned)
            except ValidationError as e:
                schema_valid = False
                for error in e.errors():
                    issues.append(NormalizationIssue(
                        field=".".join(str(part) for part in error["loc"]) or "record",
                        issue_type="invalid_value",
                        message=error["msg"],
                        severity="error",
                    ))

        if tx is not None:
            semantic_valid, semantic_issues = self._validate_semantic(tx)
            issues.extend(semantic_issues)

        is_valid = schema_valid and semantic_valid
        if not is_valid:
            self._trace.log_record_rejected(
                record_id, [issue.model_dump() for issue in issues],
            )

        return NormalizationResult(
            record_id=record_id,
            schema_valid=schema_valid,
            semantic_valid=semantic_valid,
            is_valid=is_valid,
            transaction=tx if is_valid else None,
            issues=issues,
            warnings=[i.message for i in issues if i.severity == "warning"],
        )

    def normalize_all(
        self,
        records: list[dict],
    ) -> tuple[list[Transaction], list[NormalizationResult]]:
        """
        Normalize a batch.

        Returns: (accepted_transactions, every_result)
        """
        results = [self.normalize(raw) for raw in records]
        accepted = [r.transaction for r in results if r.transaction is not None]
        return accepted, results
