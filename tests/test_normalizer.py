"""
Tests for raw record normalization.
"""

import pytest
from datetime import date
from decimal import Decimal

from invoice_engine.config.settings import EngineSettings
from invoice_engine.ingestion import TransactionNormalizer, detect_kind
from invoice_engine.models import TransactionKind, TransactionType
from invoice_engine.tracing import TraceLogger


REF = date(2024, 6, 10)


@pytest.fixture
def normalizer():
    return TransactionNormalizer(reference_date=REF, settings=EngineSettings())


def valid_record(**overrides) -> dict:
    record = {
        "id": "t1",
        "date": "2024-06-05",
        "description": "Mercado",
        "amount": "-45,90",
        "type": "DEBIT",
        "accountId": "acc_1",
    }
    record.update(overrides)
    return record


class TestDetectKind:
    """Tests for transaction kind detection."""

    @pytest.mark.parametrize("raw, expected", [
        ({"kind": "credit_card"}, TransactionKind.CREDIT_CARD),
        ({"kind": "SAVINGS"}, TransactionKind.SAVINGS),
        ({"isInvestment": True, "accountType": "credit"}, TransactionKind.SAVINGS),
        ({"accountType": "CREDIT"}, TransactionKind.CREDIT_CARD),
        ({"sourceType": "Poupança"}, TransactionKind.SAVINGS),
        ({"accountType": "ajuste manual"}, TransactionKind.MANUAL_ADJUSTMENT),
        ({"tags": ["Cartão", "Viagem"]}, TransactionKind.CREDIT_CARD),
        ({"tags": ["Ajuste"]}, TransactionKind.MANUAL_ADJUSTMENT),
        ({"cardId": "c1"}, TransactionKind.CREDIT_CARD),
        ({"kind": "bogus", "accountType": "checking"}, TransactionKind.CHECKING),
        ({}, TransactionKind.CHECKING),
    ])
    def test_detect_kind(self, raw, expected):
        """Test the detection priority."""
        assert detect_kind(raw) == expected


class TestNormalizer:
    """Tests for the two-stage normalizer."""

    def test_valid_record(self, normalizer):
        """Test that a clean record is accepted."""
        result = normalizer.normalize(valid_record())

        assert result.is_valid
        assert result.schema_valid
        assert result.semantic_valid
        assert result.issues == []
        tx = result.transaction
        assert tx.type == TransactionType.EXPENSE
        assert tx.amount == Decimal("-45.90")
        assert tx.kind == TransactionKind.CHECKING
        assert tx.account_id == "acc_1"

    def test_missing_id_is_rejected(self):
        """Test that a record without id is rejected and traced."""
        trace = TraceLogger()
        normalizer = TransactionNormalizer(REF, EngineSettings(), trace)
        result = normalizer.normalize(valid_record(id=None))

        assert not result.is_valid
        assert not result.schema_valid
        assert result.transaction is None
        assert result.issues[0].field == "id"
        assert result.issues[0].severity == "error"
        assert len(trace.events_of_type("record_rejected")) == 1

    def test_bad_date_is_a_warning(self, normalizer):
        """Test that an unparsable date keeps the record, without date."""
        result = normalizer.normalize(valid_record(date="31/02/2024"))

        assert result.is_valid
        assert result.transaction.date is None
        assert result.issues[0].issue_type == "invalid_format"
        assert len(result.warnings) == 1

    def test_missing_date_is_a_warning(self, normalizer):
        """Test that a missing date is reported."""
        result = normalizer.normalize(valid_record(date=None))

        assert result.is_valid
        assert result.issues[0].issue_type == "missing"

    def test_bad_amount_becomes_zero(self, normalizer):
        """Test that an unusable amount is reported and zeroed."""
        result = normalizer.normalize(valid_record(amount="abc"))

        assert result.is_valid
        assert result.transaction.amount == Decimal("0")
        assert result.issues[0].field == "amount"

    def test_unknown_type(self, normalizer):
        """Test that an unknown type falls back to the amount sign."""
        result = normalizer.normalize(valid_record(type="transfer"))

        assert result.is_valid
        assert result.transaction.type is None
        assert result.transaction.signed_amount == Decimal("-45.90")
        assert result.issues[0].field == "type"

    def test_provider_type_vocabulary(self, normalizer):
        """Test provider spellings of the direction."""
        result = normalizer.normalize(valid_record(type="credit", amount="100"))
        assert result.transaction.type == TransactionType.INCOME

    def test_future_date(self, normalizer):
        """Test that far future dates are flagged."""
        result = normalizer.normalize(valid_record(date="2024-07-01"))

        assert result.is_valid
        assert result.issues[0].issue_type == "future_date"

    def test_projected_future_date_is_fine(self, normalizer):
        """Test that projected installments may be dated in the future."""
        result = normalizer.normalize(valid_record(date="2024-09-01", isProjected=True))
        assert result.issues == []

    def test_unlinked_card_transaction(self, normalizer):
        """Test that card transactions without any link are flagged."""
        record = valid_record(accountType="credit")
        del record["accountId"]
        result = normalizer.normalize(record)

        assert result.is_valid
        assert result.transaction.kind == TransactionKind.CREDIT_CARD
        assert result.issues[0].issue_type == "unlinked"

    def test_bad_status_is_rejected(self, normalizer):
        """Test that a model validation error rejects the record."""
        result = normalizer.normalize(valid_record(status="weird"))

        assert not result.is_valid
        assert not result.schema_valid
        assert result.issues[0].severity == "error"
        assert result.issues[0].field == "status"

    def test_normalize_all(self, normalizer):
        """Test batch normalization."""
        records = [
            valid_record(id="a"),
            valid_record(id=None),
            valid_record(id=7),
        ]
        accepted, results = normalizer.normalize_all(records)

        assert [tx.id for tx in accepted] == ["a", "7"]
        assert len(results) == 3
        assert [r.is_valid for r in results] == [True, False, True]
