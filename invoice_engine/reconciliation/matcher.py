"""
Account Transaction Matcher

Resolves which card-kind transactions belong to which card.

Imported card transactions do not always carry the id of the card they
belong to: some providers tag them with an internal account id instead.
Strategies are tried in a strict order per card; the first one that
produces something wins:

1. DIRECT           - card_id or account_id equals the card id
2. INDEX            - as many distinct account ids as cards, both counted
                      after DIRECT: pair them positionally (sorted)
3. SINGLE_CARD      - only one card: it owns every unmatched transaction
4. PROVIDER_BALANCE - provider bill/balance, for the current month only
5. RAW_BALANCE      - abs(balance) when there is nothing else
6. NONE             - zero, but the card is still listed

DESIGN DECISION: The account-to-card mapping is computed once per matcher
instance and exposed through `build_mapping()`. There is no module-level
cache, so two passes never see each other's mapping.

WARNING: The INDEX strategy is a heuristic. Every card it resolves is
traced as a fallback so the caller can persist a confirmed mapping.
"""

import datetime as dt
from decimal import Decimal
from typing import Optional

from invoice_engine.billing.bills import select_current_bill
from invoice_engine.models.dashboard import CardMatch, MatchStrategy
from invoice_engine.models.finance import CardAccount, Transaction
from invoice_engine.models.money import ZERO, month_key, round_cents
from invoice_engine.tracing.logger import TraceLogger


def _account_ref(tx: Transaction) -> Optional[str]:
    return tx.account_id or tx.card_id


class AccountTransactionMatcher:
    """
    Attributes card transactions to cards for one computation pass.

    Usage:
        matcher = AccountTransactionMatcher(cards, transactions, date.today())
        for match in matcher.match_all():
            ...
    """

    def __init__(
        self,
        cards: list[CardAccount],
        transactions: list[Transaction],
        reference_date: dt.date,
        reference_month: Optional[str] = None,
        trace: Optional[TraceLogger] = None,
        account_mapping: Optional[dict[str, str]] = None,
    ):
        """
        Args:
            account_mapping: A confirmed account id to card id mapping,
                             e.g. one persisted at sync time. When given it
                             replaces the positional guess of INDEX.
        """
        self._cards = sorted(cards, key=lambda c: c.id)
        self._card_ids = {c.id for c in self._cards}
        self._transactions = [tx for tx in transactions if tx.is_card]
        self._reference_date = reference_date
        self._reference_month = reference_month or month_key(reference_date)
        self._trace = trace or TraceLogger()
        self._mapping: Optional[dict[str, str]] = None
        if account_mapping is not None:
            self._mapping = {
                account_id: card_id
                for account_id, card_id in account_mapping.items()
                if card_id in self._card_ids
            }

    @property
    def cards(self) -> list[CardAccount]:
        return list(self._cards)

    def build_mapping(self) -> dict[str, str]:
        """
        Account id to card id pairing used by the INDEX strategy.

        Only transactions and cards left over by DIRECT take part. Empty
        unless the number of distinct account ids among the leftover
        transactions equals the number of leftover cards. A mapping passed
        to the constructor is returned as-is.
        """
        if self._mapping is None:
            account_ids = sorted({
                ref for ref in map(_account_ref, self._unmatched()) if ref
            })
            open_cards = [card for card in self._cards if not self._direct(card)]
            if open_cards and len(account_ids) == len(open_cards):
                self._mapping = {
                    account_id: card.id
                    for account_id, card in zip(account_ids, open_cards)
                }
            else:
                self._mapping = {}
        return dict(self._mapping)

    def _direct(self, card: CardAccount) -> list[Transaction]:
        return [
            tx for tx in self._transactions
            if card.id in tx.linked_account_ids
        ]

    def _unmatched(self) -> list[Transaction]:
        """Card transactions not directly linked to any known card."""
        return [
            tx for tx in self._transactions
            if not self._card_ids.intersection(tx.linked_account_ids)
        ]

    def match(self, card: CardAccount) -> CardMatch:
        """Resolve one card; see the module docstring for the order."""
        result = self._resolve(card)
        self._trace.log_card_matched(
            card.id, result.strategy.value, len(result.transactions),
        )
        return result

    def match_all(self) -> list[CardMatch]:
        """Resolve every card, ordered by card id."""
        return [self.match(card) for card in self._cards]

    def _resolve(self, card: CardAccount) -> CardMatch:
        direct = self._direct(card)
        if direct:
            return CardMatch(
                card_id=card.id,
                strategy=MatchStrategy.DIRECT,
                transactions=direct,
                matched_account_id=card.id,
            )

        mapping = self.build_mapping()
        unmatched = self._unmatched()
        for account_id, card_id in mapping.items():
            if card_id != card.id:
                continue
            indexed = [
                tx for tx in unmatched
                if _account_ref(tx) == account_id
            ]
            if indexed:
                return CardMatch(
                    card_id=card.id,
                    strategy=MatchStrategy.INDEX,
                    transactions=indexed,
                    matched_account_id=account_id,
                )

        if len(self._cards) == 1:
            if unmatched:
                return CardMatch(
                    card_id=card.id,
                    strategy=MatchStrategy.SINGLE_CARD,
                    transactions=unmatched,
                )

        if card.has_provider_data and (
            self._reference_month == month_key(self._reference_date)
        ):
            return CardMatch(
                card_id=card.id,
                strategy=MatchStrategy.PROVIDER_BALANCE,
                fallback_amount=self._provider_amount(card),
            )

        if not card.bills and card.balance != ZERO:
            return CardMatch(
                card_id=card.id,
                strategy=MatchStrategy.RAW_BALANCE,
                fallback_amount=round_cents(abs(card.balance)),
            )

        return CardMatch(
            card_id=card.id,
            strategy=MatchStrategy.NONE,
            fallback_amount=ZERO,
        )

    def _provider_amount(self, card: CardAccount) -> Decimal:
        selected = select_current_bill(card.bills, self._reference_date)
        if selected is not None:
            bill, _ = selected
            return round_cents(abs(bill.total_amount))
        return round_cents(abs(card.balance))
