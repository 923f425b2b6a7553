"""
Ledger Summary Engine

Turns one user's ordered, rate-annotated transaction history into a summary
with running balances per currency and in a primary currency, per-currency
totals, and a fund-source provenance check.

The engine is a pure function of its arguments: it never fetches, persists or
re-sorts anything, and it never mutates the records it is given.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field, fields, replace
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Iterable, Optional, Sequence

from audit_trail.currency_conversion import coerce_amount, convert_to_primary

logger = logging.getLogger(__name__)

ZERO = Decimal("0")
DEFAULT_PRIMARY_CURRENCY = "USD"

CREDIT_TYPES = {"DEPOSIT", "TRANSFER_IN", "REFUND"}
DEBIT_TYPES = {"WITHDRAWAL", "TRANSFER_OUT", "PAYMENT", "FEE"}


class InvalidUserId(ValueError):
    """Raised when the requested user identifier is not a finite number."""


class EntryKind(Enum):
    CREDIT = "credit"
    DEBIT = "debit"


@dataclass(frozen=True)
class Transaction:
    id: int
    user_id: int
    type: str
    amount: Decimal
    currency_code: str
    created_at: datetime
    source_transaction_id: Optional[int] = None
    metadata: Optional[str] = None


@dataclass(frozen=True)
class RatedTransaction(Transaction):
    rate_to_primary: Optional[Decimal] = None


@dataclass(frozen=True)
class AnnotatedTransaction(RatedTransaction):
    signed_amount: Decimal = ZERO
    amount_in_primary: Decimal = ZERO
    balance_after_currency: Decimal = ZERO
    balance_after_primary: Decimal = ZERO
    is_fund_source_valid: Optional[bool] = None


@dataclass(frozen=True)
class CurrencyBalance:
    currency: str
    balance: Decimal
    balance_in_primary: Decimal


@dataclass(frozen=True)
class TransactionSummary:
    user_id: int
    primary_currency: str
    final_balance_primary: Decimal
    balances_by_currency: tuple[CurrencyBalance, ...]
    transactions: tuple[AnnotatedTransaction, ...]


@dataclass
class CurrencyAccumulator:
    """Running totals keyed by currency code, kept in first-seen order.

    Alongside each total it remembers the rate carried by the first
    transaction seen in that currency, which is the rate used to value the
    final total.
    """

    _order: list[str] = field(default_factory=list)
    _balances: dict[str, Decimal] = field(default_factory=dict)
    _first_rates: dict[str, Optional[Decimal]] = field(default_factory=dict)

    def add(self, currency: str, amount: Decimal, rate: Optional[Decimal]) -> Decimal:
        if currency not in self._balances:
            self._order.append(currency)
            self._balances[currency] = ZERO
            self._first_rates[currency] = rate
        balance = self._balances[currency] + amount
        self._balances[currency] = balance
        return balance

    def balances(self, primary_currency: str) -> tuple[CurrencyBalance, ...]:
        result = []
        for currency in self._order:
            balance = self._balances[currency]
            result.append(
                CurrencyBalance(
                    currency=currency,
                    balance=balance,
                    balance_in_primary=convert_to_primary(
                        balance, currency, primary_currency, self._first_rates[currency]
                    ),
                )
            )
        return tuple(result)


def classify(transaction_type: str) -> EntryKind:
    """Map a transaction type to its effect on the balance.

    Unrecognized types, including the empty string, count as credits.
    """
    normalized = (transaction_type or "").upper()
    if normalized in CREDIT_TYPES:
        return EntryKind.CREDIT
    if normalized in DEBIT_TYPES:
        return EntryKind.DEBIT
    return EntryKind.CREDIT


def signed_amount(transaction: Transaction) -> Decimal:
    magnitude = abs(coerce_amount(transaction.amount))
    if classify(transaction.type) is EntryKind.DEBIT:
        return -magnitude
    return magnitude


def summarize_transactions(
    user_id: int,
    transactions: Iterable[RatedTransaction],
    primary_currency: str = DEFAULT_PRIMARY_CURRENCY,
) -> TransactionSummary:
    """Build the ledger summary for ``user_id``.

    ``transactions`` must already be ordered by ``created_at`` then ``id``;
    every running balance depends on that order.
    """
    _validate_user_id(user_id)

    accumulator = CurrencyAccumulator()
    running_primary = ZERO
    annotated: list[AnnotatedTransaction] = []

    for txn in transactions:
        signed = signed_amount(txn)
        amount_in_primary = convert_to_primary(
            signed, txn.currency_code, primary_currency, txn.rate_to_primary
        )

        balance_after_currency = accumulator.add(txn.currency_code, signed, txn.rate_to_primary)
        running_primary += amount_in_primary

        annotated.append(
            _annotate(
                txn,
                signed_amount=signed,
                amount_in_primary=amount_in_primary,
                balance_after_currency=balance_after_currency,
                balance_after_primary=running_primary,
            )
        )

    validated = _validate_fund_sources(annotated)
    balances = accumulator.balances(primary_currency)

    logger.debug(
        "Summarized %d transactions in %d currencies for user %s",
        len(validated),
        len(balances),
        user_id,
    )

    return TransactionSummary(
        user_id=user_id,
        primary_currency=primary_currency,
        final_balance_primary=running_primary,
        balances_by_currency=balances,
        transactions=tuple(validated),
    )


def _validate_user_id(user_id: object) -> None:
    if isinstance(user_id, bool) or not isinstance(user_id, (int, float, Decimal)):
        raise InvalidUserId(f"Invalid user id: {user_id!r}")
    if isinstance(user_id, float) and not math.isfinite(user_id):
        raise InvalidUserId(f"Invalid user id: {user_id!r}")
    if isinstance(user_id, Decimal) and not user_id.is_finite():
        raise InvalidUserId(f"Invalid user id: {user_id!r}")


def _annotate(txn: RatedTransaction, **derived: Decimal) -> AnnotatedTransaction:
    base = {item.name: getattr(txn, item.name) for item in fields(RatedTransaction)}
    return AnnotatedTransaction(**base, **derived)


def _validate_fund_sources(
    records: Sequence[AnnotatedTransaction],
) -> list[AnnotatedTransaction]:
    # Duplicate ids: the later record wins.
    by_id = {record.id: record for record in records}

    validated = []
    for record in records:
        if record.source_transaction_id is None:
            validated.append(record)
            continue
        source = by_id.get(record.source_transaction_id)
        is_valid = source is not None and source.user_id == record.user_id
        validated.append(replace(record, is_fund_source_valid=is_valid))
    return validated
