from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import delete, insert, select
from sqlalchemy.engine import Engine

from audit_trail.currency_conversion import coerce_amount
from audit_trail.db import currency_rates, transactions
from audit_trail.ledger_summary import RatedTransaction, Transaction


class TransactionRepository:
    """Reads a user's transactions, each paired with its stored FX rate."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get_user_transactions_with_rates(self, user_id: int) -> list[RatedTransaction]:
        join_stmt = transactions.outerjoin(
            currency_rates,
            currency_rates.c.currency_code == transactions.c.currency_code,
        )
        with self.engine.begin() as conn:
            rows = conn.execute(
                select(
                    transactions,
                    currency_rates.c.rate.label("rate_to_primary"),
                )
                .select_from(join_stmt)
                .where(transactions.c.user_id == user_id)
                .order_by(transactions.c.created_at.asc(), transactions.c.id.asc())
            ).mappings().all()

        return [
            RatedTransaction(
                **_transaction_fields(row),
                rate_to_primary=(
                    coerce_amount(row["rate_to_primary"])
                    if row["rate_to_primary"] is not None
                    else None
                ),
            )
            for row in rows
        ]

    def get_transaction_by_id(self, transaction_id: int) -> Optional[Transaction]:
        with self.engine.begin() as conn:
            row = conn.execute(
                select(transactions).where(transactions.c.id == transaction_id).limit(1)
            ).mappings().first()
        if not row:
            return None
        return Transaction(**_transaction_fields(row))

    def add_transaction(
        self,
        user_id: int,
        type: str,
        amount: Decimal,
        currency_code: str,
        created_at: datetime,
        source_transaction_id: Optional[int] = None,
        metadata: Optional[str] = None,
        transaction_id: Optional[int] = None,
    ) -> int:
        values = {
            "user_id": user_id,
            "type": type,
            "amount": coerce_amount(amount),
            "currency_code": currency_code,
            "created_at": created_at,
            "source_transaction_id": source_transaction_id,
            "metadata": metadata,
        }
        if transaction_id is not None:
            values["id"] = transaction_id
        with self.engine.begin() as conn:
            result = conn.execute(insert(transactions).values(**values))
            return result.inserted_primary_key[0]

    def set_rate(self, currency_code: str, rate: Decimal) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                delete(currency_rates).where(currency_rates.c.currency_code == currency_code)
            )
            conn.execute(
                insert(currency_rates).values(
                    currency_code=currency_code,
                    rate=coerce_amount(rate),
                )
            )


def _transaction_fields(row) -> dict:
    return {
        "id": row["id"],
        "user_id": row["user_id"],
        "type": row["type"],
        "amount": coerce_amount(row["amount"]),
        "currency_code": row["currency_code"],
        "created_at": row["created_at"],
        "source_transaction_id": row["source_transaction_id"],
        "metadata": row["metadata"],
    }
