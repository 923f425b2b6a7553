import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation

from fastapi import FastAPI, HTTPException, Query
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy.exc import SQLAlchemyError

from audit_trail.audit_repository import AuditEntry, AuditRepository
from audit_trail.config import get_settings
from audit_trail.db import build_engine, init_db
from audit_trail.ledger_summary import (
    AnnotatedTransaction,
    CurrencyBalance,
    InvalidUserId,
    TransactionSummary,
    summarize_transactions,
)
from audit_trail.transaction_repository import TransactionRepository

logger = logging.getLogger(__name__)

settings = get_settings()

app = FastAPI(title="Audit Trail")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_origin],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

engine = build_engine(settings.database_url)
transaction_repository = TransactionRepository(engine)
audit_repository = AuditRepository(engine)

INVALID_USER_ID_DETAIL = "Invalid userId. Must be a number."
INTERNAL_ERROR_DETAIL = "Internal server error"


@app.on_event("startup")
def on_startup() -> None:
    init_db(engine)


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class AnnotatedTransactionResponse(CamelModel):
    id: int
    user_id: int
    type: str
    amount: Decimal
    currency_code: str
    source_transaction_id: int | None = None
    metadata: str | None = None
    created_at: datetime
    rate_to_primary: Decimal | None = None
    signed_amount: Decimal
    amount_in_primary: Decimal
    balance_after_currency: Decimal
    balance_after_primary: Decimal
    is_fund_source_valid: bool | None = None


class CurrencyBalanceResponse(CamelModel):
    currency: str
    balance: Decimal
    balance_in_primary: Decimal


class TransactionSummaryResponse(CamelModel):
    user_id: int
    primary_currency: str
    final_balance_primary: Decimal
    balances_by_currency: list[CurrencyBalanceResponse]
    transactions: list[AnnotatedTransactionResponse]


class AuditEntryResponse(CamelModel):
    id: str
    action: str
    timestamp: datetime
    user_id: str


def parse_user_id(value: str) -> int:
    """Accept any finite numeric literal ("7", "1e3") that names a whole number."""
    try:
        parsed = Decimal(value.strip())
    except InvalidOperation as exc:
        raise HTTPException(status_code=400, detail=INVALID_USER_ID_DETAIL) from exc
    if not parsed.is_finite() or parsed != parsed.to_integral_value():
        raise HTTPException(status_code=400, detail=INVALID_USER_ID_DETAIL)
    return int(parsed)


def resolve_primary_currency(value: str | None) -> str:
    # Passed through as given; the engine compares currency codes case-insensitively
    stripped = (value or "").strip()
    if not stripped:
        return settings.primary_currency
    return stripped


def serialize_transaction(txn: AnnotatedTransaction) -> AnnotatedTransactionResponse:
    return AnnotatedTransactionResponse(
        id=txn.id,
        user_id=txn.user_id,
        type=txn.type,
        amount=txn.amount,
        currency_code=txn.currency_code,
        source_transaction_id=txn.source_transaction_id,
        metadata=txn.metadata,
        created_at=txn.created_at,
        rate_to_primary=txn.rate_to_primary,
        signed_amount=txn.signed_amount,
        amount_in_primary=txn.amount_in_primary,
        balance_after_currency=txn.balance_after_currency,
        balance_after_primary=txn.balance_after_primary,
        is_fund_source_valid=txn.is_fund_source_valid,
    )


def serialize_balance(balance: CurrencyBalance) -> CurrencyBalanceResponse:
    return CurrencyBalanceResponse(
        currency=balance.currency,
        balance=balance.balance,
        balance_in_primary=balance.balance_in_primary,
    )


def serialize_summary(summary: TransactionSummary) -> TransactionSummaryResponse:
    return TransactionSummaryResponse(
        user_id=summary.user_id,
        primary_currency=summary.primary_currency,
        final_balance_primary=summary.final_balance_primary,
        balances_by_currency=[serialize_balance(item) for item in summary.balances_by_currency],
        transactions=[serialize_transaction(item) for item in summary.transactions],
    )


def serialize_audit_entry(entry: AuditEntry) -> AuditEntryResponse:
    return AuditEntryResponse(
        id=entry.id,
        action=entry.action,
        timestamp=entry.timestamp,
        user_id=entry.user_id,
    )


@app.get("/health")
def health() -> dict:
    return {"status": "ok"}


# GET /api/transactions/{user_id}?primaryCurrency=USD
@app.get("/api/transactions/{user_id}", response_model=TransactionSummaryResponse)
def get_user_transaction_summary(
    user_id: str,
    primary_currency: str | None = Query(None, alias="primaryCurrency"),
) -> TransactionSummaryResponse:
    parsed_user_id = parse_user_id(user_id)
    currency = resolve_primary_currency(primary_currency)

    try:
        rated = transaction_repository.get_user_transactions_with_rates(parsed_user_id)
    except SQLAlchemyError as exc:
        logger.exception("Error retrieving transaction summary for user %s", parsed_user_id)
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR_DETAIL) from exc

    try:
        summary = summarize_transactions(parsed_user_id, rated, primary_currency=currency)
    except InvalidUserId as exc:
        raise HTTPException(status_code=400, detail=INVALID_USER_ID_DETAIL) from exc

    return serialize_summary(summary)


@app.get("/api/audit/{user_id}", response_model=list[AuditEntryResponse])
def get_audit(user_id: str) -> list[AuditEntryResponse]:
    try:
        entries = audit_repository.get_audit_entries(user_id)
    except SQLAlchemyError as exc:
        logger.exception("Error retrieving audit data for user %s", user_id)
        raise HTTPException(status_code=500, detail=INTERNAL_ERROR_DETAIL) from exc
    return [serialize_audit_entry(entry) for entry in entries]
