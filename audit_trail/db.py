from __future__ import annotations

from sqlalchemy import (
    Column,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    create_engine,
)
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

metadata = MetaData()

transactions = Table(
    "transactions",
    metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer, nullable=False, index=True),
    Column("type", String(50), nullable=False),
    Column("amount", Numeric(28, 8), nullable=False),
    Column("currency_code", String(10), nullable=False),
    Column("source_transaction_id", Integer),
    Column("metadata", String(1000)),
    Column("created_at", DateTime, nullable=False),
)

currency_rates = Table(
    "currency_rates",
    metadata,
    Column("currency_code", String(10), primary_key=True),
    Column("rate", Numeric(18, 8), nullable=False),
)

audit_entries = Table(
    "audit_entries",
    metadata,
    Column("id", String(64), primary_key=True),
    Column("action", String(50), nullable=False),
    Column("timestamp", DateTime, nullable=False),
    Column("user_id", String(64), nullable=False, index=True),
)


def build_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        connect_args = {"check_same_thread": False}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # One shared connection, otherwise every checkout sees an empty database
        return create_engine(database_url, connect_args=connect_args, poolclass=StaticPool)
    return create_engine(database_url, connect_args=connect_args)


def init_db(engine: Engine) -> None:
    metadata.create_all(engine)
