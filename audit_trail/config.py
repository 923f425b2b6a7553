from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache

from audit_trail.currency_conversion import normalize_currency
from audit_trail.ledger_summary import DEFAULT_PRIMARY_CURRENCY


@dataclass(frozen=True)
class Settings:
    database_url: str
    primary_currency: str
    frontend_origin: str
    host: str
    port: int
    log_level: str


def get_system_primary_currency() -> str:
    raw = os.getenv("PRIMARY_CURRENCY", DEFAULT_PRIMARY_CURRENCY)
    try:
        return normalize_currency(raw)
    except ValueError:
        return DEFAULT_PRIMARY_CURRENCY


def load_settings() -> Settings:
    return Settings(
        database_url=os.getenv("DATABASE_URL", "sqlite:///./audit_trail.db"),
        primary_currency=get_system_primary_currency(),
        frontend_origin=os.getenv("FRONTEND_ORIGIN", "http://localhost:3000"),
        host=os.getenv("HOST", "0.0.0.0"),
        port=int(os.getenv("PORT", "3000")),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
