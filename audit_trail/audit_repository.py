from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import insert, select
from sqlalchemy.engine import Engine

from audit_trail.db import audit_entries


@dataclass(frozen=True)
class AuditEntry:
    id: str
    action: str
    timestamp: datetime
    user_id: str


class AuditRepository:
    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def save_audit_entry(self, entry: AuditEntry) -> None:
        with self.engine.begin() as conn:
            conn.execute(
                insert(audit_entries).values(
                    id=entry.id,
                    action=entry.action,
                    timestamp=entry.timestamp,
                    user_id=entry.user_id,
                )
            )

    def get_audit_entries(self, user_id: str) -> list[AuditEntry]:
        """Return the user's audit entries, newest first."""
        with self.engine.begin() as conn:
            rows = conn.execute(
                select(audit_entries)
                .where(audit_entries.c.user_id == user_id)
                .order_by(audit_entries.c.timestamp.desc(), audit_entries.c.id.desc())
            ).mappings().all()
        return [
            AuditEntry(
                id=row["id"],
                action=row["action"],
                timestamp=row["timestamp"],
                user_id=row["user_id"],
            )
            for row in rows
        ]
