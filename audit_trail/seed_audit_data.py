"""
Seed the audit log with a handful of example entries.

Run with:
    python -m audit_trail.seed_audit_data
"""

import logging
from datetime import datetime

from audit_trail.audit_repository import AuditEntry, AuditRepository
from audit_trail.config import get_settings
from audit_trail.db import build_engine, init_db
from audit_trail.logging_setup import setup_logging

logger = logging.getLogger(__name__)

SEED_ACTIONS = [
    ("1", "CREATE", "user1"),
    ("2", "UPDATE", "user2"),
    ("3", "DELETE", "user3"),
]


def seed_audit_data(repository: AuditRepository, now: datetime | None = None) -> list[AuditEntry]:
    timestamp = now or datetime.now()
    entries = [
        AuditEntry(id=entry_id, action=action, timestamp=timestamp, user_id=user_id)
        for entry_id, action, user_id in SEED_ACTIONS
    ]
    for entry in entries:
        repository.save_audit_entry(entry)
    return entries


def main() -> None:
    settings = get_settings()
    setup_logging(settings.log_level)
    engine = build_engine(settings.database_url)
    init_db(engine)
    try:
        entries = seed_audit_data(AuditRepository(engine))
    except Exception:
        logger.exception("Error seeding audit data")
        raise
    logger.info("Audit data seeded successfully (%d entries).", len(entries))


if __name__ == "__main__":
    main()
