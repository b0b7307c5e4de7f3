"""
Audit log - Append-only record of automatic registry activity

The backfill orchestrator writes one entry per run in which anything
changed. Entries are never updated or deleted.
"""

from typing import Any, Protocol

from uuid_registry.kernel.logging import get_logger
from uuid_registry.kernel.storage import Storage
from uuid_registry.kernel.time import RealTimeProvider, TimeProvider

logger = get_logger(__name__)


class AuditLog(Protocol):
    """Protocol for the audit-log collaborator"""

    def record_event(self, category: str, summary: str) -> None:
        ...


class SQLiteAuditLog:
    """
    Audit log stored in an ``audit_events`` table next to the registry

    Schema:
    - audit_events: id, category, summary, success, created
    """

    def __init__(self, storage: Storage, time_provider: TimeProvider | None = None) -> None:
        self.storage = storage
        self.time_provider = time_provider or RealTimeProvider()

    def ensure_schema(self) -> None:
        """Create the audit table if it doesn't exist"""
        self.storage.execute("""
            CREATE TABLE IF NOT EXISTS audit_events (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                category TEXT NOT NULL,
                summary TEXT NOT NULL,
                success INTEGER NOT NULL DEFAULT 1,
                created TEXT NOT NULL
            )
        """)
        self.storage.execute(
            "CREATE INDEX IF NOT EXISTS idx_audit_events_category ON audit_events(category)"
        )

    def record_event(self, category: str, summary: str) -> None:
        self.storage.execute(
            "INSERT INTO audit_events (category, summary, success, created) VALUES (?, ?, 1, ?)",
            (category, summary, self.time_provider.now().isoformat()),
        )
        logger.info("Audit event recorded", category=category, summary=summary)

    def list_events(self, category: str | None = None) -> list[dict[str, Any]]:
        """Return audit entries oldest first, optionally for one category"""
        if category is None:
            return self.storage.execute(
                "SELECT id, category, summary, success, created FROM audit_events ORDER BY id"
            )
        return self.storage.execute(
            "SELECT id, category, summary, success, created FROM audit_events "
            "WHERE category = ? ORDER BY id",
            (category,),
        )


class StructlogAuditLog:
    """Audit log that only writes through the structured logger"""

    def record_event(self, category: str, summary: str) -> None:
        logger.info("Audit event", category=category, summary=summary, audit=True)
