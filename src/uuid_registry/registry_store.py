"""
Registry Store - Append-only table of every issued uuid

The registry is the ground truth for "has this uuid ever been handed out".
Rows are only ever inserted; nothing in this package updates or deletes them.

Schema (names of the table and the uuid column come from RegistrySettings):
- uuid: 16-byte binary value
- table_name / table_id: owning table and its key column ("" when untracked)
- table_vertical: JSON list of composite key columns, for vertical tables
- couchdb: label of a non-relational store ("" when unused)
- document_drive / mapped: 0/1 flags
- created: UTC timestamp of insertion
"""

import json
from collections.abc import Sequence
from datetime import datetime

from uuid_registry.kernel.logging import get_logger
from uuid_registry.kernel.metrics import records_inserted_total
from uuid_registry.kernel.settings import RegistrySettings
from uuid_registry.kernel.storage import Storage
from uuid_registry.kernel.time import RealTimeProvider, TimeProvider
from uuid_registry.models import RegistryContext, RegistryRecord

logger = get_logger(__name__)


def any_of_predicate(column: str, count: int) -> str:
    """
    ``col IN (?, ?, ...)`` for ``count`` bound values

    Same meaning as ``col = ? OR col = ? ...``, but SQLite caps expression
    depth at 1000 and a full backfill batch would exceed it as an OR chain.
    """
    return f"{column} IN ({', '.join('?' * count)})"


class RegistryStore:
    """
    Registry table access

    The uniqueness of a uuid is established by probing before insertion, not
    by a unique constraint, so the identifier index is a plain lookup index.
    """

    def __init__(
        self,
        storage: Storage,
        settings: RegistrySettings | None = None,
        time_provider: TimeProvider | None = None,
    ) -> None:
        self.storage = storage
        self.settings = settings or RegistrySettings()
        self.time_provider = time_provider or RealTimeProvider()
        self.table = self.settings.registry_table
        self.uuid_column = self.settings.uuid_column

    def ensure_schema(self) -> None:
        """Create the registry table and its lookup index if they don't exist"""
        self.storage.execute(f"""
            CREATE TABLE IF NOT EXISTS {self.table} (
                {self.uuid_column} BLOB NOT NULL,
                table_name TEXT NOT NULL DEFAULT '',
                table_id TEXT NOT NULL DEFAULT '',
                table_vertical TEXT,
                couchdb TEXT NOT NULL DEFAULT '',
                document_drive INTEGER NOT NULL DEFAULT 0,
                mapped INTEGER NOT NULL DEFAULT 0,
                created TEXT NOT NULL
            )
        """)
        self.storage.execute(
            f"CREATE INDEX IF NOT EXISTS idx_{self.table}_{self.uuid_column} "
            f"ON {self.table}({self.uuid_column})"
        )

    def _now(self) -> str:
        return self.time_provider.now().isoformat()

    def insert_one(self, uuid: bytes, context: RegistryContext) -> None:
        """
        Record a single uuid

        The ``table_vertical`` column is only written when the context is
        vertical; otherwise it is left NULL.
        """
        if context.is_vertical:
            self.storage.execute(
                f"INSERT INTO {self.table} ({self.uuid_column}, table_name, table_id, "
                "table_vertical, couchdb, document_drive, mapped, created) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    uuid,
                    context.table_name,
                    context.table_id,
                    context.vertical_json(),
                    context.couchdb,
                    int(context.document_drive),
                    int(context.mapped),
                    self._now(),
                ),
            )
        else:
            self.storage.execute(
                f"INSERT INTO {self.table} ({self.uuid_column}, table_name, table_id, "
                "couchdb, document_drive, mapped, created) VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    uuid,
                    context.table_name,
                    context.table_id,
                    context.couchdb,
                    int(context.document_drive),
                    int(context.mapped),
                    self._now(),
                ),
            )
        records_inserted_total.labels(table_name=context.table_name or "-").inc()

    def insert_batch(self, uuids: Sequence[bytes], context: RegistryContext) -> None:
        """
        Record a batch of uuids in one round trip

        Batch rows always carry ``table_vertical``: the JSON key list for a
        vertical table, an empty string otherwise.
        """
        if not uuids:
            return
        vertical = context.vertical_json() or ""
        created = self._now()
        self.storage.execute_many(
            f"INSERT INTO {self.table} ({self.uuid_column}, table_name, table_id, "
            "table_vertical, couchdb, document_drive, mapped, created) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            [
                (
                    uuid,
                    context.table_name,
                    context.table_id,
                    vertical,
                    context.couchdb,
                    int(context.document_drive),
                    int(context.mapped),
                    created,
                )
                for uuid in uuids
            ],
        )
        records_inserted_total.labels(table_name=context.table_name or "-").inc(len(uuids))
        logger.debug(
            "Registry batch inserted",
            table_name=context.table_name,
            count=len(uuids),
        )

    def find_existing(self, uuids: Sequence[bytes]) -> set[bytes]:
        """Return the subset of ``uuids`` already present in the registry"""
        if not uuids:
            return set()
        rows = self.storage.execute(
            f"SELECT {self.uuid_column} FROM {self.table} "
            f"WHERE {any_of_predicate(self.uuid_column, len(uuids))}",
            list(uuids),
        )
        return {bytes(row[self.uuid_column]) for row in rows}

    def exists(self, uuid: bytes) -> bool:
        return (
            self.storage.execute_scalar_count(
                f"SELECT COUNT(*) FROM {self.table} WHERE {self.uuid_column} = ?",
                (uuid,),
            )
            > 0
        )

    def resolve(self, uuid: bytes) -> RegistryRecord | None:
        """
        Look up the registry row for a uuid

        Returns:
            The first matching record, or None if the uuid was never issued
        """
        rows = self.storage.execute(
            f"SELECT {self.uuid_column}, table_name, table_id, table_vertical, couchdb, "
            f"document_drive, mapped, created FROM {self.table} "
            f"WHERE {self.uuid_column} = ? LIMIT 1",
            (uuid,),
        )
        if not rows:
            return None
        row = rows[0]
        return RegistryRecord(
            uuid=bytes(row[self.uuid_column]),
            table_name=row["table_name"] or "",
            table_id=row["table_id"] or "",
            table_vertical=json.loads(row["table_vertical"]) if row["table_vertical"] else None,
            couchdb=row["couchdb"] or "",
            document_drive=bool(row["document_drive"]),
            mapped=bool(row["mapped"]),
            created=datetime.fromisoformat(row["created"]),
        )

    def count(self, table_name: str | None = None) -> int:
        """Number of registry rows, optionally for one owning table"""
        if table_name is None:
            return self.storage.execute_scalar_count(f"SELECT COUNT(*) FROM {self.table}")
        return self.storage.execute_scalar_count(
            f"SELECT COUNT(*) FROM {self.table} WHERE table_name = ?",
            (table_name,),
        )
