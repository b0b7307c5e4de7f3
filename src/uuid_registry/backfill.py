"""
Batch Backfill Engine - Give every existing row of a table its uuid

Rows created before uuids were adopted (or by code unaware of them) have a
NULL, empty or all-zero uuid. The engine repeats

    Counting -> Generating -> Assigning -> Counting ...

until Counting finds nothing left, all inside one transaction: either every
round sticks or none does.

Rows are fetched in key order first and only then are exactly as many
unused uuids requested, so every uuid is paired with the row it was drawn
for rather than with whatever the database happened to return at that
position.
"""

import time
from collections.abc import Sequence
from enum import Enum
from typing import Any

from uuid_registry.codec import NIL_UUID_BYTES
from uuid_registry.kernel.errors import InvalidConfiguration, StorageFailure
from uuid_registry.kernel.logging import LogOperation, get_logger
from uuid_registry.kernel.metrics import (
    backfill_duration_seconds,
    backfill_rows_total,
    tables_missing_uuids,
)
from uuid_registry.kernel.settings import RegistrySettings
from uuid_registry.kernel.storage import Storage
from uuid_registry.models import RegistryContext
from uuid_registry.prober import UniquenessProber
from uuid_registry.registry_store import RegistryStore

logger = get_logger(__name__)

# Values that count as "no uuid yet" besides NULL
MISSING_UUID_VALUES: tuple[Any, ...] = ("", b"", NIL_UUID_BYTES)


class BackfillState(str, Enum):
    """Phases of one backfill invocation"""

    COUNTING = "COUNTING"
    GENERATING = "GENERATING"
    ASSIGNING = "ASSIGNING"
    DONE = "DONE"


class BatchBackfillEngine:
    """
    Assigns uuids to rows of one table that are missing them

    Works for both table shapes through the context's key descriptor:
    simple tables are matched on their key column, vertical tables on every
    column of their composite key.
    """

    def __init__(
        self,
        storage: Storage,
        context: RegistryContext,
        registry_store: RegistryStore,
        prober: UniquenessProber,
        settings: RegistrySettings | None = None,
    ) -> None:
        if not context.table_name or context.key is None:
            raise InvalidConfiguration("Backfill needs a context with a table_name")
        self.storage = storage
        self.context = context
        self.registry_store = registry_store
        self.prober = prober
        self.settings = settings or registry_store.settings
        self.state = BackfillState.DONE

        self.table = context.table_name
        self.uuid_column = self.settings.uuid_column
        self.key_columns: list[str] = list(context.key.columns)
        col = self.uuid_column
        self._missing_predicate = (
            f"({col} IS NULL OR {col} = ? OR {col} = ? OR {col} = ?)"
        )

    def _enter(self, state: BackfillState) -> None:
        self.state = state
        logger.debug("Backfill state", table_name=self.table, state=state.value)

    def count_missing(self) -> int:
        """Number of rows whose uuid is NULL, empty or all zeros"""
        return self.storage.execute_scalar_count(
            f"SELECT COUNT(*) FROM {self.table} WHERE {self._missing_predicate}",
            MISSING_UUID_VALUES,
        )

    def table_needs_uuid_creation(self) -> bool:
        return self.count_missing() > 0

    def validate_columns(self) -> None:
        """
        Check that the uuid column and every key column exist

        Raises:
            InvalidConfiguration: If the table or one of the columns is missing
        """
        columns = ", ".join([self.uuid_column, *self.key_columns])
        try:
            self.storage.execute(f"SELECT {columns} FROM {self.table} LIMIT 0")
        except StorageFailure as e:
            raise InvalidConfiguration(
                f"Table {self.table} cannot be backfilled with key {self.key_columns}: {e}"
            ) from e

    def fetch_missing_rows(self, limit: int) -> list[dict[str, Any]]:
        """Key values of up to ``limit`` rows missing a uuid, in key order"""
        columns = ", ".join(self.key_columns)
        return self.storage.execute(
            f"SELECT {columns} FROM {self.table} WHERE {self._missing_predicate} "
            f"ORDER BY {columns} LIMIT {int(limit)}",
            MISSING_UUID_VALUES,
        )

    def assign_batch(self, rows: Sequence[dict[str, Any]], uuids: Sequence[bytes]) -> int:
        """
        Record ``uuids`` in the registry and write each one to its row

        Every update is matched on the full key and on the uuid still being
        missing, and must touch exactly one row.

        Returns:
            Number of rows updated

        Raises:
            InvalidConfiguration: If rows and uuids differ in number, or a key
                does not identify exactly one row still missing its uuid
        """
        if len(rows) != len(uuids):
            raise InvalidConfiguration(
                f"Cannot pair {len(rows)} rows of {self.table} with {len(uuids)} uuids"
            )
        self.registry_store.insert_batch(uuids, self.context)

        match = " AND ".join(f"{column} = ?" for column in self.key_columns)
        sql = (
            f"UPDATE {self.table} SET {self.uuid_column} = ? "
            f"WHERE {match} AND {self._missing_predicate}"
        )
        for row, uuid in zip(rows, uuids):
            key_values = [row[column] for column in self.key_columns]
            updated = self.storage.execute_update(sql, [uuid, *key_values, *MISSING_UUID_VALUES])
            if updated != 1:
                raise InvalidConfiguration(
                    f"Key {dict(zip(self.key_columns, key_values))} matched {updated} rows "
                    f"of {self.table} missing a uuid, expected exactly 1"
                )
        return len(rows)

    def _run_round(self, missing: int) -> int:
        self._enter(BackfillState.GENERATING)
        rows = self.fetch_missing_rows(min(missing, self.settings.batch_size))
        if not rows:
            raise InvalidConfiguration(
                f"{missing} rows of {self.table} miss a uuid but none could be fetched"
            )
        uuids = self.prober.get_unused_uuid_batch(len(rows))

        self._enter(BackfillState.ASSIGNING)
        return self.assign_batch(rows, uuids)

    def create_missing_uuids(self) -> int:
        """
        Backfill the table until no row is missing a uuid

        Returns:
            Number of rows that received a uuid (0 when nothing was missing)

        Raises:
            InvalidConfiguration: On an unusable key or an unpairable batch
            StorageFailure: On any database error
            (either way every round of this invocation is rolled back)
        """
        start = time.perf_counter()
        total = 0
        with LogOperation(logger, "create_missing_uuids", table_name=self.table) as op:
            with self.storage.transaction():
                validated = False
                while True:
                    self._enter(BackfillState.COUNTING)
                    missing = self.count_missing()
                    if total == 0:
                        tables_missing_uuids.labels(table_name=self.table).set(missing)
                    if missing == 0:
                        break
                    if not validated:
                        self.validate_columns()
                        validated = True
                    assigned = self._run_round(missing)
                    total += assigned
                    logger.debug(
                        "Backfill round complete",
                        table_name=self.table,
                        assigned=assigned,
                        remaining=missing - assigned,
                    )
            self._enter(BackfillState.DONE)
            op.note(uuids_added=total)

        tables_missing_uuids.labels(table_name=self.table).set(0)
        if total:
            backfill_rows_total.labels(table_name=self.table).inc(total)
        backfill_duration_seconds.labels(table_name=self.table).observe(
            time.perf_counter() - start
        )
        return total
