"""
Test Helper Functions - Builders and instrumented collaborators

Builders create target tables in the shapes the registry supports; the
seeded id factory and the counting storage make collisions and query
traffic observable.
"""

from collections.abc import Iterable, Sequence
from contextlib import AbstractContextManager
from typing import Any

from uuid_registry.codec import NIL_UUID_BYTES, TimestampFirstCombCodec
from uuid_registry.kernel.storage import SQLiteStorage


class SeededIdFactory:
    """
    IdFactory that hands out given values first, then fresh random uuids

    Use it to force collisions: seed it with values that are already in the
    registry or in the target table.
    """

    def __init__(self, seeded: Iterable[bytes] = ()) -> None:
        self._seeded = list(seeded)
        self._codec = TimestampFirstCombCodec()
        self.calls = 0

    def generate(self) -> bytes:
        self.calls += 1
        if self._seeded:
            return self._seeded.pop(0)
        return self._codec.generate()


class ConstantIdFactory:
    """IdFactory that always returns the same value"""

    def __init__(self, value: bytes) -> None:
        self.value = value
        self.calls = 0

    def generate(self) -> bytes:
        self.calls += 1
        return self.value


class CountingStorage:
    """Wraps a storage and records every SQL statement sent through it"""

    def __init__(self, inner: SQLiteStorage) -> None:
        self.inner = inner
        self.statements: list[str] = []

    @property
    def in_transaction(self) -> bool:
        return self.inner.in_transaction

    def execute(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        self.statements.append(sql)
        return self.inner.execute(sql, params)

    def execute_many(self, sql: str, seq_of_params: Iterable[Sequence[Any]]) -> None:
        self.statements.append(sql)
        self.inner.execute_many(sql, seq_of_params)

    def execute_update(self, sql: str, params: Sequence[Any] = ()) -> int:
        self.statements.append(sql)
        return self.inner.execute_update(sql, params)

    def execute_scalar_count(self, sql: str, params: Sequence[Any] = ()) -> int:
        self.statements.append(sql)
        return self.inner.execute_scalar_count(sql, params)

    def table_exists(self, table_name: str) -> bool:
        return self.inner.table_exists(table_name)

    def begin_transaction(self) -> None:
        self.inner.begin_transaction()

    def commit(self) -> None:
        self.inner.commit()

    def rollback(self) -> None:
        self.inner.rollback()

    def transaction(self) -> AbstractContextManager[None]:
        return self.inner.transaction()

    def count_matching(self, prefix: str) -> int:
        return sum(1 for sql in self.statements if sql.lstrip().upper().startswith(prefix))


def create_simple_table(
    storage: SQLiteStorage,
    table_name: str,
    rows: int,
    id_column: str = "id",
    uuid_value: Any = None,
) -> None:
    """
    Builder for a table keyed by one integer column

    Every row starts with ``uuid`` set to ``uuid_value`` (NULL, i.e. missing, by default).
    """
    storage.execute(
        f"CREATE TABLE {table_name} ({id_column} INTEGER PRIMARY KEY, uuid BLOB, label TEXT)"
    )
    storage.execute_many(
        f"INSERT INTO {table_name} ({id_column}, uuid, label) VALUES (?, ?, ?)",
        [(i, uuid_value, f"row-{i}") for i in range(1, rows + 1)],
    )


def create_vertical_table(
    storage: SQLiteStorage,
    table_name: str,
    pairs: Sequence[tuple[int, int]],
) -> None:
    """Builder for a facility_user_ids-like table keyed by (uid, facility_id)"""
    storage.execute(
        f"CREATE TABLE {table_name} (uid INTEGER NOT NULL, facility_id INTEGER NOT NULL, "
        "uuid BLOB, field_id TEXT)"
    )
    storage.execute_many(
        f"INSERT INTO {table_name} (uid, facility_id, uuid, field_id) VALUES (?, ?, ?, ?)",
        [(uid, facility_id, None, "role") for uid, facility_id in pairs],
    )


def count_missing(storage: SQLiteStorage, table_name: str) -> int:
    return storage.execute_scalar_count(
        f"SELECT COUNT(*) FROM {table_name} "
        "WHERE uuid IS NULL OR uuid = '' OR uuid = ? OR uuid = ?",
        (b"", NIL_UUID_BYTES),
    )
