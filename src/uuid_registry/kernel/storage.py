"""
Storage - The narrow database interface the registry consumes

Everything the registry does is expressed as parameterized statements plus
explicit transaction control. ``SQLiteStorage`` is the bundled
implementation; any other engine can be plugged in by satisfying the
``Storage`` protocol.
"""

import sqlite3
from collections.abc import Iterable, Iterator, Sequence
from contextlib import AbstractContextManager, contextmanager
from pathlib import Path
from typing import Any, Protocol

from uuid_registry.kernel.errors import StorageFailure
from uuid_registry.kernel.logging import get_logger
from uuid_registry.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

Row = dict[str, Any]


class Storage(Protocol):
    """Protocol for the database collaborator"""

    @property
    def in_transaction(self) -> bool:
        """True while a transaction opened by begin_transaction is active"""
        ...

    def execute(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        """Run a statement and return its rows as column-name mappings"""
        ...

    def execute_many(self, sql: str, seq_of_params: Iterable[Sequence[Any]]) -> None:
        """Run one statement for each parameter set"""
        ...

    def execute_update(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a modifying statement and return the affected row count"""
        ...

    def execute_scalar_count(self, sql: str, params: Sequence[Any] = ()) -> int:
        """Run a COUNT(*) style query and return the single integer"""
        ...

    def table_exists(self, table_name: str) -> bool:
        ...

    def begin_transaction(self) -> None:
        ...

    def commit(self) -> None:
        ...

    def rollback(self) -> None:
        ...

    def transaction(self) -> AbstractContextManager[None]:
        """Context manager: begin, commit on success, rollback and re-raise on error"""
        ...


class TransactionMixin:
    """
    Scoped transaction built on begin/commit/rollback

    Shared by storage implementations so that every exit path of a
    ``with storage.transaction():`` block either commits or rolls back.
    """

    def begin_transaction(self) -> None:  # pragma: no cover - implemented by subclasses
        raise NotImplementedError

    def commit(self) -> None:  # pragma: no cover - implemented by subclasses
        raise NotImplementedError

    def rollback(self) -> None:  # pragma: no cover - implemented by subclasses
        raise NotImplementedError

    @contextmanager
    def transaction(self) -> Iterator[None]:
        self.begin_transaction()
        try:
            yield
            self.commit()
        except BaseException:
            self.rollback()
            raise


class SQLiteStorage(TransactionMixin):
    """
    SQLite-backed storage

    Holds a single connection in autocommit mode and issues BEGIN, COMMIT and
    ROLLBACK itself, so a transaction spans as many calls as the caller needs.
    Nested transactions are rejected.

    Every ``sqlite3.Error`` surfaces as ``StorageFailure`` with the original
    exception chained.
    """

    def __init__(self, db_path: str | Path) -> None:
        """
        Open (or create) the database

        Args:
            db_path: Path to SQLite database file, or ":memory:"
        """
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, isolation_level=None)
        self._conn.row_factory = sqlite3.Row
        self._in_transaction = False
        if self.db_path != ":memory:":
            self._conn.execute("PRAGMA journal_mode=WAL")
            self._conn.execute("PRAGMA synchronous=NORMAL")

    @property
    def in_transaction(self) -> bool:
        return self._in_transaction

    def close(self) -> None:
        self._conn.close()

    def __enter__(self) -> "SQLiteStorage":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    @retry_on_sqlite_lock()
    def _run(self, sql: str, params: Sequence[Any]) -> sqlite3.Cursor:
        return self._conn.execute(sql, tuple(params))

    @retry_on_sqlite_lock()
    def _run_many(self, sql: str, seq_of_params: list[tuple[Any, ...]]) -> sqlite3.Cursor:
        return self._conn.executemany(sql, seq_of_params)

    def execute(self, sql: str, params: Sequence[Any] = ()) -> list[Row]:
        try:
            cursor = self._run(sql, params)
            return [dict(row) for row in cursor.fetchall()]
        except sqlite3.Error as e:
            raise StorageFailure(f"Query failed: {e}") from e

    def execute_many(self, sql: str, seq_of_params: Iterable[Sequence[Any]]) -> None:
        batch = [tuple(params) for params in seq_of_params]
        if not batch:
            return
        try:
            self._run_many(sql, batch)
        except sqlite3.Error as e:
            raise StorageFailure(f"Batch statement failed: {e}") from e

    def execute_update(self, sql: str, params: Sequence[Any] = ()) -> int:
        try:
            return self._run(sql, params).rowcount
        except sqlite3.Error as e:
            raise StorageFailure(f"Statement failed: {e}") from e

    def execute_scalar_count(self, sql: str, params: Sequence[Any] = ()) -> int:
        try:
            row = self._run(sql, params).fetchone()
        except sqlite3.Error as e:
            raise StorageFailure(f"Count query failed: {e}") from e
        if row is None or row[0] is None:
            return 0
        return int(row[0])

    def table_exists(self, table_name: str) -> bool:
        return (
            self.execute_scalar_count(
                "SELECT COUNT(*) FROM sqlite_master WHERE type = 'table' AND name = ?",
                (table_name,),
            )
            > 0
        )

    def begin_transaction(self) -> None:
        if self._in_transaction:
            raise StorageFailure("A transaction is already open on this connection")
        try:
            self._run("BEGIN IMMEDIATE", ())
        except sqlite3.Error as e:
            raise StorageFailure(f"Could not begin transaction: {e}") from e
        self._in_transaction = True

    def commit(self) -> None:
        if not self._in_transaction:
            raise StorageFailure("No open transaction to commit")
        try:
            self._conn.execute("COMMIT")
        except sqlite3.Error as e:
            # A refused COMMIT (deferred constraint, busy database) leaves the
            # transaction open on the connection.
            logger.warning("Commit failed, rolling back", error=str(e))
            self.rollback()
            raise StorageFailure(f"Commit failed: {e}") from e
        self._in_transaction = False

    def rollback(self) -> None:
        if not self._in_transaction:
            return
        try:
            self._conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.error("Rollback failed", error=str(e))
            raise StorageFailure(f"Rollback failed: {e}") from e
        finally:
            self._in_transaction = False
