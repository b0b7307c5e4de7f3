"""
Pytest configuration and shared fixtures

Every test gets its own temporary SQLite file with the registry, audit and
drive document tables already created.
"""

import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator

import pytest

from uuid_registry.kernel.audit import SQLiteAuditLog
from uuid_registry.kernel.settings import RegistrySettings
from uuid_registry.kernel.storage import SQLiteStorage
from uuid_registry.kernel.time import TestTimeProvider
from uuid_registry.registry_store import RegistryStore


@pytest.fixture
def temp_db() -> Iterator[Path]:
    """Provide a temporary database file that's cleaned up after test"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "registry.db"


@pytest.fixture
def settings() -> RegistrySettings:
    return RegistrySettings()


@pytest.fixture
def test_time() -> TestTimeProvider:
    """Controllable clock fixed at 2025-01-15 12:00:00 UTC"""
    return TestTimeProvider(datetime(2025, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def storage(temp_db: Path) -> Iterator[SQLiteStorage]:
    """Fresh storage with the registry, audit and documents tables"""
    store = SQLiteStorage(temp_db)
    RegistryStore(store).ensure_schema()
    SQLiteAuditLog(store).ensure_schema()
    store.execute(
        "CREATE TABLE documents (id INTEGER PRIMARY KEY AUTOINCREMENT, "
        "uuid BLOB, drive_uuid BLOB, name TEXT)"
    )
    yield store
    store.close()


@pytest.fixture
def registry_store(
    storage: SQLiteStorage, settings: RegistrySettings, test_time: TestTimeProvider
) -> RegistryStore:
    return RegistryStore(storage, settings, test_time)


@pytest.fixture
def audit_log(storage: SQLiteStorage, test_time: TestTimeProvider) -> SQLiteAuditLog:
    return SQLiteAuditLog(storage, test_time)
