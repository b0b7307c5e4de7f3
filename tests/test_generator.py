"""
Tests for single-entity generation

Fun fact: the retry cap of 100 is never reached by chance; the only way to
hit it in these tests is a factory that keeps returning the same value.
"""

import pytest

from tests.helpers import ConstantIdFactory, SeededIdFactory, create_simple_table
from uuid_registry.codec import generate_uuid
from uuid_registry.generator import SingleEntityGenerator
from uuid_registry.kernel.errors import IdentifierExhausted
from uuid_registry.kernel.settings import RegistrySettings
from uuid_registry.kernel.storage import SQLiteStorage
from uuid_registry.models import RegistryContext
from uuid_registry.registry_store import RegistryStore


def make_generator(
    storage: SQLiteStorage,
    registry_store: RegistryStore,
    context: RegistryContext,
    id_factory=None,
    settings: RegistrySettings | None = None,
) -> SingleEntityGenerator:
    return SingleEntityGenerator(storage, context, registry_store, settings, id_factory)


def test_create_uuid_records_in_registry(
    storage: SQLiteStorage, registry_store: RegistryStore
) -> None:
    create_simple_table(storage, "patient_data", rows=0)
    generator = make_generator(storage, registry_store, RegistryContext.for_table("patient_data"))

    uuid = generator.create_uuid()

    assert len(uuid) == 16
    record = registry_store.resolve(uuid)
    assert record is not None
    assert record.table_name == "patient_data"
    assert record.table_id == "id"


def test_registry_collision_retries(
    storage: SQLiteStorage, registry_store: RegistryStore
) -> None:
    taken = generate_uuid()
    registry_store.insert_one(taken, RegistryContext())
    factory = SeededIdFactory([taken])

    uuid = make_generator(storage, registry_store, RegistryContext(), factory).create_uuid()

    assert uuid != taken
    assert factory.calls == 2
    assert registry_store.count() == 2


def test_table_collision_retries(
    storage: SQLiteStorage, registry_store: RegistryStore
) -> None:
    taken = generate_uuid()
    create_simple_table(storage, "lists", rows=1, uuid_value=taken)

    uuid = make_generator(
        storage, registry_store, RegistryContext.for_table("lists"), SeededIdFactory([taken])
    ).create_uuid()

    assert uuid != taken


def test_document_drive_checks_document_table(
    storage: SQLiteStorage, registry_store: RegistryStore
) -> None:
    taken = generate_uuid()
    storage.execute("INSERT INTO documents (drive_uuid, name) VALUES (?, ?)", (taken, "scan.pdf"))

    uuid = make_generator(
        storage, registry_store, RegistryContext.for_document_drive(), SeededIdFactory([taken])
    ).create_uuid()

    assert uuid != taken
    record = registry_store.resolve(uuid)
    assert record is not None
    assert record.document_drive
    assert record.table_name == ""


def test_exhaustion_after_exactly_max_tries(
    storage: SQLiteStorage, registry_store: RegistryStore
) -> None:
    taken = generate_uuid()
    registry_store.insert_one(taken, RegistryContext())
    factory = ConstantIdFactory(taken)

    with pytest.raises(IdentifierExhausted) as exc_info:
        make_generator(storage, registry_store, RegistryContext(), factory).create_uuid()

    assert factory.calls == 100
    assert exc_info.value.attempts == 100
    assert registry_store.count() == 1


def test_max_tries_is_configurable(
    storage: SQLiteStorage, registry_store: RegistryStore
) -> None:
    taken = generate_uuid()
    registry_store.insert_one(taken, RegistryContext())
    factory = ConstantIdFactory(taken)

    with pytest.raises(IdentifierExhausted):
        make_generator(
            storage, registry_store, RegistryContext(), factory, RegistrySettings(max_tries=5)
        ).create_uuid()

    assert factory.calls == 5


def test_disabled_tracker_neither_checks_nor_records(
    storage: SQLiteStorage, registry_store: RegistryStore
) -> None:
    in_registry = generate_uuid()
    registry_store.insert_one(in_registry, RegistryContext())

    uuid = make_generator(
        storage,
        registry_store,
        RegistryContext(disable_tracker=True),
        SeededIdFactory([in_registry]),
    ).create_uuid()

    assert uuid == in_registry
    assert registry_store.count() == 1


def test_registry_row_belongs_to_caller_transaction(
    storage: SQLiteStorage, registry_store: RegistryStore
) -> None:
    generator = make_generator(storage, registry_store, RegistryContext())

    with pytest.raises(RuntimeError):
        with storage.transaction():
            generator.create_uuid()
            raise RuntimeError("caller failed after issuing")

    assert registry_store.count() == 0
