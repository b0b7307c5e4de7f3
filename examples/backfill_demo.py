#!/usr/bin/env python3
"""
Backfill Demonstration - Giving legacy rows their uuids

Rows created before uuids were adopted carry NULL, '' or an all-zero uuid.
This example builds a small EHR-like database with both table shapes and
runs the same backfill a nightly maintenance job would.

Key Concepts:
1. Simple tables are matched on one key column (drugs.drug_id)
2. Vertical tables are matched on every column of a composite key
3. Every issued uuid is recorded in the registry with its owning table
4. A second run finds nothing to do and writes no audit entry

Run:
    python examples/backfill_demo.py
"""

import tempfile
from pathlib import Path

from uuid_registry import UuidRegistry
from uuid_registry.codec import NIL_UUID_BYTES, timestamp_of
from uuid_registry.kernel.audit import SQLiteAuditLog
from uuid_registry.kernel.storage import SQLiteStorage
from uuid_registry.models import BackfillTarget
from uuid_registry.registry_store import RegistryStore

TARGETS = [
    BackfillTarget(table_name="patient_data"),
    BackfillTarget(table_name="drugs", table_id="drug_id"),
    BackfillTarget(table_name="facility_user_ids", table_vertical=["uid", "facility_id"]),
]


def print_section(title: str) -> None:
    """Print section header"""
    print(f"\n{'='*70}")
    print(f"  {title}")
    print(f"{'='*70}\n")


def build_legacy_tables(storage: SQLiteStorage) -> None:
    storage.execute("CREATE TABLE patient_data (id INTEGER PRIMARY KEY, uuid BLOB, fname TEXT)")
    storage.execute_many(
        "INSERT INTO patient_data (fname, uuid) VALUES (?, ?)",
        [("Ada", None), ("Grace", ""), ("Alan", NIL_UUID_BYTES)],
    )
    storage.execute("CREATE TABLE drugs (drug_id INTEGER PRIMARY KEY, uuid BLOB, name TEXT)")
    storage.execute_many(
        "INSERT INTO drugs (name) VALUES (?)", [("amoxicillin",), ("ibuprofen",)]
    )
    storage.execute(
        "CREATE TABLE facility_user_ids (uid INTEGER NOT NULL, facility_id INTEGER NOT NULL, "
        "uuid BLOB, field_id TEXT)"
    )
    storage.execute_many(
        "INSERT INTO facility_user_ids (uid, facility_id, field_id) VALUES (?, ?, ?)",
        [(1, 1, "provider_id"), (1, 2, "provider_id"), (2, 1, "role")],
    )


def main() -> None:
    with tempfile.TemporaryDirectory() as tmpdir:
        db_path = Path(tmpdir) / "emr.db"
        with SQLiteStorage(db_path) as storage:
            registry_store = RegistryStore(storage)
            registry_store.ensure_schema()
            audit_log = SQLiteAuditLog(storage)
            audit_log.ensure_schema()
            build_legacy_tables(storage)

            print_section("1. Backfill every tracked table")
            report = UuidRegistry.populate_all_missing_uuids(
                storage, audit_log=audit_log, targets=TARGETS
            )
            for table_name, count in report.counts.items():
                print(f"  {table_name}: {count} uuids added")
            print(f"  (run {report.run_id})")

            print_section("2. Inspect the vertical table")
            for row in storage.execute(
                "SELECT uid, facility_id, uuid FROM facility_user_ids ORDER BY uid, facility_id"
            ):
                record = registry_store.resolve(row["uuid"])
                print(
                    f"  uid={row['uid']} facility_id={row['facility_id']} "
                    f"-> {UuidRegistry.uuid_to_string(row['uuid'])} "
                    f"(key {record.table_vertical if record else '?'}, "
                    f"issued {timestamp_of(row['uuid']):%H:%M:%S.%f})"
                )

            print_section("3. Run again")
            again = UuidRegistry.populate_all_missing_uuids(
                storage, audit_log=audit_log, targets=TARGETS
            )
            print(f"  uuids added: {again.total}")

            print_section("Audit trail")
            for event in audit_log.list_events("uuid"):
                print(f"  {event['created']}  {event['summary']}")
            print(f"\n  Registry rows: {registry_store.count()}")


if __name__ == "__main__":
    main()
