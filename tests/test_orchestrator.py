"""
Tests for the backfill orchestrator

One transaction per table, one audit entry per run that changed anything.
"""

import pytest

from tests.helpers import CountingStorage, count_missing, create_simple_table, create_vertical_table
from uuid_registry.kernel.audit import SQLiteAuditLog, StructlogAuditLog
from uuid_registry.kernel.errors import StorageFailure
from uuid_registry.kernel.logging import current_run_id
from uuid_registry.kernel.storage import SQLiteStorage
from uuid_registry.models import BackfillTarget
from uuid_registry.orchestrator import (
    DEFAULT_BACKFILL_TARGETS,
    BackfillOrchestrator,
    BackfillReport,
)
from uuid_registry.registry import UuidRegistry

TARGETS = [
    BackfillTarget(table_name="patient_data"),
    BackfillTarget(table_name="drugs", table_id="drug_id"),
    BackfillTarget(table_name="facility_user_ids", table_vertical=["uid", "facility_id"]),
]


@pytest.fixture
def tracked_tables(storage: SQLiteStorage) -> SQLiteStorage:
    create_simple_table(storage, "patient_data", rows=3)
    create_simple_table(storage, "drugs", rows=2, id_column="drug_id")
    create_vertical_table(storage, "facility_user_ids", [])
    return storage


def test_default_targets_cover_tracked_tables() -> None:
    names = [target.table_name for target in DEFAULT_BACKFILL_TARGETS]
    assert names == sorted(names)
    assert len(names) == 14
    by_name = {target.table_name: target for target in DEFAULT_BACKFILL_TARGETS}
    assert by_name["drugs"].table_id == "drug_id"
    assert by_name["facility_user_ids"].table_vertical == ["uid", "facility_id"]
    assert by_name["procedure_result"].table_id == "procedure_result_id"


def test_run_backfills_and_audits(
    tracked_tables: SQLiteStorage, audit_log: SQLiteAuditLog
) -> None:
    report = BackfillOrchestrator(
        tracked_tables, audit_log=audit_log, targets=TARGETS
    ).populate_all_missing_uuids()

    assert report.counts == {"patient_data": 3, "drugs": 2, "facility_user_ids": 0}
    assert report.total == 5
    assert count_missing(tracked_tables, "patient_data") == 0
    assert count_missing(tracked_tables, "drugs") == 0

    events = audit_log.list_events("uuid")
    assert len(events) == 1
    assert events[0]["summary"] == (
        "Automatic uuid service creation: added 3 uuids to patient_data, added 2 uuids to drugs"
    )
    assert events[0]["success"] == 1


def test_nothing_to_do_writes_no_audit_entry(
    tracked_tables: SQLiteStorage, audit_log: SQLiteAuditLog
) -> None:
    orchestrator = BackfillOrchestrator(tracked_tables, audit_log=audit_log, targets=TARGETS)
    orchestrator.populate_all_missing_uuids()

    report = orchestrator.populate_all_missing_uuids()

    assert report.total == 0
    assert report.summary() == ""
    assert len(audit_log.list_events()) == 1


def test_nothing_to_do_only_counts(tracked_tables: SQLiteStorage) -> None:
    BackfillOrchestrator(tracked_tables, targets=TARGETS).populate_all_missing_uuids()
    counting = CountingStorage(tracked_tables)

    BackfillOrchestrator(counting, targets=TARGETS).populate_all_missing_uuids()

    assert len(counting.statements) == len(TARGETS)
    assert counting.count_matching("SELECT COUNT(*)") == len(TARGETS)


def test_log_false_skips_audit(
    tracked_tables: SQLiteStorage, audit_log: SQLiteAuditLog
) -> None:
    report = BackfillOrchestrator(
        tracked_tables, audit_log=audit_log, targets=TARGETS
    ).populate_all_missing_uuids(log=False)

    assert report.total == 5
    assert audit_log.list_events() == []


def test_default_audit_log_is_structlog(storage: SQLiteStorage) -> None:
    orchestrator = BackfillOrchestrator(storage, targets=[])
    assert isinstance(orchestrator.audit_log, StructlogAuditLog)


def test_skip_missing_tables(storage: SQLiteStorage, audit_log: SQLiteAuditLog) -> None:
    create_simple_table(storage, "patient_data", rows=4)

    report = BackfillOrchestrator(storage, audit_log=audit_log).populate_all_missing_uuids(
        skip_missing_tables=True
    )

    assert report.counts == {"patient_data": 4}
    assert len(report.skipped) == 13
    assert "drugs" in report.skipped


def test_failure_stops_run_and_keeps_earlier_tables(
    storage: SQLiteStorage, audit_log: SQLiteAuditLog
) -> None:
    create_simple_table(storage, "patient_data", rows=2)
    create_simple_table(storage, "users", rows=2)
    targets = [
        BackfillTarget(table_name="patient_data"),
        BackfillTarget(table_name="ccda"),
        BackfillTarget(table_name="users"),
    ]

    with pytest.raises(StorageFailure):
        BackfillOrchestrator(storage, audit_log=audit_log, targets=targets).populate_all_missing_uuids()

    assert count_missing(storage, "patient_data") == 0
    assert count_missing(storage, "users") == 2
    assert audit_log.list_events() == []
    assert not storage.in_transaction


def test_facade_entry_point(tracked_tables: SQLiteStorage, audit_log: SQLiteAuditLog) -> None:
    report = UuidRegistry.populate_all_missing_uuids(
        tracked_tables, audit_log=audit_log, targets=TARGETS
    )
    assert report.total == 5
    assert len(audit_log.list_events("uuid")) == 1


class TestBackfillReport:
    def test_summary_lists_changed_tables_in_order(self) -> None:
        report = BackfillReport()
        report.add("users", 2)
        report.add("ccda", 0)
        report.add("lists", 7)

        assert report.total == 9
        assert report.changed == {"users": 2, "lists": 7}
        assert report.summary() == "added 2 uuids to users, added 7 uuids to lists"


class RunIdRecordingAuditLog:
    """Audit log that remembers which run id was bound when each entry was written"""

    def __init__(self) -> None:
        self.run_ids: list[str | None] = []

    def record_event(self, category: str, summary: str) -> None:
        self.run_ids.append(current_run_id())


def test_each_run_gets_its_own_run_id(storage: SQLiteStorage) -> None:
    audit_log = RunIdRecordingAuditLog()
    orchestrator = BackfillOrchestrator(
        storage, audit_log=audit_log, targets=[BackfillTarget(table_name="patient_data")]
    )

    create_simple_table(storage, "patient_data", rows=2)
    first = orchestrator.populate_all_missing_uuids()
    storage.execute("INSERT INTO patient_data (label) VALUES ('late arrival')")
    second = orchestrator.populate_all_missing_uuids()

    assert first.run_id and second.run_id
    assert first.run_id != second.run_id
    assert audit_log.run_ids == [first.run_id, second.run_id]
    assert current_run_id() is None
