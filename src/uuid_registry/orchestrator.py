"""
Backfill Orchestrator - Keep every tracked table populated

Meant to run periodically (a maintenance job, a cron entry, the CLI). Each
tracked table is backfilled in its own transaction, one after the other,
and a single audit entry summarizes what changed. A run with nothing to do
only issues the count queries.

When support for a new table's uuid is added, the table must be added to
DEFAULT_BACKFILL_TARGETS as well.
"""

from collections.abc import Sequence

from uuid_registry.backfill import BatchBackfillEngine
from uuid_registry.codec import IdFactory
from uuid_registry.kernel.audit import AuditLog, StructlogAuditLog
from uuid_registry.kernel.logging import LogOperation, backfill_run, get_logger
from uuid_registry.kernel.metrics import track_operation_duration
from uuid_registry.kernel.settings import RegistrySettings
from uuid_registry.kernel.storage import Storage
from uuid_registry.kernel.time import TimeProvider
from uuid_registry.models import BackfillTarget
from uuid_registry.prober import UniquenessProber
from uuid_registry.registry_store import RegistryStore

logger = get_logger(__name__)

# Tables that carry a uuid column (alphabetical)
DEFAULT_BACKFILL_TARGETS: tuple[BackfillTarget, ...] = (
    BackfillTarget(table_name="ccda"),
    BackfillTarget(table_name="drugs", table_id="drug_id"),
    BackfillTarget(table_name="facility"),
    BackfillTarget(table_name="facility_user_ids", table_vertical=["uid", "facility_id"]),
    BackfillTarget(table_name="form_encounter"),
    BackfillTarget(table_name="immunizations"),
    BackfillTarget(table_name="insurance_companies"),
    BackfillTarget(table_name="insurance_data"),
    BackfillTarget(table_name="lists"),
    BackfillTarget(table_name="patient_data"),
    BackfillTarget(table_name="prescriptions"),
    BackfillTarget(table_name="procedure_order", table_id="procedure_order_id"),
    BackfillTarget(table_name="procedure_result", table_id="procedure_result_id"),
    BackfillTarget(table_name="users"),
)


class BackfillReport:
    """
    Result of one orchestrator run

    Holds the per-table counts in run order; tables that needed nothing
    are recorded with 0 but left out of the summary.
    """

    def __init__(self) -> None:
        self.counts: dict[str, int] = {}
        self.skipped: list[str] = []
        self.run_id: str | None = None

    def add(self, table_name: str, count: int) -> None:
        self.counts[table_name] = count

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def changed(self) -> dict[str, int]:
        return {table: count for table, count in self.counts.items() if count > 0}

    def summary(self) -> str:
        """``added N uuids to T, added M uuids to U`` ("" if nothing changed)"""
        return ", ".join(
            f"added {count} uuids to {table}" for table, count in self.changed.items()
        )


class BackfillOrchestrator:
    """Runs the backfill engine over a fixed list of tables"""

    def __init__(
        self,
        storage: Storage,
        audit_log: AuditLog | None = None,
        targets: Sequence[BackfillTarget] = DEFAULT_BACKFILL_TARGETS,
        settings: RegistrySettings | None = None,
        time_provider: TimeProvider | None = None,
        id_factory: IdFactory | None = None,
    ) -> None:
        self.storage = storage
        self.audit_log = audit_log or StructlogAuditLog()
        self.targets = tuple(targets)
        self.settings = settings or RegistrySettings()
        self.time_provider = time_provider
        self.id_factory = id_factory
        self.registry_store = RegistryStore(storage, self.settings, time_provider)

    @track_operation_duration("populate_all_missing_uuids")
    def populate_all_missing_uuids(
        self,
        log: bool = True,
        skip_missing_tables: bool = False,
    ) -> BackfillReport:
        """
        Backfill every target table, then audit what changed

        Errors are not caught per table: a failure rolls back the failing
        table and stops the run, leaving earlier tables committed. Every
        line logged during the run carries the run id stored on the report.

        Args:
            log: Record the audit entry (only written if something changed)
            skip_missing_tables: Skip targets whose table doesn't exist

        Returns:
            BackfillReport with a count per table
        """
        report = BackfillReport()
        with backfill_run() as run_id, LogOperation(
            logger, "populate_all_missing_uuids", tables=len(self.targets)
        ) as op:
            report.run_id = run_id
            for target in self.targets:
                if skip_missing_tables and not self.storage.table_exists(target.table_name):
                    logger.info("Skipping table that does not exist", table_name=target.table_name)
                    report.skipped.append(target.table_name)
                    continue
                context = target.to_context()
                prober = UniquenessProber(
                    self.storage, context, self.registry_store, self.settings, self.id_factory
                )
                engine = BatchBackfillEngine(
                    self.storage, context, self.registry_store, prober, self.settings
                )
                report.add(target.table_name, engine.create_missing_uuids())
            op.note(uuids_added=report.total, skipped=len(report.skipped))

            summary = report.summary()
            if log and summary:
                self.audit_log.record_event(
                    self.settings.audit_category,
                    f"Automatic uuid service creation: {summary}",
                )
        return report
