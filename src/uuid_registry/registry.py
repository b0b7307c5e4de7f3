"""
UuidRegistry - Main facade

One object per use case: construct it with the context a uuid is for, then
ask it for single uuids, unused batches or a table backfill. Conversions
between the binary and string forms are available as static methods.

Example:
    >>> from uuid_registry import UuidRegistry
    >>> from uuid_registry.kernel import SQLiteStorage
    >>> storage = SQLiteStorage("emr.db")
    >>> UuidRegistry(storage, table_name="patient_data").create_uuid()
    >>> UuidRegistry(storage, table_name="drugs", table_id="drug_id").create_missing_uuids()
    >>> UuidRegistry(storage, document_drive=True).create_uuid()
    >>> UuidRegistry.populate_all_missing_uuids(storage)
"""

from collections.abc import Sequence
from typing import Any

from uuid_registry import codec
from uuid_registry.backfill import BatchBackfillEngine
from uuid_registry.codec import IdFactory, default_codec
from uuid_registry.generator import SingleEntityGenerator
from uuid_registry.kernel.audit import AuditLog
from uuid_registry.kernel.errors import InvalidConfiguration
from uuid_registry.kernel.settings import RegistrySettings
from uuid_registry.kernel.storage import Storage
from uuid_registry.kernel.time import RealTimeProvider, TimeProvider
from uuid_registry.models import RegistryContext
from uuid_registry.orchestrator import BackfillOrchestrator, BackfillReport
from uuid_registry.prober import UniquenessProber
from uuid_registry.registry_store import RegistryStore


class UuidRegistry:
    """
    UUID registry facade

    Accepts either a ready-made RegistryContext or the individual options:
    ``table_name``, ``table_id`` (defaults to "id" when a table is set),
    ``table_vertical``, ``disable_tracker``, ``couchdb``, ``document_drive``
    and ``mapped``.
    """

    def __init__(
        self,
        storage: Storage,
        context: RegistryContext | None = None,
        *,
        settings: RegistrySettings | None = None,
        time_provider: TimeProvider | None = None,
        id_factory: IdFactory | None = None,
        **associations: Any,
    ) -> None:
        self.storage = storage
        self.context = context or self._context_from(associations)
        self.settings = settings or RegistrySettings()
        self.time_provider = time_provider or RealTimeProvider()
        self.id_factory = id_factory or default_codec

        self.registry_store = RegistryStore(storage, self.settings, self.time_provider)
        self.prober = UniquenessProber(
            storage, self.context, self.registry_store, self.settings, self.id_factory
        )
        self.generator = SingleEntityGenerator(
            storage, self.context, self.registry_store, self.settings, self.id_factory
        )
        self._engine: BatchBackfillEngine | None = None

    @staticmethod
    def _context_from(associations: dict[str, Any]) -> RegistryContext:
        table_name = associations.pop("table_name", "") or ""
        table_id = associations.pop("table_id", None)
        table_vertical = associations.pop("table_vertical", None)
        if table_name:
            return RegistryContext.for_table(
                table_name, table_id=table_id or "id", table_vertical=table_vertical, **associations
            )
        if table_id or table_vertical:
            raise InvalidConfiguration("table_id and table_vertical require a table_name")
        return RegistryContext(**associations)

    @property
    def engine(self) -> BatchBackfillEngine:
        """Backfill engine for this context (only valid with a table_name)"""
        if self._engine is None:
            self._engine = BatchBackfillEngine(
                self.storage, self.context, self.registry_store, self.prober, self.settings
            )
        return self._engine

    # Issuing uuids

    def create_uuid(self) -> bytes:
        """Issue one verified-unique uuid and record it in the registry"""
        return self.generator.create_uuid()

    def get_unused_uuid_batch(self, limit: int = 10) -> list[bytes]:
        """Return ``limit`` uuids not yet in use (nothing is recorded)"""
        return self.prober.get_unused_uuid_batch(limit)

    def insert_uuids_into_registry(self, uuids: Sequence[bytes]) -> None:
        """Record a batch of uuids under this registry's context"""
        self.registry_store.insert_batch(uuids, self.context)

    # Backfill

    def create_missing_uuids(self) -> int:
        """Backfill this context's table; returns the number of rows updated"""
        return self.engine.create_missing_uuids()

    def table_needs_uuid_creation(self) -> bool:
        return self.engine.table_needs_uuid_creation()

    @classmethod
    def populate_all_missing_uuids(
        cls,
        storage: Storage,
        audit_log: AuditLog | None = None,
        log: bool = True,
        **options: Any,
    ) -> BackfillReport:
        """Backfill every tracked table (see BackfillOrchestrator)"""
        skip_missing_tables = options.pop("skip_missing_tables", False)
        orchestrator = BackfillOrchestrator(storage, audit_log=audit_log, **options)
        return orchestrator.populate_all_missing_uuids(
            log=log, skip_missing_tables=skip_missing_tables
        )

    # Conversions

    @staticmethod
    def uuid_to_string(uuid_bytes: bytes) -> str:
        return codec.uuid_to_string(uuid_bytes)

    @staticmethod
    def uuid_to_bytes(uuid_string: str) -> bytes:
        return codec.uuid_to_bytes(uuid_string)

    @staticmethod
    def is_valid_string_uuid(uuid_string: Any) -> bool:
        return codec.is_valid_string_uuid(uuid_string)

    @staticmethod
    def is_empty_binary_uuid(value: Any) -> bool:
        return codec.is_empty_binary_uuid(value)
